import pytest
from sqlalchemy.exc import OperationalError

from core.exceptions import (
    AuthenticationError,
    InviteCodeDisabledError,
    InviteCodeExhaustedError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from models.invite_code_usage import InviteCodeUsageModel
from models.user import UserModel
from utils.user_manager import UserAlreadyExistsError


def test_register_without_code(make_auth_manager, user_manager, token_manager):
    auth = make_auth_manager()
    user, token = auth.register("Grace.Hopper@Example.com", "secret123")

    assert user.email == "grace.hopper@example.com"
    assert user.username == "gracehopper"
    assert user.display_name == "Grace.hopper"
    assert user.role == "user"
    assert user.invite_code_id is None
    assert token_manager.verify(token.access_token) == user.user_id
    assert user_manager.get_user_by_id(user.user_id) is not None


@pytest.mark.parametrize("mode", ["lenient", "atomic"])
def test_register_with_code(mode, make_auth_manager, invite_codes, usages, creator):
    auth = make_auth_manager(mode)
    code = invite_codes.create_invite_code(creator.user_id, max_uses=5)

    user, _ = auth.register("heidi@example.com", "secret123", invite_code=code.code,
                            ip_address="192.0.2.1", user_agent="pytest")

    fresh = invite_codes.get_by_id(code.id)
    assert fresh.used_count == 1
    assert user.invite_code_id == code.id
    assert user.invite_code_used == code.code
    [usage], total = usages.list_by_code(code.id)
    assert total == 1
    assert usage.used_by_id == user.user_id
    assert usage.ip_address == "192.0.2.1"


@pytest.mark.parametrize("mode", ["lenient", "atomic"])
def test_register_with_exhausted_code(mode, make_auth_manager, invite_codes, redemptions,
                                      creator, db):
    auth = make_auth_manager(mode)
    code = invite_codes.create_invite_code(creator.user_id, max_uses=1)
    redemptions.redeem(code.code, creator.user_id)

    with pytest.raises(InviteCodeExhaustedError):
        auth.register("ivan@example.com", "secret123", invite_code=code.code)

    assert db.query(UserModel).filter(UserModel.email == "ivan@example.com").count() == 0
    assert invite_codes.get_by_id(code.id).used_count == 1


@pytest.mark.parametrize("mode", ["lenient", "atomic"])
def test_register_with_unknown_or_disabled_code(mode, make_auth_manager, invite_codes,
                                                creator, db):
    auth = make_auth_manager(mode)
    with pytest.raises(NotFoundError):
        auth.register("judy@example.com", "secret123", invite_code="0" * 32)

    code = invite_codes.create_invite_code(creator.user_id)
    invite_codes.update_status(code.id, "disabled")
    with pytest.raises(InviteCodeDisabledError):
        auth.register("judy@example.com", "secret123", invite_code=code.code)

    assert db.query(UserModel).filter(UserModel.email == "judy@example.com").count() == 0


def test_lenient_keeps_account_when_redemption_fails(make_auth_manager, invite_codes,
                                                     redemptions, creator, monkeypatch,
                                                     caplog):
    auth = make_auth_manager("lenient")
    code = invite_codes.create_invite_code(creator.user_id, max_uses=1)

    def lost_race(*args, **kwargs):
        raise InviteCodeExhaustedError(code.code)

    monkeypatch.setattr(redemptions, "redeem", lost_race)

    with caplog.at_level("ERROR", logger="utils.auth_manager"):
        user, token = auth.register("ken@example.com", "secret123", invite_code=code.code)

    assert token.access_token
    assert user.invite_code_used == code.code
    assert invite_codes.get_by_id(code.id).used_count == 0
    assert "Failed to use invite code during registration" in caplog.text


def test_atomic_rolls_back_redemption_when_user_insert_fails(make_auth_manager,
                                                             invite_codes, user_manager,
                                                             creator, db, monkeypatch):
    auth = make_auth_manager("atomic")
    code = invite_codes.create_invite_code(creator.user_id, max_uses=1)

    def broken_create(**kwargs):
        raise PersistenceError("failed to create user")

    monkeypatch.setattr(user_manager, "create_user", broken_create)

    with pytest.raises(PersistenceError):
        auth.register("leo@example.com", "secret123", invite_code=code.code)

    fresh = invite_codes.get_by_id(code.id)
    assert fresh.used_count == 0
    assert fresh.status == "active"
    assert db.query(InviteCodeUsageModel).count() == 0


def test_register_duplicate_email(make_auth_manager):
    auth = make_auth_manager()
    auth.register("mia@example.com", "secret123")
    with pytest.raises(UserAlreadyExistsError):
        auth.register("MIA@example.com", "another123")


def test_register_with_same_local_part_gets_new_username(make_auth_manager):
    auth = make_auth_manager()
    first, _ = auth.register("nora@example.com", "secret123")
    second, _ = auth.register("nora@example.org", "secret123")
    assert first.username == "nora"
    assert second.username != "nora"


def test_register_admin(make_auth_manager):
    auth = make_auth_manager()
    user, _ = auth.register("root@example.com", "secret123", admin_token="test-admin-token")
    assert user.role == "admin"

    with pytest.raises(PermissionDeniedError):
        auth.register("mallory@example.com", "secret123", admin_token="guess")

    unconfigured = make_auth_manager(admin_token=None)
    with pytest.raises(PermissionDeniedError):
        unconfigured.register("oscar@example.com", "secret123", admin_token="anything")


def test_unknown_mode_rejected(make_auth_manager):
    with pytest.raises(ValueError):
        make_auth_manager("eventually")


def test_login(make_auth_manager, token_manager):
    auth = make_auth_manager()
    registered, _ = auth.register("peggy@example.com", "secret123")

    user, token = auth.login("Peggy@Example.com", "secret123")
    assert user.user_id == registered.user_id
    assert token_manager.verify(token.access_token) == registered.user_id

    with pytest.raises(AuthenticationError, match="invalid email or password"):
        auth.login("peggy@example.com", "wrong")
    with pytest.raises(AuthenticationError, match="invalid email or password"):
        auth.login("nobody@example.com", "secret123")


def test_login_rejects_inactive_account(make_auth_manager, user_manager):
    auth = make_auth_manager()
    user, _ = auth.register("quinn@example.com", "secret123")
    user_manager.update_user(user.user_id, status="banned")

    with pytest.raises(AuthenticationError, match="account is banned"):
        auth.login("quinn@example.com", "secret123")


def test_authenticate_and_refresh(make_auth_manager):
    auth = make_auth_manager()
    user, token = auth.register("rita@example.com", "secret123")

    assert auth.authenticate_token(token.access_token).user_id == user.user_id
    refreshed_user, refreshed = auth.refresh_token(token.access_token)
    assert refreshed_user.user_id == user.user_id
    assert refreshed.access_token


def test_change_password(make_auth_manager):
    auth = make_auth_manager()
    user, _ = auth.register("sam@example.com", "secret123")

    with pytest.raises(AuthenticationError):
        auth.change_password(user.user_id, "wrong", "newsecret")

    auth.change_password(user.user_id, "secret123", "newsecret")
    auth.login("sam@example.com", "newsecret")
    with pytest.raises(AuthenticationError):
        auth.login("sam@example.com", "secret123")


def test_change_password_requires_local_account(make_auth_manager, user_manager, db):
    auth = make_auth_manager()
    user = user_manager.create_user(email="tina@example.com", username="tina")
    model = db.get(UserModel, user.user_id)
    model.provider = "github"
    db.commit()

    with pytest.raises(ValidationError):
        auth.change_password(user.user_id, "x", "y")


@pytest.mark.parametrize("with_code", [False, True])
def test_register_store_failure_is_wrapped(with_code, make_auth_manager, invite_codes,
                                           creator, db, monkeypatch):
    auth = make_auth_manager("lenient")
    code = invite_codes.create_invite_code(creator.user_id)

    def locked_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", locked_commit)

    with pytest.raises(PersistenceError):
        auth.register(
            "quentin@example.com", "secret123", invite_code=code.code if with_code else None
        )

    monkeypatch.undo()
    assert db.query(UserModel).filter(UserModel.email == "quentin@example.com").count() == 0
    assert invite_codes.get_by_id(code.id).used_count == 0
