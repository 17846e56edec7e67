import re

import pytest

from core.exceptions import (
    CodeGenerationError,
    InviteCodeDisabledError,
    InviteCodeExhaustedError,
    NotFoundError,
    RedemptionError,
    ValidationError,
)
from models.invite_code import InviteCodeModel
from utils.converters import invite_code_to_info
from utils.invite_code_generator import InviteCodeGenerator
from utils.invite_code_manager import InviteCodeManager, ensure_redeemable


def test_create_with_defaults(invite_codes, creator):
    model = invite_codes.create_invite_code(creator.user_id, description="friends")

    assert re.match(r"^[0-9a-f]{32}$", model.code)
    assert model.status == "active"
    assert model.used_count == 0
    assert model.max_uses == 10
    assert model.created_by_id == creator.user_id
    assert model.description == "friends"
    assert model.deleted_at is None
    assert model.created_at == model.updated_at


def test_create_stores_metadata(invite_codes, creator):
    model = invite_codes.create_invite_code(creator.user_id, metadata='{"campaign": "beta"}')
    assert invite_codes.get_by_id(model.id).extra_metadata == '{"campaign": "beta"}'


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_uses": 0},
        {"max_uses": 101},
        {"max_uses": -5},
        {"max_uses": 5, "description": "x" * 256},
    ],
)
def test_create_rejects_out_of_range_params(invite_codes, creator, db, kwargs):
    with pytest.raises(ValidationError):
        invite_codes.create_invite_code(creator.user_id, **kwargs)
    assert db.query(InviteCodeModel).count() == 0


def test_create_accepts_bounds(invite_codes, creator):
    assert invite_codes.create_invite_code(creator.user_id, max_uses=1).max_uses == 1
    assert invite_codes.create_invite_code(creator.user_id, max_uses=100).max_uses == 100
    model = invite_codes.create_invite_code(creator.user_id, description="x" * 255)
    assert len(model.description) == 255


def test_create_fails_when_generation_exhausted(db, creator):
    manager = InviteCodeManager(db)
    manager.generator = InviteCodeGenerator(lambda code: True, max_attempts=2)
    with pytest.raises(CodeGenerationError):
        manager.create_invite_code(creator.user_id)
    assert db.query(InviteCodeModel).count() == 0


def test_get_by_code_hides_deleted(invite_codes, creator):
    model = invite_codes.create_invite_code(creator.user_id)
    invite_codes.soft_delete(model.id)

    with pytest.raises(NotFoundError):
        invite_codes.get_by_code(model.code)
    assert invite_codes.get_by_code(model.code, include_deleted=True).id == model.id


def test_get_by_id_unknown(invite_codes):
    with pytest.raises(NotFoundError):
        invite_codes.get_by_id(12345)


def test_validate_does_not_change_the_code(invite_codes, creator):
    model = invite_codes.create_invite_code(creator.user_id, max_uses=2)
    for _ in range(5):
        assert invite_codes.validate_invite_code(model.code).id == model.id

    fresh = invite_codes.get_by_id(model.id)
    assert fresh.used_count == 0
    assert fresh.status == "active"


def test_validate_unknown_code(invite_codes):
    with pytest.raises(NotFoundError):
        invite_codes.validate_invite_code("0" * 32)


def test_disable_then_validate(invite_codes, creator):
    model = invite_codes.create_invite_code(creator.user_id)
    invite_codes.update_status(model.id, "disabled")

    with pytest.raises(InviteCodeDisabledError) as exc_info:
        invite_codes.validate_invite_code(model.code)
    assert exc_info.value.reason == "disabled"
    assert invite_codes.get_by_id(model.id).used_count == 0


def test_reenable_after_disable(invite_codes, creator):
    model = invite_codes.create_invite_code(creator.user_id)
    invite_codes.update_status(model.id, "disabled")
    invite_codes.update_status(model.id, "active")
    assert invite_codes.validate_invite_code(model.code).status == "active"


def test_soft_delete_then_validate(invite_codes, creator):
    model = invite_codes.create_invite_code(creator.user_id)
    invite_codes.soft_delete(model.id)

    with pytest.raises(NotFoundError):
        invite_codes.validate_invite_code(model.code)
    with pytest.raises(NotFoundError):
        invite_codes.soft_delete(model.id)


@pytest.mark.parametrize("status", ["used", "deleted", ""])
def test_update_status_rejects_unsettable_status(invite_codes, creator, status):
    model = invite_codes.create_invite_code(creator.user_id)
    with pytest.raises(ValidationError):
        invite_codes.update_status(model.id, status)
    assert invite_codes.get_by_id(model.id).status == "active"


def test_update_status_refuses_exhausted_code(invite_codes, redemptions, creator, make_user):
    model = invite_codes.create_invite_code(creator.user_id, max_uses=1)
    redemptions.redeem(model.code, make_user().user_id)

    with pytest.raises(ValidationError):
        invite_codes.update_status(model.id, "active")
    with pytest.raises(ValidationError):
        invite_codes.update_status(model.id, "disabled")

    fresh = invite_codes.get_by_id(model.id)
    assert fresh.status == "used"
    with pytest.raises(InviteCodeExhaustedError):
        invite_codes.validate_invite_code(model.code)


def test_list_by_creator_paginates_newest_first(invite_codes, creator, make_user):
    other = make_user()
    created = [invite_codes.create_invite_code(creator.user_id) for _ in range(5)]
    invite_codes.create_invite_code(other.user_id)
    invite_codes.soft_delete(created[0].id)

    items, total = invite_codes.list_by_creator(creator.user_id, page=1, page_size=3)
    assert total == 4
    assert [m.id for m in items] == [created[4].id, created[3].id, created[2].id]

    items, total = invite_codes.list_by_creator(creator.user_id, page=2, page_size=3)
    assert [m.id for m in items] == [created[1].id]


def test_list_all(invite_codes, creator, make_user):
    invite_codes.create_invite_code(creator.user_id)
    invite_codes.create_invite_code(make_user().user_id)
    items, total = invite_codes.list_all()
    assert total == 2
    assert len(items) == 2


def test_stats(invite_codes, redemptions, creator, make_user):
    active = invite_codes.create_invite_code(creator.user_id, max_uses=3)
    used = invite_codes.create_invite_code(creator.user_id, max_uses=1)
    disabled = invite_codes.create_invite_code(creator.user_id)
    deleted = invite_codes.create_invite_code(creator.user_id)

    redemptions.redeem(active.code, make_user().user_id)
    redemptions.redeem(used.code, make_user().user_id)
    invite_codes.update_status(disabled.id, "disabled")
    redemptions.redeem(deleted.code, make_user().user_id)
    invite_codes.soft_delete(deleted.id)

    assert invite_codes.stats() == {
        "total_codes": 3,
        "active_codes": 1,
        "used_codes": 1,
        "disabled_codes": 1,
        "total_redemptions": 2,
    }


def test_stats_empty(invite_codes):
    assert invite_codes.stats() == {
        "total_codes": 0,
        "active_codes": 0,
        "used_codes": 0,
        "disabled_codes": 0,
        "total_redemptions": 0,
    }


def test_get_with_relations(invite_codes, redemptions, creator, make_user):
    model = invite_codes.create_invite_code(creator.user_id, max_uses=3)
    first, second = make_user(), make_user()
    redemptions.redeem(model.code, first.user_id)
    redemptions.redeem(model.code, second.user_id)

    info = invite_codes.get_with_relations(model.id)

    assert info.created_by.user_id == creator.user_id
    assert info.used_count == 2
    assert [u.used_by.user_id for u in info.usage_records] == [
        second.user_id,
        first.user_id,
    ]


def test_update_status_unknown_code_releases_transaction(invite_codes, db):
    with pytest.raises(NotFoundError):
        invite_codes.update_status(4242, "disabled")
    assert not db.in_transaction()


def test_metadata_is_returned_in_views(invite_codes, redemptions, creator, make_user):
    model = invite_codes.create_invite_code(creator.user_id, metadata='{"campaign": "beta"}')
    redemptions.redeem(model.code, make_user().user_id)

    assert invite_code_to_info(model).metadata == '{"campaign": "beta"}'
    assert invite_codes.get_with_relations(model.id).metadata == '{"campaign": "beta"}'


@pytest.mark.parametrize(
    "status, used_count, expected",
    [
        ("active", 0, True),
        ("active", 2, False),
        ("disabled", 0, False),
        ("used", 1, False),
    ],
)
def test_redeemable_check_agrees_with_model(invite_codes, creator, db, status, used_count,
                                            expected):
    model = invite_codes.create_invite_code(creator.user_id, max_uses=2)
    model.status = status
    model.used_count = used_count
    db.commit()

    assert model.can_be_used is expected
    if expected:
        assert ensure_redeemable(model, model.code) is model
    else:
        with pytest.raises(RedemptionError):
            ensure_redeemable(model, model.code)
