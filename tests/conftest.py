"""Shared fixtures.

Environment overrides must be in place before the application modules are
imported, since ``config`` reads them at import time.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ADMIN_TOKEN", "test-admin-token")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import create_db_engine
from models.base import Base
from utils.auth_manager import AuthManager
from utils.invite_code_manager import InviteCodeManager
from utils.invite_code_usage_manager import InviteCodeUsageManager
from utils.redemption_manager import RedemptionManager
from utils.token_manager import TokenManager
from utils.user_manager import UserManager

TEST_BCRYPT_ROUNDS = 4


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite database, safe to use from threads."""
    engine = create_db_engine(f"sqlite:///{tmp_path}/race.db")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def user_manager(db):
    return UserManager(db, bcrypt_rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def invite_codes(db):
    return InviteCodeManager(db)


@pytest.fixture
def usages(db):
    return InviteCodeUsageManager(db)


@pytest.fixture
def redemptions(db, usages):
    return RedemptionManager(db, usage_manager=usages)


@pytest.fixture
def token_manager():
    return TokenManager(secret_key="test-secret-key", expire_hours=1)


@pytest.fixture
def make_auth_manager(db, user_manager, invite_codes, redemptions, token_manager):
    def _make(mode="lenient", admin_token="test-admin-token"):
        return AuthManager(
            db,
            user_manager=user_manager,
            invite_code_manager=invite_codes,
            redemption_manager=redemptions,
            token_manager=token_manager,
            redemption_mode=mode,
            admin_token=admin_token,
        )

    return _make


@pytest.fixture
def make_user(user_manager):
    counter = {"n": 0}

    def _make(email=None, role="user"):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        return user_manager.create_user(
            email=email,
            username=email.split("@")[0],
            password="secret123",
            role=role,
        )

    return _make


@pytest.fixture
def creator(make_user):
    return make_user("creator@example.com")
