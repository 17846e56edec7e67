"""Database connection and session management.

This module handles the database connection using SQLAlchemy. SQLite is the
default backend; any SQLAlchemy URL can be supplied through DATABASE_URL.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from config import DATABASE_URL, DATA_DIR
from models.base import Base
# Import models to ensure they are registered with Base.metadata
import models  # noqa: F401


def create_db_engine(url: str):
    """Create an engine with the connect args the backend needs."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, connect_args=connect_args)


if DATABASE_URL.startswith(f"sqlite:///{DATA_DIR}"):
    # Ensure data directory exists
    DATA_DIR.mkdir(parents=True, exist_ok=True)

engine = create_db_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)


# Initialize DB (create tables if not exist)
init_db()


def get_db():
    """Dependency for getting a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
