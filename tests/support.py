"""Shared fixtures: an in-memory database wired into the FastAPI app."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import database
from main import app
from models import Base


def use_memory_database():
    """Point the app's get_db at a fresh in-memory SQLite; returns the session factory."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def _get_db():
        session = factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[database.get_db] = _get_db
    return factory


def reset_app():
    app.dependency_overrides.clear()
