"""
Pytest configuration and fixtures for reconciler tests.
"""

import os
from datetime import datetime, timedelta
from typing import Generator

# Keep the app's own engine off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from reconciler.core.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from reconciler.main import app  # noqa: E402
from reconciler.models import EntityKind, ImportBook, ImportSession, ImportUser  # noqa: E402
from reconciler.schemas.imports import ImportCreate, ImportResponse  # noqa: E402
from reconciler.schemas.mapping import BookMappingCreate, UserMappingCreate  # noqa: E402
from reconciler.schemas.session import SessionCreate  # noqa: E402
from reconciler.services import import_service  # noqa: E402
from reconciler.services.mapping_registry import MappingRegistry  # noqa: E402
from reconciler.services.session_service import create_session  # noqa: E402

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
event.listen(engine, "connect", enable_sqlite_foreign_keys)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def test_import(db: Session) -> ImportResponse:
    """Create an empty import job."""
    return import_service.create_import(
        db, ImportCreate(id="imp-1", name="Home server backup", backup_path="/backups/abs.tar")
    )


def add_user(db: Session, import_id: str, external_id: str, username: str = "", **fields):
    return MappingRegistry(db, EntityKind.USER).register(
        import_id,
        UserMappingCreate(external_id=external_id, username=username or external_id, **fields),
    )


def add_book(db: Session, import_id: str, external_id: str, title: str = "", **fields):
    return MappingRegistry(db, EntityKind.BOOK).register(
        import_id, BookMappingCreate(external_id=external_id, title=title or external_id, **fields)
    )


def add_session(
    db: Session,
    import_id: str,
    session_id: str,
    user_id: str,
    media_id: str,
    minutes: int = 0,
    **fields,
):
    return create_session(
        db,
        import_id,
        SessionCreate(
            external_session_id=session_id,
            external_user_id=user_id,
            external_media_id=media_id,
            start_time=BASE_TIME + timedelta(minutes=minutes),
            duration_ms=1_800_000,
            **fields,
        ),
    )


@pytest.fixture
def populated_import(db: Session, test_import: ImportResponse) -> ImportResponse:
    """
    An import with two users, two books and four sessions, nothing mapped.

    s1 u1/b1, s2 u1/b2, s3 u2/b1, s4 u2/b2.
    """
    add_user(db, test_import.id, "u1", username="alice", email="alice@example.com")
    add_user(db, test_import.id, "u2", username="bob", email="bob@example.com")
    add_book(db, test_import.id, "b1", title="The Way of Kings", author="Brandon Sanderson")
    add_book(db, test_import.id, "b2", title="Dune", author="Frank Herbert")

    add_session(db, test_import.id, "s1", "u1", "b1", minutes=0)
    add_session(db, test_import.id, "s2", "u1", "b2", minutes=10)
    add_session(db, test_import.id, "s3", "u2", "b1", minutes=20)
    add_session(db, test_import.id, "s4", "u2", "b2", minutes=30)
    return test_import


def session_statuses(db: Session, import_id: str) -> dict[str, str]:
    """Map of external session id to stored status, read straight from the table."""
    db.expire_all()
    rows = db.query(ImportSession).filter(ImportSession.import_id == import_id).all()
    return {row.external_session_id: row.status for row in rows}


def mapping_row_count(db: Session, import_id: str) -> int:
    users = db.query(ImportUser).filter(ImportUser.import_id == import_id).count()
    books = db.query(ImportBook).filter(ImportBook.import_id == import_id).count()
    return users + books
