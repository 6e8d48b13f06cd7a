"""
Shared test fixtures.

Sets up an isolated SQLite database so tests never touch the
real one. Tables are created before and dropped after every test.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rental_ledger.main import app
from rental_ledger.models.base import Base, enable_sqlite_savepoints, get_db
from rental_ledger.services.chart_service import ChartService
from rental_ledger.services.directory import InMemoryDirectory, get_directory
from rental_ledger.services.id_issuer import SequenceIssuer
from rental_ledger.services.posting_service import PostingService


# SQLite keeps the suite free of database infrastructure.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
enable_sqlite_savepoints(engine)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop them after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def chart(db_session):
    """The default rental chart of accounts, committed."""
    service = ChartService(db_session)
    service.seed_default_chart()
    db_session.commit()
    return service


@pytest.fixture
def posting(db_session, chart):
    """A posting service over the default chart with predictable ids."""
    return PostingService(db_session, id_issuer=SequenceIssuer())


@pytest.fixture
def directory():
    return InMemoryDirectory()


@pytest.fixture
def client(db_session, directory):
    """
    Provide a test client with the test database.

    get_db is overridden so the app uses the test session, and
    get_directory so tests control what names resolve.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_directory] = lambda: directory
    yield TestClient(app)
    app.dependency_overrides.clear()
