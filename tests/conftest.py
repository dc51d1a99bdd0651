import os

os.environ["ENV"] = "test"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import app.models  # noqa: E402,F401
from app.db import Base, build_engine, db_manager, get_db  # noqa: E402

pytest_plugins = [
    "tests.fixtures.instance_fixtures",
    "tests.fixtures.message_fixtures",
]


@pytest.fixture(scope="session")
def engine():
    """One in-memory SQLite database shared by the whole session."""
    engine = build_engine("sqlite:///:memory:")
    db_manager.open(engine=engine)
    yield engine
    db_manager.close()


@pytest.fixture(scope="function")
def db(engine):
    """A session on freshly created tables; everything is dropped afterwards."""
    Base.metadata.create_all(engine)
    session = db_manager.session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def client(db):
    """Test client whose requests share the test session."""
    from app.main import create_app

    app = create_app(testing=True)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
