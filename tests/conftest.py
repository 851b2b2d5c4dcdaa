import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("AI_API_KEY", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from review360.db.base import Base  # noqa: E402
from review360.db.session import get_db, make_engine  # noqa: E402
from review360.main import app  # noqa: E402
from review360.services.ai import get_ai_collaborator  # noqa: E402

from tests.fakes import FakeCollaborator  # noqa: E402

engine = make_engine("sqlite://", poolclass=StaticPool)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session():
    """Fresh schema per test on one shared in-memory connection."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def fake_ai():
    return FakeCollaborator()


@pytest.fixture(autouse=True)
def override_dependencies(db_session, fake_ai):
    def _get_db_override():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_ai_collaborator] = lambda: fake_ai
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client():
    return TestClient(app)
