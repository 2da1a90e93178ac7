import os
from pathlib import Path

import httpx
import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import text


if os.environ.get("RUN_INTEGRATION_TESTS") != "1":
    pytest.skip(
        "Integration tests are disabled. Set RUN_INTEGRATION_TESTS=1 to enable.",
        allow_module_level=True,
    )

if not os.environ.get("DATABASE_URL"):
    pytest.skip("DATABASE_URL must be set for integration tests.", allow_module_level=True)

os.environ.setdefault("SECRET_KEY", "integration-test-secret")

from locallore import auth, models  # noqa: E402
from locallore.api import app  # noqa: E402
from locallore.database import Base, SessionLocal, engine, get_db  # noqa: E402
from locallore.ml_gateway import MLApiClient  # noqa: E402


def _run_migrations() -> None:
    backend_root = Path(__file__).resolve().parents[1]
    alembic_ini = backend_root / "alembic.ini"
    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(backend_root / "alembic"))
    command.upgrade(config, "head")


@pytest.fixture(scope="session", autouse=True)
def _ensure_schema():
    _run_migrations()
    yield
    Base.metadata.drop_all(bind=engine)
    with engine.begin() as connection:
        connection.execute(text("DROP TABLE IF EXISTS alembic_version"))


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        tables = [t.name for t in Base.metadata.sorted_tables]
        if tables:
            db.execute(text(f"TRUNCATE TABLE {', '.join(tables)} RESTART IDENTITY CASCADE"))
            db.commit()
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        app.state.ml_client = MLApiClient(
            "http://ml.test", transport=httpx.MockTransport(lambda request: httpx.Response(503))
        )
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def helpers(client, db_session):
    def make_user(email: str, display_name: str = "Integration Student") -> models.User:
        user = models.User(email=email, display_name=display_name, preferences=[])
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    def auth_header(user: models.User) -> dict:
        token = auth.create_access_token({"sub": user.id, "email": user.email})
        return {"Authorization": f"Bearer {token}"}

    return {
        "client": client,
        "db": db_session,
        "make_user": make_user,
        "auth_header": auth_header,
    }
