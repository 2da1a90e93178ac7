import os
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("LOG_JSON", "false")

from locallore import auth, models  # noqa: E402
from locallore.api import app  # noqa: E402
from locallore.database import Base, SessionLocal, engine, get_db  # noqa: E402
from locallore.ml_gateway import MLApiClient  # noqa: E402


def _ml_unavailable(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, json={"detail": "offline"})


@pytest.fixture(scope="session", autouse=True)
def _ensure_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
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
        # No ML service in tests unless a test installs its own handler.
        app.state.ml_client = MLApiClient("http://ml.test", transport=httpx.MockTransport(_ml_unavailable))
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def helpers(client, db_session):
    def make_user(
        email: str = "student@campus.edu",
        display_name: str = "Student",
        preferences: list[str] | None = None,
    ) -> models.User:
        user = models.User(
            email=email,
            display_name=display_name,
            graduation_year=2027,
            preferences=list(preferences or []),
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    def make_event(
        owner: models.User,
        title: str = "Study Group",
        category: str = "Academic",
        view_count: int = 0,
        created_at: datetime | None = None,
        start_in: timedelta = timedelta(days=1),
        duration: timedelta = timedelta(hours=2),
        latitude: float = 40.1020,
        longitude: float = -88.2272,
    ) -> models.Event:
        now = datetime.now(timezone.utc)
        event = models.Event(
            user_id=owner.id,
            title=title,
            description=f"{title} description",
            latitude=latitude,
            longitude=longitude,
            location="Main Quad",
            start_time=now + start_in,
            end_time=now + start_in + duration,
            category=category,
            tags=[category],
            view_count=view_count,
            created_at=created_at or now,
        )
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)
        return event

    def token_for(user: models.User) -> str:
        return auth.create_access_token({"sub": user.id, "email": user.email})

    def auth_header(user: models.User) -> dict:
        return {"Authorization": f"Bearer {token_for(user)}"}

    def future_time(days: int = 1, hours: int = 0) -> str:
        return (datetime.now(timezone.utc) + timedelta(days=days, hours=hours)).isoformat()

    def install_ml(handler, timeout_seconds: float = 2.0) -> MLApiClient:
        ml_client = MLApiClient("http://ml.test", timeout_seconds=timeout_seconds, transport=httpx.MockTransport(handler))
        app.state.ml_client = ml_client
        return ml_client

    def new_id() -> str:
        return str(uuid.uuid4())

    return {
        "client": client,
        "db": db_session,
        "make_user": make_user,
        "make_event": make_event,
        "token_for": token_for,
        "auth_header": auth_header,
        "future_time": future_time,
        "install_ml": install_ml,
        "new_id": new_id,
    }
