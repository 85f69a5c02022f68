import os
import tempfile

os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{os.path.join(tempfile.mkdtemp(prefix='flashcards-'), 'test.db')}"
)
os.environ.setdefault("JWT_COOKIE_CSRF_PROTECT", "false")
os.environ.setdefault("STUDY_ADVANCE_DELAY_SECONDS", "0")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import models  # noqa: E402,F401
from core.database import Base, SessionLocal, engine  # noqa: E402
from core.invalidation import ViewInvalidator  # noqa: E402
from main import app  # noqa: E402
from routers.auth import get_caller_id  # noqa: E402
from routers.study import get_study_registry  # noqa: E402
from services.flashcard_service import FlashcardService  # noqa: E402
from services.study_session import StudySessionRegistry  # noqa: E402

OWNER = "user-1"
STRANGER = "user-2"


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def views():
    return ViewInvalidator()


@pytest.fixture
def service(db, views):
    return FlashcardService(db, views)


@pytest.fixture
def registry():
    return StudySessionRegistry(ttl_seconds=60, advance_delay=0)


class Caller:
    def __init__(self, user_id: str | None = OWNER):
        self.id = user_id


@pytest.fixture
def caller():
    return Caller()


@pytest.fixture
def client(caller, registry):
    async def _caller_id():
        return caller.id

    app.dependency_overrides[get_caller_id] = _caller_id
    app.dependency_overrides[get_study_registry] = lambda: registry
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_client():
    yield TestClient(app)


@pytest.fixture
def deck(service):
    return service.create_deck(OWNER, {"name": "Spanish", "description": "Basics"}).data


@pytest.fixture
def cards(service, deck):
    created = []
    for front, back in [("hola", "hello"), ("adios", "goodbye"), ("gato", "cat")]:
        created.append(service.create_card(OWNER, {"deck_id": deck.id, "front": front, "back": back}).data)
    return created
