import json
import os
import tempfile
import time

import pytest

# Settings are read at import time, point them at a throwaway SQLite database
_TMP_DIR = tempfile.mkdtemp(prefix="bookhub-tests-")
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'bookhub.db')}"
os.environ["JWT_SECRET"] = "test-secret-key-for-the-bookhub-suite"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["IMAGE_RELEASE_ATTEMPTS"] = "2"
os.environ["IMAGE_RELEASE_BACKOFF_SECONDS"] = "0.01"

from fastapi.testclient import TestClient  # noqa: E402

from bookhub.core.database import SessionLocal, engine  # noqa: E402
from bookhub.core.deps import get_image_storage  # noqa: E402
from bookhub.core.security import hash_password  # noqa: E402
from bookhub.main import app  # noqa: E402
from bookhub.models import Base, User  # noqa: E402
from bookhub.services.image_storage import ImageStorage, UploadedImage  # noqa: E402


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeImageStorage(ImageStorage):
    def __init__(self, fail_destroy: bool = False, transient_failures: int = 0):
        self.fail_destroy = fail_destroy
        self.transient_failures = transient_failures
        self.destroy_times = []
        self.uploads = []
        self.destroyed = []
        self.destroy_calls = 0

    def upload(self, file_path, folder, format_hint=None, name_override=None):
        public_id = f"{folder}/cover-{len(self.uploads) + 1}"
        self.uploads.append(
            {
                "exists": os.path.exists(file_path),
                "folder": folder,
                "format_hint": format_hint,
                "name_override": name_override,
                "public_id": public_id,
            }
        )
        return UploadedImage(public_url=f"https://images.example.com/{public_id}.{format_hint}", public_id=public_id)

    def destroy(self, public_id):
        self.destroy_calls += 1
        self.destroy_times.append(time.monotonic())
        if self.fail_destroy or self.destroy_calls <= self.transient_failures:
            raise RuntimeError("image host unavailable")
        self.destroyed.append(public_id)


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def image_storage():
    return FakeImageStorage()


@pytest.fixture
def client(image_storage):
    app.dependency_overrides[get_image_storage] = lambda: image_storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db_session):
    """Insert a registrant directly, bypassing the HTTP layer."""
    def _make_user(name="owner", email=None):
        user = User(
            name=name,
            email=email or f"{name}@bookhub.io",
            hashed_password=hash_password("secret123", 4),
            role="admin",
        )
        db_session.add(user)
        db_session.flush()
        user.organization_id = user.id
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def register_and_login(client):
    """Register a user through the API and return its id, token and auth headers."""
    def _register_and_login(name="alice", email=None, password="secret123"):
        email = email or f"{name}@bookhub.io"
        r = client.post("/users", json={"name": name, "email": email, "password": password})
        assert r.status_code == 201, r.text
        user = r.json()["data"]
        r = client.post("/users/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        token = r.json()["data"]["token"]
        return {
            "user": user,
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _register_and_login


def book_payload(**overrides):
    payload = {
        "title": "The Silent Library",
        "genre": "Fiction",
        "description": "A quiet story about books and the people who keep them.",
        "author_name": "Maria Lopez",
        "selling_price": 19.99,
        "buying_price": 10.0,
        "quantity": 5,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_book(client):
    """Create a book through the API and return the response JSON."""
    def _create_book(headers, expected_status=201, **overrides):
        r = client.post(
            "/books",
            data={"data": json.dumps(book_payload(**overrides))},
            files={"image": ("cover.png", PNG_BYTES, "image/png")},
            headers=headers,
        )
        assert r.status_code == expected_status, r.text
        return r.json()

    return _create_book
