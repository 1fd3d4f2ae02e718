"""
Shared fixtures.

Every test gets a fresh in-memory entity store seeded with a student, a
mentor (alumnus), an admin and an unrelated second student.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from database import EntityStore
from integrations import LLMClient, UploadClient
from main import create_app
from schemas import User


@pytest.fixture
def store() -> EntityStore:
    return EntityStore.memory()


def _create_user(store: EntityStore, **fields):
    data = User(**fields).model_dump()
    return store.collection(User).create(data)


@pytest.fixture
def student(store):
    return _create_user(
        store,
        email="asha@iiita.ac.in",
        full_name="Asha Verma",
        branch="IT",
        year="3rd Year",
        skills=["Python", "SQL"],
    )


@pytest.fixture
def mentor(store):
    return _create_user(
        store,
        email="bala@alumni.iiita.ac.in",
        full_name="Bala Krishnan",
        branch="CSE",
        year="Alumni",
        current_company="Acme",
        position="Senior Engineer",
        expertise_domains=["Backend", "Career Guidance"],
    )


@pytest.fixture
def admin(store):
    return _create_user(store, email="admin@iiita.ac.in", full_name="Portal Admin", role="admin")


@pytest.fixture
def outsider(store):
    return _create_user(store, email="chirag@iiita.ac.in", full_name="Chirag Jain", year="2nd Year")


def upload_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"file_url": "https://files.test/uploads/resume.pdf"})


def llm_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"response": "Practice DSA daily and build projects."})


@pytest.fixture
def uploads() -> UploadClient:
    return UploadClient(base_url="https://files.test/upload", transport=httpx.MockTransport(upload_handler))


@pytest.fixture
def llm() -> LLMClient:
    return LLMClient(url="https://llm.test/invoke", transport=httpx.MockTransport(llm_handler))


@pytest.fixture
def app(store, uploads, llm):
    return create_app(store=store, uploads=uploads, llm=llm)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def login(client):
    """Log a user in and return the Authorization header for them."""

    def _login(user):
        response = client.post("/auth/login", json={"email": user["email"]})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login
