# tests/conftest.py

import json
from pathlib import Path
from typing import Callable, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from taskhub.auth.services import MailService
from taskhub.backend import Backend
from taskhub.config import Settings
from taskhub.main import create_app
from taskhub.stores import Stores

PASSWORD = "correct-horse"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """In-memory database and a per-test storage directory; no .env lookup."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        storage_dir=str(tmp_path / "storage"),
        secret_key="taskhub-test-secret-key-long-enough-for-hs256",
        mail_api_base_url="https://mail.example.com",
        log_level="WARNING",
    )


@pytest.fixture()
def sent_mail() -> List[dict]:
    return []


@pytest.fixture()
def mail_service(settings: Settings, sent_mail: List[dict]) -> MailService:
    def handler(request: httpx.Request) -> httpx.Response:
        sent_mail.append({"url": str(request.url), **json.loads(request.content)})
        return httpx.Response(202, json={"status": "queued"})

    return MailService(settings, transport=httpx.MockTransport(handler))


@pytest.fixture()
def backend(settings: Settings, mail_service: MailService) -> Backend:
    return Backend(settings, mail_service=mail_service)


@pytest.fixture()
def db(backend: Backend):
    with backend.session() as session:
        yield session


@pytest.fixture()
def make_stores(backend: Backend):
    """Factory for independent clients sharing one backend."""
    created: List[Stores] = []

    def factory(email: Optional[str] = None, display_name: Optional[str] = None) -> Stores:
        stores = Stores(backend)
        created.append(stores)
        if email:
            stores.session.register(email, PASSWORD, display_name or email.split("@")[0].title())
        return stores

    yield factory
    for stores in created:
        stores.dispose()


@pytest.fixture()
def alice(make_stores: Callable[..., Stores]) -> Stores:
    return make_stores("alice@example.com", "Alice")


@pytest.fixture()
def bob(make_stores: Callable[..., Stores]) -> Stores:
    return make_stores("bob@example.com", "Bob")


@pytest.fixture()
def carol(make_stores: Callable[..., Stores]) -> Stores:
    return make_stores("carol@example.com", "Carol")


@pytest.fixture()
def client(settings: Settings, backend: Backend):
    with TestClient(create_app(settings, backend)) as test_client:
        yield test_client


@pytest.fixture()
def register(client: TestClient):
    """Register through the API and return (user_id, auth headers)."""
    def _register(email: str, display_name: str = "User"):
        response = client.post(
            "/auth/register",
            json={"email": email, "password": PASSWORD, "display_name": display_name},
        )
        assert response.status_code == 201, response.text
        token = response.json()
        return token["user_id"], {"Authorization": f"Bearer {token['access_token']}"}

    return _register
