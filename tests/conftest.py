"""Shared fixtures: key pairs, settings and a fake Coordinator HTTP layer."""

from __future__ import annotations

import json
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest
import requests

from coursebridge.core.config import BridgeSettings
from coursebridge.coordinator.client import CoordinatorClient
from coursebridge.signing.keys import KeyStore, reset_default_key_store
from coursebridge.signing.signer import generate_keypair

HUB_URL = "https://coordinator.test/"


def make_response(
    status: int = 200,
    body: Any = None,
    headers: Optional[dict[str, str]] = None,
    raw: Optional[bytes] = None,
) -> requests.Response:
    """Build a real requests.Response without touching the network."""
    resp = requests.Response()
    resp.status_code = status
    if raw is not None:
        resp._content = raw
    else:
        resp._content = json.dumps({} if body is None else body).encode("utf-8")
    resp.encoding = "utf-8"
    resp.headers.update(headers or {})
    return resp


@pytest.fixture(scope="session")
def service_keypair() -> tuple[str, str]:
    """(private, public) PEM pair for course-builder-service."""
    return generate_keypair()


@pytest.fixture(scope="session")
def hub_keypair() -> tuple[str, str]:
    """(private, public) PEM pair for the Coordinator."""
    return generate_keypair()


@pytest.fixture
def settings() -> BridgeSettings:
    return BridgeSettings(hub_url=HUB_URL, timeout_seconds=5)


@pytest.fixture
def key_store(service_keypair, hub_keypair) -> KeyStore:
    return KeyStore(
        service_name="course-builder-service",
        private_key_pem=service_keypair[0],
        public_keys={"coordinator": hub_keypair[1]},
    )


@pytest.fixture
def session() -> MagicMock:
    """Stand-in for requests.Session; set session.request.return_value per test."""
    fake = MagicMock(spec=requests.Session)
    fake.request.return_value = make_response(200, {"success": True, "data": {}})
    return fake


@pytest.fixture
def client(settings, key_store, session) -> CoordinatorClient:
    return CoordinatorClient(settings, key_store, session=session)


@pytest.fixture(autouse=True)
def _fresh_default_key_store():
    reset_default_key_store()
    yield
    reset_default_key_store()
