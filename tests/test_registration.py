"""Tests for service registration with the Coordinator."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from coursebridge.cli import main
from coursebridge.core.config import _ENV_OVERRIDES
from coursebridge.core.errors import RegistrationError
from coursebridge.coordinator.registration import (
    ServiceRegistration,
    find_service,
    register_service,
    upload_migration,
)

from tests.conftest import make_response

HUB = "https://coordinator.test"
MIGRATION = {"version": "1.0.0", "database": {"tables": []}}


def _registration() -> ServiceRegistration:
    return ServiceRegistration(
        service_name="course-builder-service",
        endpoint="https://cb.test/",
        description="Course Builder",
        metadata={"team": "Team Course Builder"},
    )


def _route(session, routes: dict[tuple[str, str], list]) -> list[tuple[str, str, dict]]:
    """Answer session.request from a (method, path) table; returns the call log."""
    calls: list[tuple[str, str, dict]] = []

    def fake_request(method, url, **kwargs):
        path = url[len(HUB):]
        calls.append((method, path, kwargs))
        return routes[(method, path)].pop(0)

    session.request.side_effect = fake_request
    return calls


def _services(*services) -> list:
    return [make_response(200, {"success": True, "services": list(services)})]


class TestRegistrationModel:
    def test_wire_uses_hub_field_names(self) -> None:
        wire = _registration().to_wire()
        assert wire["serviceName"] == "course-builder-service"
        assert wire["healthCheck"] == "/health"
        assert wire["endpoint"] == "https://cb.test"
        assert wire["metadata"] == {"team": "Team Course Builder"}


class TestRegisterService:
    def test_new_service_registered_and_migration_uploaded(self, client, session) -> None:
        calls = _route(session, {
            ("GET", "/services"): _services({"serviceName": "devlab", "serviceId": "d1"}),
            ("POST", "/register"): [make_response(201, {"serviceId": "svc-1"})],
            ("POST", "/register/svc-1/migration"): [make_response(200, {"success": True})],
        })
        service_id = asyncio.run(register_service(client, _registration(), MIGRATION))
        assert service_id == "svc-1"
        assert [(m, p) for m, p, _ in calls] == [
            ("GET", "/services"),
            ("POST", "/register"),
            ("POST", "/register/svc-1/migration"),
        ]
        assert calls[0][2]["params"] == {"includeAll": "true"}
        assert calls[1][2]["json"]["serviceName"] == "course-builder-service"
        assert calls[2][2]["json"] == {"migrationFile": MIGRATION}

    def test_existing_service_only_uploads_migration(self, client, session) -> None:
        calls = _route(session, {
            ("GET", "/services"): _services(
                {"serviceName": "course-builder-service", "id": "svc-9"},
            ),
            ("POST", "/register/svc-9/migration"): [make_response(200, {})],
        })
        assert asyncio.run(register_service(client, _registration(), MIGRATION)) == "svc-9"
        assert ("POST", "/register") not in [(m, p) for m, p, _ in calls]

    def test_conflict_resolves_to_existing_id(self, client, session) -> None:
        _route(session, {
            ("GET", "/services"): _services() + _services(
                {"serviceName": "course-builder-service", "serviceId": "svc-2"},
            ),
            ("POST", "/register"): [make_response(409, {"message": "Service already exists"})],
        })
        assert asyncio.run(register_service(client, _registration(), MIGRATION)) == "svc-2"

    def test_rejected_registration_raises(self, client, session) -> None:
        _route(session, {
            ("GET", "/services"): _services(),
            ("POST", "/register"): [make_response(400, {"message": "endpoint is required"})],
        })
        with pytest.raises(RegistrationError, match="endpoint is required"):
            asyncio.run(register_service(client, _registration()))

    def test_missing_service_id_raises(self, client, session) -> None:
        _route(session, {
            ("GET", "/services"): _services(),
            ("POST", "/register"): [make_response(201, {"success": True})],
        })
        with pytest.raises(RegistrationError, match="No serviceId"):
            asyncio.run(register_service(client, _registration()))

    def test_unlisted_when_services_call_fails(self, client, session) -> None:
        _route(session, {("GET", "/services"): [make_response(500, {})]})
        assert asyncio.run(find_service(client, "course-builder-service")) is None


class TestUploadMigration:
    def test_put_fallback(self, client, session) -> None:
        calls = _route(session, {
            ("POST", "/register/svc-1/migration"): [make_response(409, {"message": "exists"})],
            ("PUT", "/register/svc-1/migration"): [make_response(200, {"updated": True})],
        })
        assert asyncio.run(upload_migration(client, "svc-1", MIGRATION)) == {"updated": True}
        assert [m for m, _, _ in calls] == ["POST", "PUT"]

    def test_both_attempts_fail(self, client, session) -> None:
        _route(session, {
            ("POST", "/register/svc-1/migration"): [make_response(500, {})],
            ("PUT", "/register/svc-1/migration"): [make_response(422, {"message": "bad schema"})],
        })
        with pytest.raises(RegistrationError, match="bad schema") as excinfo:
            asyncio.run(upload_migration(client, "svc-1", MIGRATION))
        assert excinfo.value.details["status"] == 422


# -------------------------------------------------------------------------
# CLI
# -------------------------------------------------------------------------

@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    for name in _ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "default.yaml").write_text(
        "service:\n"
        "  name: course-builder-service\n"
        "  log_level: WARNING\n"
        "coordinator:\n"
        f"  url: {HUB}\n"
        "registration:\n"
        "  endpoint: ''\n"
        "  migration_file: migration.json\n",
        encoding="utf-8",
    )
    return tmp_path


def _cli(project: Path, *argv: str) -> int:
    return main([
        "--config", str(project / "config" / "default.yaml"),
        "--env-file", str(project / ".env"),
        "register", *argv,
    ])


class TestRegisterCommand:
    def test_requires_endpoint(self, project: Path, capsys) -> None:
        assert _cli(project) == 1
        assert "SERVICE_ENDPOINT not set" in capsys.readouterr().err

    def test_registers_with_migration_file(self, project: Path, monkeypatch, capsys) -> None:
        (project / "migration.json").write_text(json.dumps({"migrationFile": MIGRATION}))
        monkeypatch.setenv("SERVICE_ENDPOINT", "https://cb.test")
        sent: list[tuple[str, str, dict]] = []

        def fake_request(self, method, url, **kwargs):
            sent.append((method, url, kwargs))
            if url.endswith("/health"):
                return make_response(200, {"status": "ok"})
            if url.endswith("/services"):
                return make_response(200, {"success": True, "services": []})
            if url.endswith("/register"):
                return make_response(201, {"serviceId": "svc-7"})
            return make_response(200, {"success": True})

        monkeypatch.setattr("requests.Session.request", fake_request)
        assert _cli(project) == 0
        assert capsys.readouterr().out.strip() == "svc-7"
        assert sent[-1][1] == f"{HUB}/register/svc-7/migration"
        assert sent[-1][2]["json"] == {"migrationFile": MIGRATION}

    def test_missing_explicit_migration_file(self, project: Path, monkeypatch, capsys) -> None:
        monkeypatch.setenv("SERVICE_ENDPOINT", "https://cb.test")
        assert _cli(project, "--migration", str(project / "nope.json")) == 1
        assert "Could not read migration file" in capsys.readouterr().err
