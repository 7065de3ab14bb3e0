"""Tests for the coursebridge command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from coursebridge.cli import _parse_json_arg, main
from coursebridge.core.config import _ENV_OVERRIDES
from coursebridge.signing.signer import verify


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """Temporary project root with config/default.yaml and a clean environment."""
    for name in _ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "default.yaml").write_text(
        "service:\n"
        "  name: course-builder-service\n"
        "  private_key_path: keys/course-builder-private-key.pem\n"
        "  log_level: WARNING\n"
        "coordinator:\n"
        "  url: ''\n"
        "  public_key_path: keys/coordinator-public-key.pem\n",
        encoding="utf-8",
    )
    return tmp_path


def _run(project: Path, *argv: str) -> int:
    return main([
        "--config", str(project / "config" / "default.yaml"),
        "--env-file", str(project / ".env"),
        *argv,
    ])


class TestKeygen:
    def test_writes_key_pair(self, project: Path) -> None:
        assert _run(project, "keygen") == 0
        private = project / "keys" / "course-builder-private-key.pem"
        public = project / "keys" / "course-builder-public-key.pem"
        assert "BEGIN PRIVATE KEY" in private.read_text()
        assert "BEGIN PUBLIC KEY" in public.read_text()

    def test_refuses_to_overwrite(self, project: Path, capsys) -> None:
        assert _run(project, "keygen") == 0
        private = project / "keys" / "course-builder-private-key.pem"
        before = private.read_text()
        assert _run(project, "keygen") == 1
        assert "already exists" in capsys.readouterr().err
        assert private.read_text() == before

    def test_force_overwrites(self, project: Path) -> None:
        assert _run(project, "keygen") == 0
        private = project / "keys" / "course-builder-private-key.pem"
        before = private.read_text()
        assert _run(project, "keygen", "--force") == 0
        assert private.read_text() != before

    def test_print_public(self, project: Path, capsys) -> None:
        assert _run(project, "keygen", "--print-public") == 0
        assert "BEGIN PUBLIC KEY" in capsys.readouterr().out


class TestSignVerify:
    def test_sign_then_verify(self, project: Path, capsys) -> None:
        assert _run(project, "keygen") == 0
        capsys.readouterr()

        assert _run(project, "sign", '{"action":"submit_feedback","rating":5}') == 0
        signature = capsys.readouterr().out.strip()
        public = project / "keys" / "course-builder-public-key.pem"
        assert verify(
            "course-builder-service", signature, public.read_text(),
            {"action": "submit_feedback", "rating": 5},
        )

        assert _run(
            project, "verify", signature, '{"action":"submit_feedback","rating":5}',
            "--service", "course-builder-service", "--public-key", str(public),
        ) == 0
        assert _run(
            project, "verify", signature, '{"action":"submit_feedback","rating":4}',
            "--service", "course-builder-service", "--public-key", str(public),
        ) == 1

    def test_sign_payload_from_file(self, project: Path, capsys) -> None:
        assert _run(project, "keygen") == 0
        payload_file = project / "payload.json"
        payload_file.write_text(json.dumps({"learner_id": "l1"}))
        capsys.readouterr()
        assert _run(project, "sign", "--file", str(payload_file)) == 0
        signature = capsys.readouterr().out.strip()
        public = (project / "keys" / "course-builder-public-key.pem").read_text()
        assert verify("course-builder-service", signature, public, {"learner_id": "l1"})

    def test_sign_without_key_fails(self, project: Path, capsys) -> None:
        assert _run(project, "sign", "{}") == 1
        assert "Missing serviceName or private key" in capsys.readouterr().err

    def test_sign_invalid_json(self, project: Path, capsys) -> None:
        assert _run(project, "keygen") == 0
        assert _run(project, "sign", "{not json") == 1
        assert "Invalid JSON payload" in capsys.readouterr().err


class TestCommands:
    def test_send_without_url_fails(self, project: Path, capsys) -> None:
        envelope = project / "envelope.json"
        envelope.write_text(json.dumps({"requester_service": "x", "payload": {}, "response": {}}))
        assert _run(project, "send", str(envelope)) == 1
        assert "COORDINATOR_URL not set" in capsys.readouterr().err

    def test_health_without_url_fails(self, project: Path) -> None:
        assert _run(project, "health") == 1

    def test_invalid_config_exit_code(self, project: Path, monkeypatch) -> None:
        monkeypatch.setenv("COORDINATOR_TIMEOUT_SECONDS", "-1")
        assert _run(project, "sign", "{}") == 2


class TestParseJsonArg:
    def test_strips_outer_quotes(self) -> None:
        assert _parse_json_arg("'{\"a\": 1}'", None) == {"a": 1}

    def test_empty_is_empty_object(self) -> None:
        assert _parse_json_arg(None, None) == {}
        assert _parse_json_arg("", None) == {}
