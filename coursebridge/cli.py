# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""coursebridge CLI: key provisioning and manual Coordinator calls.

Commands:
  coursebridge keygen               generate the service's P-256 key pair
  coursebridge sign [JSON]          print X-Signature for a payload
  coursebridge verify SIG [JSON]    check a signature against a public key
  coursebridge send ENVELOPE.json   sign and POST an envelope to the Coordinator
  coursebridge health               check the Coordinator's /health endpoint
  coursebridge register             register this service and upload its migration file
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

from coursebridge.core.config import BridgeConfig, BridgeSettings
from coursebridge.core.errors import BridgeError
from coursebridge.core.logger import configure_logging
from coursebridge.coordinator.client import CoordinatorClient
from coursebridge.coordinator.registration import ServiceRegistration, register_service
from coursebridge.coordinator.result import Failure
from coursebridge.signing.keys import resolve_key_store
from coursebridge.signing.signer import generate_keypair, sign, verify

GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
RESET = "\033[0m"


def _ok(msg: str) -> None:
    print(f"{GREEN}[OK]{RESET} {msg}", file=sys.stderr)


def _warn(msg: str) -> None:
    print(f"{YELLOW}[!]{RESET} {msg}", file=sys.stderr)


def _err(msg: str) -> None:
    print(f"{RED}[ERR]{RESET} {msg}", file=sys.stderr)


def _parse_json_arg(raw: Optional[str], file: Optional[str]) -> Any:
    """Payload from a file, an inline JSON argument, or {} when neither is given."""
    if file:
        return json.loads(Path(file).read_text(encoding="utf-8"))
    if not raw:
        return {}
    text = raw.strip()
    # Shells on Windows tend to leave the outer quotes in place
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        text = text[1:-1]
    return json.loads(text)


def _config(args: argparse.Namespace) -> BridgeConfig:
    return BridgeConfig(config_path=args.config, dotenv_path=args.env_file)


def _settings(args: argparse.Namespace) -> BridgeSettings:
    return _config(args).settings()


def _load_migration(cfg: BridgeConfig, args: argparse.Namespace) -> Optional[dict[str, Any]]:
    """Migration file contents, or None when there is nothing to upload.

    Raises:
        OSError, ValueError: An explicitly requested file is unreadable.
    """
    if args.no_migration:
        return None
    raw_path = args.migration or cfg.get("registration.migration_file")
    if not raw_path:
        return None
    path = Path(str(raw_path))
    if not path.is_absolute() and not args.migration:
        path = cfg.base_dir / path
    if not path.exists() and not args.migration:
        _warn(f"No migration file at {path}; registering without it")
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict) and "migrationFile" in data:
        return data["migrationFile"]
    return data


# ─── Commands ─────────────────────────────────────────────────────────────

def cmd_keygen(args: argparse.Namespace) -> int:
    settings = _settings(args)
    private_path = Path(args.private_out) if args.private_out else settings.private_key_path
    public_path = (
        Path(args.public_out) if args.public_out
        else private_path.with_name(private_path.name.replace("private", "public"))
    )
    if private_path == public_path:
        public_path = private_path.with_suffix(".pub.pem")
    for path in (private_path, public_path):
        if path.exists() and not args.force:
            _err(f"{path} already exists (use --force to overwrite)")
            return 1

    private_pem, public_pem = generate_keypair()
    private_path.parent.mkdir(parents=True, exist_ok=True)
    public_path.parent.mkdir(parents=True, exist_ok=True)
    private_path.write_text(private_pem, encoding="utf-8")
    try:
        private_path.chmod(0o600)
    except NotImplementedError:
        pass
    public_path.write_text(public_pem, encoding="utf-8")

    _ok(f"ECDSA P-256 key pair generated for {settings.service_name}")
    _ok(f"Private key: {private_path}")
    _ok(f"Public key:  {public_path}")
    _warn("Register the public key with the Coordinator; never commit the private key.")
    if args.print_public:
        print(public_pem, end="")
    return 0


def cmd_sign(args: argparse.Namespace) -> int:
    settings = _settings(args)
    keys = resolve_key_store(settings)
    try:
        payload = _parse_json_arg(args.payload, args.file)
    except ValueError as exc:
        _err(f"Invalid JSON payload: {exc}")
        return 1
    try:
        signature = sign(
            args.service or settings.service_name,
            keys.private_key_pem,
            payload,
            sort_keys=settings.canonical_sort_keys,
        )
    except (BridgeError, ValueError) as exc:
        _err(str(exc))
        return 1
    print(signature)
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    settings = _settings(args)
    try:
        payload = _parse_json_arg(args.payload, args.file)
    except ValueError as exc:
        _err(f"Invalid JSON payload: {exc}")
        return 1
    if args.public_key:
        public_pem: Optional[str] = Path(args.public_key).read_text(encoding="utf-8")
    else:
        public_pem = resolve_key_store(settings).public_key_for(settings.hub_identity)
    service = args.service or settings.hub_identity
    if verify(service, args.signature, public_pem, payload, sort_keys=settings.canonical_sort_keys):
        _ok(f"Signature valid for {service}")
        return 0
    _err(f"Signature NOT valid for {service}")
    return 1


def cmd_send(args: argparse.Namespace) -> int:
    settings = _settings(args)
    try:
        envelope = _parse_json_arg(None, args.envelope)
    except (OSError, ValueError) as exc:
        _err(f"Could not read envelope: {exc}")
        return 1
    client = CoordinatorClient(settings, resolve_key_store(settings))
    try:
        result = asyncio.run(client.send(envelope))
    finally:
        client.close()
    if isinstance(result, Failure):
        _err(f"{result.reason.value}: {result.error}")
        if result.reply is not None:
            print(json.dumps(result.data, indent=2, ensure_ascii=False))
        return 1
    _ok(f"HTTP {result.reply.status_code}, response signature: {result.reply.signature.value}")
    print(json.dumps(result.data, indent=2, ensure_ascii=False))
    return 0


def cmd_health(args: argparse.Namespace) -> int:
    settings = _settings(args)
    client = CoordinatorClient(settings, resolve_key_store(settings))
    try:
        healthy = asyncio.run(client.check_health())
    except BridgeError as exc:
        _err(str(exc))
        return 1
    finally:
        client.close()
    if healthy:
        _ok(f"Coordinator at {settings.hub_url} is healthy")
        return 0
    _err(f"Coordinator at {settings.hub_url} is not healthy")
    return 1


def cmd_register(args: argparse.Namespace) -> int:
    cfg = _config(args)
    settings = cfg.settings()
    endpoint = args.endpoint or cfg.get("registration.endpoint")
    if not endpoint:
        _err("SERVICE_ENDPOINT not set (registration.endpoint or --endpoint)")
        return 1
    registration = ServiceRegistration(
        service_name=settings.service_name,
        version=str(cfg.get("registration.version", "1.0.0")),
        endpoint=str(endpoint),
        health_check=str(cfg.get("registration.health_check", "/health")),
        description=str(cfg.get("registration.description", "")),
        metadata=cfg.get("registration.metadata", {}),
    )
    try:
        migration = _load_migration(cfg, args)
    except (OSError, ValueError) as exc:
        _err(f"Could not read migration file: {exc}")
        return 1

    client = CoordinatorClient(settings, resolve_key_store(settings))

    async def _run() -> str:
        if not await client.check_health():
            _warn(f"Coordinator at {settings.hub_url} did not report healthy; trying anyway")
        return await register_service(client, registration, migration)

    try:
        service_id = asyncio.run(_run())
    except BridgeError as exc:
        _err(str(exc))
        return 1
    finally:
        client.close()
    _ok(f"{settings.service_name} registered with the Coordinator")
    _ok(f"Service ID: {service_id}")
    if migration is not None:
        _ok("Migration file uploaded")
    print(service_id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coursebridge",
        description="Signed messaging with the Coordinator",
    )
    parser.add_argument("--config", default="config/default.yaml", help="YAML configuration file")
    parser.add_argument("--env-file", default=".env", help=".env file to load (default: .env)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("keygen", help="generate an ECDSA P-256 key pair")
    p.add_argument("--private-out", help="private key path (default: configured path)")
    p.add_argument("--public-out", help="public key path")
    p.add_argument("--force", action="store_true", help="overwrite existing files")
    p.add_argument("--print-public", action="store_true", help="print the public PEM to stdout")
    p.set_defaults(func=cmd_keygen)

    p = sub.add_parser("sign", help="sign a payload with this service's key")
    p.add_argument("payload", nargs="?", help="inline JSON payload (default: {})")
    p.add_argument("--file", help="read the payload from a JSON file")
    p.add_argument("--service", help="identity to sign as (default: configured service name)")
    p.set_defaults(func=cmd_sign)

    p = sub.add_parser("verify", help="verify a signature")
    p.add_argument("signature", help="base64 signature")
    p.add_argument("payload", nargs="?", help="inline JSON payload (default: {})")
    p.add_argument("--file", help="read the payload from a JSON file")
    p.add_argument("--service", help="signer identity (default: Coordinator identity)")
    p.add_argument("--public-key", help="PEM file (default: configured Coordinator key)")
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser("send", help="sign and POST an envelope JSON file")
    p.add_argument("envelope", help="envelope JSON file")
    p.set_defaults(func=cmd_send)

    p = sub.add_parser("health", help="check Coordinator health")
    p.set_defaults(func=cmd_health)

    p = sub.add_parser("register", help="register this service with the Coordinator")
    p.add_argument("--endpoint", help="public URL of this service (default: SERVICE_ENDPOINT)")
    p.add_argument("--migration", help="migration JSON file (default: registration.migration_file)")
    p.add_argument("--no-migration", action="store_true", help="skip the migration upload")
    p.set_defaults(func=cmd_register)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    level = BridgeConfig(config_path=args.config, dotenv_path=None).get("service.log_level", "WARNING")
    configure_logging(str(level))
    try:
        return args.func(args)
    except ValueError as exc:
        _err(f"Configuration error: {exc}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
