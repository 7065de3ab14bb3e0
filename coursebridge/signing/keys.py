# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Key material for Coordinator signing.

Key loading priority, for this service's private key and for every
counterparty public key (the Coordinator's):
  1. configured PEM value (PRIVATE_KEY / COORDINATOR_PUBLIC_KEY env, or YAML)
  2. PEM file (PRIVATE_KEY_PATH / COORDINATOR_PUBLIC_KEY_PATH, or defaults)
  3. absent: logged as a warning. Sends go out unsigned, responses unverified.

Keys are resolved once into an immutable KeyStore. Rotating a key requires a
process restart.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from coursebridge.core.config import BridgeSettings

logger = logging.getLogger("coursebridge.keys")

SOURCE_CONFIG = "config"
SOURCE_FILE = "file"


def normalize_pem(value: str) -> str:
    """Undo the literal '\\n' escaping PEM text picks up in .env files."""
    text = value.strip()
    if "\\n" in text and "\n" not in text:
        text = text.replace("\\n", "\n")
    return text + "\n"


def _read_pem_file(path: Optional[Path], label: str) -> Optional[str]:
    if path is None:
        return None
    try:
        if not path.exists():
            return None
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("[Keys] Could not load %s from %s: %s", label, path, exc)
        return None
    if not text.strip():
        logger.warning("[Keys] %s file %s is empty", label, path)
        return None
    logger.info("[Keys] Loaded %s from %s", label, path)
    return normalize_pem(text)


def resolve_pem(
    value: Optional[str], path: Optional[Path], label: str
) -> tuple[Optional[str], Optional[str]]:
    """Resolve one key. Returns (pem or None, source or None)."""
    if value and value.strip():
        logger.info("[Keys] Loaded %s from configuration", label)
        return normalize_pem(value), SOURCE_CONFIG
    pem = _read_pem_file(path, label)
    if pem:
        return pem, SOURCE_FILE
    logger.warning("[Keys] No %s configured and no file at %s", label, path)
    return None, None


@dataclass(frozen=True)
class KeyStore:
    """Immutable key material for one service identity."""

    service_name: str
    private_key_pem: Optional[str] = None
    public_keys: Mapping[str, str] = field(default_factory=dict)
    sources: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "public_keys", MappingProxyType(dict(self.public_keys)))
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))

    @property
    def can_sign(self) -> bool:
        return bool(self.service_name and self.private_key_pem)

    def public_key_for(self, identity: str) -> Optional[str]:
        """Public key of a counterparty, or None if it is not configured."""
        return self.public_keys.get(identity)

    def source_of(self, name: str) -> Optional[str]:
        """Where a key came from: 'private' or a counterparty identity."""
        return self.sources.get(name)


def resolve_key_store(settings: BridgeSettings) -> KeyStore:
    """Resolve this service's keys from settings (config value, file, absent)."""
    private_pem, private_src = resolve_pem(
        settings.private_key, settings.private_key_path, "private key"
    )
    hub_pem, hub_src = resolve_pem(
        settings.hub_public_key,
        settings.hub_public_key_path,
        f"{settings.hub_identity} public key",
    )

    public_keys: dict[str, str] = {}
    sources: dict[str, str] = {}
    if private_src:
        sources["private"] = private_src
    if hub_pem and hub_src:
        public_keys[settings.hub_identity] = hub_pem
        sources[settings.hub_identity] = hub_src

    return KeyStore(
        service_name=settings.service_name,
        private_key_pem=private_pem,
        public_keys=public_keys,
        sources=sources,
    )


# Process-wide default, resolved on first use.
_default_store: Optional[KeyStore] = None
_default_lock = threading.Lock()


def default_key_store(settings: Optional[BridgeSettings] = None) -> KeyStore:
    """Return the process-wide KeyStore, resolving it on the first call.

    Later calls return the cached store and ignore `settings`.
    """
    global _default_store
    if _default_store is not None:
        return _default_store
    with _default_lock:
        if _default_store is None:
            if settings is None:
                from coursebridge.core.config import load_settings
                settings = load_settings()
            _default_store = resolve_key_store(settings)
    return _default_store


def reset_default_key_store() -> None:
    """Drop the cached default store (tests, controlled restarts)."""
    global _default_store
    with _default_lock:
        _default_store = None
