# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Canonical message construction.

The string that gets signed is

    educoreai-<service_name>                      (no payload)
    educoreai-<service_name>-<sha256 hex>         (with payload)

where the digest is taken over the payload serialized exactly like the
JavaScript services in the ecosystem serialize it (JSON.stringify): compact
separators, insertion key order, non-ASCII emitted as-is, integral floats as
integers, NaN/Infinity as null. Any difference here breaks signatures across
services.
"""

from __future__ import annotations

import hashlib
import json
import math
from typing import Any

NAMESPACE = "educoreai"


def _js_normalize(value: Any) -> Any:
    """Coerce Python values to what JSON.stringify would emit."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer() and abs(value) < 2 ** 53:
            return int(value)
        return value
    if isinstance(value, dict):
        return {str(k): _js_normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_js_normalize(v) for v in value]
    return value


def canonical_json(payload: Any, sort_keys: bool = False) -> str:
    """Serialize a payload the way the hub and sibling services hash it.

    Args:
        payload: JSON-serializable value.
        sort_keys: Sort object keys. Off by default because the deployed
            services hash insertion order.
    """
    return json.dumps(
        _js_normalize(payload),
        separators=(",", ":"),
        ensure_ascii=False,
        sort_keys=sort_keys,
        allow_nan=False,
    )


def _is_absent(payload: Any) -> bool:
    # Mirrors a JavaScript truthiness test: empty containers still count.
    if payload is None or payload is False:
        return True
    if isinstance(payload, (str, int, float)) and not isinstance(payload, bool):
        return not payload
    return False


def payload_digest(payload: Any, sort_keys: bool = False) -> str:
    """Lowercase SHA-256 hex digest of the canonical JSON payload."""
    data = canonical_json(payload, sort_keys=sort_keys).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def build_message(service_name: str, payload: Any = None, sort_keys: bool = False) -> str:
    """Build the canonical message for (service_name, payload).

    Empty service names are not rejected here; sign() enforces that.
    """
    message = f"{NAMESPACE}-{service_name}"
    if not _is_absent(payload):
        message = f"{message}-{payload_digest(payload, sort_keys=sort_keys)}"
    return message
