# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Error taxonomy for the Coordinator messaging layer.

Every exception carries a stable `code` string so callers can branch on it
without parsing messages:

  CB_E_CONFIG        hub URL (or other required setting) missing
  CB_E_CREDENTIAL    identity or private key missing at sign time
  CB_E_TRANSPORT     network error / timeout talking to the hub
  CB_E_REGISTRATION  hub refused a registration or migration upload

A response whose signature does not verify is not an exception. It surfaces
as SignatureStatus.MISMATCH on the reply.
"""

from __future__ import annotations

from typing import Any

CB_E_CONFIG = "CB_E_CONFIG"
CB_E_CREDENTIAL = "CB_E_CREDENTIAL"
CB_E_TRANSPORT = "CB_E_TRANSPORT"
CB_E_REGISTRATION = "CB_E_REGISTRATION"


class BridgeError(Exception):
    """Base exception with a stable error code."""

    code = "CB_E_INTERNAL"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(BridgeError):
    """A required setting is missing. Raised before any network I/O."""

    code = CB_E_CONFIG


class MissingCredential(BridgeError):
    """Service name or private key missing when a signature was requested."""

    code = CB_E_CREDENTIAL


class TransportFailure(BridgeError):
    """The hub could not be reached or did not answer in time."""

    code = CB_E_TRANSPORT


class RegistrationError(BridgeError):
    """The hub refused a service registration or migration upload."""

    code = CB_E_REGISTRATION
