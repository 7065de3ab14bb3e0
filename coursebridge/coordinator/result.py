"""Outcome types for Coordinator sends.

post_to_coordinator() returns a CoordinatorReply or raises. send() folds
everything into Success | Failure so each call site picks its own policy:
surface, log and continue, or discard.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

import requests


class SignatureStatus(Enum):
    """Result of checking the Coordinator's response signature."""

    VERIFIED = "verified"
    MISMATCH = "mismatch"
    SKIPPED = "skipped"  # no hub key configured, or response not signed


class FailureReason(Enum):
    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    MALFORMED_BODY = "malformed_body"


@dataclass
class CoordinatorReply:
    """Raw transport response plus the parsed body."""

    status_response: requests.Response
    data: Any = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)  # lower-cased names
    signature: SignatureStatus = SignatureStatus.SKIPPED
    body_parsed: bool = True

    @property
    def status_code(self) -> int:
        return self.status_response.status_code

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass
class Success:
    reply: CoordinatorReply

    @property
    def data(self) -> Any:
        return self.reply.data

    ok = True


@dataclass
class Failure:
    reason: FailureReason
    error: str
    reply: Optional[CoordinatorReply] = None

    @property
    def data(self) -> Any:
        """Best-effort body ({} when there is none)."""
        return self.reply.data if self.reply is not None else {}

    ok = False


SendResult = Union[Success, Failure]
