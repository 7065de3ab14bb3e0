# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Coordinator client: signed envelope transport.

All microservice-to-microservice requests go through the Coordinator. Each
request is a single POST of the envelope to

    {COORDINATOR_URL}/api/fill-content-metrics/

Headers:
    Content-Type: application/json
    X-Service-Name: <this service>          (when signed)
    X-Signature:    <base64 ECDSA P-256>     (when signed)

If the Coordinator signs its reply (X-Service-Name: coordinator plus
X-Service-Signature) and its public key is configured, the reply is verified.
A bad response signature is logged, never fatal: the reply is still returned.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import requests

from coursebridge.core.config import BridgeSettings
from coursebridge.core.errors import ConfigurationError, MissingCredential, TransportFailure
from coursebridge.core.logger import BridgeLogger
from coursebridge.coordinator.envelope import Envelope, as_wire
from coursebridge.coordinator.result import (
    CoordinatorReply,
    Failure,
    FailureReason,
    SendResult,
    SignatureStatus,
    Success,
)
from coursebridge.signing.canonical import canonical_json
from coursebridge.signing.keys import KeyStore, default_key_store
from coursebridge.signing.signer import sign, verify

logger = logging.getLogger("coursebridge.coordinator")

HEADER_SERVICE_NAME = "X-Service-Name"
HEADER_SIGNATURE = "X-Signature"
HEADER_RESPONSE_SIGNATURE = "X-Service-Signature"


def _lower_headers(headers: Any) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in dict(headers or {}).items()}


def _parse_body(resp: requests.Response) -> tuple[Any, bool]:
    """Parse the JSON body. Unparsable or empty bodies become {}."""
    try:
        return resp.json(), True
    except ValueError:
        return {}, False


class CoordinatorClient:
    """Signs envelopes and posts them to the Coordinator."""

    def __init__(
        self,
        settings: BridgeSettings,
        keys: KeyStore,
        session: Optional[requests.Session] = None,
        event_log: Optional[BridgeLogger] = None,
    ) -> None:
        self._settings = settings
        self._keys = keys
        self._session = session or requests.Session()
        self._events = event_log or BridgeLogger(
            name="coordinator", level=settings.log_level, log_dir=settings.log_dir,
        )
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: BridgeSettings) -> "CoordinatorClient":
        """Client wired to the process-wide KeyStore."""
        return cls(settings, default_key_store(settings))

    @property
    def service_name(self) -> str:
        return self._settings.service_name

    @property
    def pending(self) -> int:
        """Number of fire-and-forget sends still in flight."""
        return len(self._pending)

    # -----------------------------------------------------------------
    # Request side
    # -----------------------------------------------------------------

    def base_url(self) -> str:
        """Hub URL without trailing slashes. Raises ConfigurationError when unset."""
        if not self._settings.hub_url:
            raise ConfigurationError("COORDINATOR_URL not set")
        return self._settings.hub_url.rstrip("/")

    def endpoint(self) -> str:
        """Routing URL. Raises ConfigurationError when no hub URL is set."""
        self.base_url()
        return self._settings.endpoint

    def sign_headers(self, wire: dict[str, Any]) -> dict[str, str]:
        """Build request headers, signing the envelope when a key is available.

        Signing problems downgrade to an unsigned request with a warning; the
        Coordinator is the one that rejects unsigned traffic.
        """
        headers = {"Content-Type": "application/json"}
        if not self._keys.private_key_pem:
            logger.warning(
                "[Coordinator] PRIVATE_KEY is not set. Requests will not be signed "
                "and Coordinator will likely reject them."
            )
            self._events.security_event(
                "unsigned_request", "medium", {"service": self.service_name},
            )
            return headers
        try:
            signature = sign(
                self.service_name,
                self._keys.private_key_pem,
                wire,
                sort_keys=self._settings.canonical_sort_keys,
            )
        except (MissingCredential, ValueError) as exc:
            self._events.warning("[Coordinator] Failed to generate signature", error=str(exc))
            return headers
        headers[HEADER_SERVICE_NAME] = self.service_name
        headers[HEADER_SIGNATURE] = signature
        return headers

    # -----------------------------------------------------------------
    # Response side
    # -----------------------------------------------------------------

    def verify_reply(
        self, headers: dict[str, str], data: Any, status_code: Optional[int] = None,
    ) -> SignatureStatus:
        """Check the Coordinator's response signature (lower-cased headers)."""
        hub = self._settings.hub_identity
        hub_key = self._keys.public_key_for(hub)
        sender = headers.get(HEADER_SERVICE_NAME.lower())
        signature = headers.get(HEADER_RESPONSE_SIGNATURE.lower())
        if not hub_key or sender != hub or not signature:
            self._events.debug(
                "[Coordinator] Response signature not checked",
                sender=sender, signed=bool(signature), hub_key=bool(hub_key),
            )
            return SignatureStatus.SKIPPED
        ok = verify(hub, signature, hub_key, data, sort_keys=self._settings.canonical_sort_keys)
        if ok:
            return SignatureStatus.VERIFIED
        logger.warning("[Coordinator] Invalid Coordinator response signature")
        self._events.security_event(
            "response_signature_mismatch",
            "medium",
            {"sender": sender, "status_code": status_code, "endpoint": self._settings.endpoint},
        )
        return SignatureStatus.MISMATCH

    # -----------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(
                method, url, timeout=self._settings.timeout_seconds, **kwargs,
            )
        except requests.Timeout as exc:
            raise TransportFailure(
                f"Coordinator did not answer within {self._settings.timeout_seconds}s",
                url=url,
            ) from exc
        except requests.RequestException as exc:
            raise TransportFailure(f"Coordinator request failed: {exc}", url=url) from exc

    async def post_to_coordinator(self, envelope: Envelope | dict[str, Any]) -> CoordinatorReply:
        """Sign and POST one envelope.

        Raises:
            ConfigurationError: COORDINATOR_URL is not set (before any I/O).
            TransportFailure: Network error or timeout.
        """
        url = self.endpoint()
        wire = as_wire(envelope)
        headers = self.sign_headers(wire)
        body = canonical_json(wire, sort_keys=self._settings.canonical_sort_keys).encode("utf-8")

        payload = wire.get("payload")
        action = payload.get("action") if isinstance(payload, dict) else None
        self._events.info(
            "[Coordinator] POST", url=url, action=action, signed=HEADER_SIGNATURE in headers,
        )
        resp = await asyncio.to_thread(self._request, "POST", url, data=body, headers=headers)

        data, parsed = _parse_body(resp)
        if not parsed:
            self._events.warning(
                "[Coordinator] Response body is not JSON", status_code=resp.status_code,
            )
        reply_headers = _lower_headers(resp.headers)
        self._events.info(
            "[Coordinator] Response",
            status_code=resp.status_code,
            signed=HEADER_RESPONSE_SIGNATURE.lower() in reply_headers,
        )
        return CoordinatorReply(
            status_response=resp,
            data=data,
            headers=reply_headers,
            signature=self.verify_reply(reply_headers, data, resp.status_code),
            body_parsed=parsed,
        )

    async def send(self, envelope: Envelope | dict[str, Any]) -> SendResult:
        """post_to_coordinator() folded into Success | Failure. Never raises."""
        try:
            reply = await self.post_to_coordinator(envelope)
        except ConfigurationError as exc:
            return Failure(FailureReason.CONFIGURATION, str(exc))
        except TransportFailure as exc:
            return Failure(FailureReason.TRANSPORT, str(exc))
        if not reply.ok:
            return Failure(FailureReason.HTTP_STATUS, f"HTTP {reply.status_code}", reply)
        if not reply.body_parsed:
            return Failure(FailureReason.MALFORMED_BODY, "response body is not JSON", reply)
        return Success(reply)

    def dispatch(self, envelope: Envelope | dict[str, Any]) -> asyncio.Task:
        """Fire-and-forget send. Failures are logged, never raised to the caller.

        Must be called from a running event loop.
        """
        task = asyncio.get_running_loop().create_task(self.send(envelope))
        self._pending.add(task)
        task.add_done_callback(self._on_dispatched)
        return task

    def _on_dispatched(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("[Coordinator] Fire-and-forget request cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[Coordinator] Fire-and-forget request crashed: %s", exc)
            return
        result = task.result()
        if isinstance(result, Failure):
            self._events.error(
                "[Coordinator] Coordinator request failed",
                reason=result.reason.value, error=result.error,
            )

    async def drain(self) -> None:
        """Wait for all in-flight fire-and-forget sends."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -----------------------------------------------------------------
    # Hub management API (unsigned, outside the envelope route)
    # -----------------------------------------------------------------

    async def hub_request(
        self, method: str, path: str, body: Any = None, params: Optional[dict[str, Any]] = None,
    ) -> tuple[int, Any]:
        """Plain JSON call to `{COORDINATOR_URL}{path}`. Returns (status, parsed body).

        Raises:
            ConfigurationError: COORDINATOR_URL is not set.
            TransportFailure: Network error or timeout.
        """
        url = self.base_url() + "/" + path.lstrip("/")
        kwargs: dict[str, Any] = {}
        if body is not None:
            kwargs["json"] = body
        if params:
            kwargs["params"] = params
        resp = await asyncio.to_thread(self._request, method, url, **kwargs)
        data, _ = _parse_body(resp)
        self._events.info("[Coordinator] Hub call", method=method, url=url, status_code=resp.status_code)
        return resp.status_code, data

    async def check_health(self) -> bool:
        """GET {COORDINATOR_URL}/health. True on a 2xx answer."""
        try:
            status, _ = await self.hub_request("GET", "/health")
        except TransportFailure as exc:
            logger.warning("[Coordinator] Health check failed: %s", exc)
            return False
        return 200 <= status < 300

    def close(self) -> None:
        self._session.close()
