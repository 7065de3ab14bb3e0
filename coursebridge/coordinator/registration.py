# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Service registration with the Coordinator.

Two stages against the hub's management API:

  1. POST /register                         -> {"serviceId": ...}
  2. POST /register/<id>/migration          (PUT when it already exists)

A service that is already listed under GET /services is not registered again;
only its migration file is uploaded.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from coursebridge.core.errors import RegistrationError
from coursebridge.coordinator.client import CoordinatorClient

logger = logging.getLogger("coursebridge.coordinator.registration")


class ServiceRegistration(BaseModel):
    """Stage 1 payload, in the hub's camelCase field names."""

    model_config = ConfigDict(populate_by_name=True)

    service_name: str = Field(alias="serviceName")
    version: str = "1.0.0"
    endpoint: str
    health_check: str = Field(default="/health", alias="healthCheck")
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        wire = self.model_dump(by_alias=True)
        wire["endpoint"] = self.endpoint.rstrip("/")
        return wire


def _service_id(service: dict[str, Any]) -> Optional[str]:
    return service.get("serviceId") or service.get("id")


def _message(body: Any) -> str:
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return "Unknown error"


async def find_service(client: CoordinatorClient, service_name: str) -> Optional[dict[str, Any]]:
    """The hub's record for `service_name`, or None if it is not listed."""
    status, body = await client.hub_request("GET", "/services", params={"includeAll": "true"})
    if not 200 <= status < 300 or not isinstance(body, dict) or not body.get("success"):
        logger.warning("[Registration] Could not list services (HTTP %s)", status)
        return None
    for service in body.get("services") or []:
        if isinstance(service, dict) and service.get("serviceName") == service_name:
            return service
    return None


async def upload_migration(
    client: CoordinatorClient, service_id: str, migration_file: dict[str, Any],
) -> Any:
    """Upload the migration file, falling back to PUT when POST is refused.

    Raises:
        RegistrationError: If both attempts fail.
    """
    path = f"/register/{service_id}/migration"
    body = {"migrationFile": migration_file}
    status, data = await client.hub_request("POST", path, body)
    if not 200 <= status < 300:
        logger.info("[Registration] Migration POST failed (HTTP %s), trying PUT", status)
        status, data = await client.hub_request("PUT", path, body)
    if not 200 <= status < 300:
        raise RegistrationError(
            f"Migration upload failed: {_message(data)}", status=status, service_id=service_id,
        )
    logger.info("[Registration] Migration uploaded for %s", service_id)
    return data


async def register_service(
    client: CoordinatorClient,
    registration: ServiceRegistration,
    migration_file: Optional[dict[str, Any]] = None,
) -> str:
    """Register (or find) the service and upload its migration file.

    Returns:
        The hub-assigned service id.

    Raises:
        ConfigurationError: COORDINATOR_URL is not set.
        TransportFailure: The hub could not be reached.
        RegistrationError: The hub refused the registration or migration.
    """
    existing = await find_service(client, registration.service_name)
    service_id = _service_id(existing) if existing else None

    if service_id:
        logger.info("[Registration] %s already registered as %s", registration.service_name, service_id)
    else:
        status, data = await client.hub_request("POST", "/register", registration.to_wire())
        if not 200 <= status < 300:
            if status == 409 or "already exists" in _message(data):
                existing = await find_service(client, registration.service_name)
                if existing and _service_id(existing):
                    logger.info("[Registration] %s was registered concurrently", registration.service_name)
                    return _service_id(existing)
            raise RegistrationError(
                f"Registration failed: {_message(data)}", status=status,
            )
        service_id = data.get("serviceId") if isinstance(data, dict) else None
        if not service_id:
            raise RegistrationError("No serviceId received from Coordinator")
        logger.info("[Registration] Registered %s as %s", registration.service_name, service_id)

    if migration_file is not None:
        await upload_migration(client, service_id, migration_file)
    return service_id
