"""Coordinator envelope model.

The envelope is one JSON document that travels to the Coordinator full and
comes back with `response` filled in:

    {"requester_service": ..., "payload": {...}, "response": {...}}
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Envelope(BaseModel):
    """Routing envelope. Payload shape belongs to the DTO layer, not to us."""

    model_config = ConfigDict(extra="allow")

    requester_service: str
    payload: dict[str, Any] = Field(default_factory=dict)
    response: Any = Field(default_factory=dict)

    @property
    def action(self) -> str | None:
        return self.payload.get("action")

    def to_wire(self) -> dict[str, Any]:
        """Plain dict in field order, as it is signed and sent."""
        return self.model_dump(mode="json")


def as_wire(envelope: Envelope | dict[str, Any]) -> dict[str, Any]:
    """Accept either an Envelope or an already-built dict."""
    if isinstance(envelope, Envelope):
        return envelope.to_wire()
    return dict(envelope)
