"""Gateway base class and reply unwrapping.

A gateway glues one downstream capability to the Coordinator: it takes an
already-validated payload from the DTO layer, stamps the routing `action`
(and `description`) the Coordinator dispatches on, wraps it in an envelope
and sends it in one of two modes:

  fire_and_forget   return {} at once, failures only logged
  await_and_unwrap  wait for the reply and return its `response`/`data`,
                    or {} on any failure
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Mapping

from coursebridge.coordinator.client import CoordinatorClient
from coursebridge.coordinator.envelope import Envelope
from coursebridge.coordinator.result import Failure

logger = logging.getLogger("coursebridge.gateways")


class DispatchMode(Enum):
    FIRE_AND_FORGET = "fire_and_forget"
    AWAIT_AND_UNWRAP = "await_and_unwrap"


def present(value: Any) -> bool:
    """Truthiness as the hub's JSON producers see it: empty objects and arrays count."""
    if isinstance(value, (dict, list)):
        return True
    return bool(value)


def unwrap(data: Any) -> Any:
    """Extract the useful part of a Coordinator reply.

    Handles, in order:
      1. envelope echo:      {"response": {...}}          -> response
      2. direct success:     {"success": true, "data": x}  -> x
      3. anything else                                     -> data as-is

    An echoed `response: {}` (template left unfilled) is still case 1.
    """
    if not isinstance(data, dict):
        return data if data is not None else {}
    if present(data.get("response")):
        result = data["response"]
    elif present(data.get("success")):
        result = data.get("data")
    else:
        result = data
    return {} if result is None else result


class Gateway(ABC):
    """One downstream capability reached through the Coordinator."""

    mode: DispatchMode = DispatchMode.AWAIT_AND_UNWRAP

    def __init__(self, client: CoordinatorClient) -> None:
        self._client = client

    @property
    @abstractmethod
    def action(self) -> str:
        """Routing action the Coordinator dispatches on."""

    @property
    def description(self) -> str | None:
        """Human-readable routing description, if the target expects one."""
        return None

    @property
    def name(self) -> str:
        return type(self).__name__

    def response_template(self) -> dict[str, Any]:
        """Template the downstream service fills in."""
        return {}

    def stamp(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Copy the payload and add routing fields."""
        stamped = copy.deepcopy(dict(payload))
        stamped["action"] = self.action
        if self.description:
            stamped["description"] = self.description
        return stamped

    def unwrap_reply(self, data: Any) -> Any:
        """Turn a successful reply body into the value returned to callers."""
        return unwrap(data)

    def envelope(self, payload: Mapping[str, Any]) -> Envelope:
        return Envelope(
            requester_service=self._client.service_name,
            payload=self.stamp(payload),
            response=self.response_template(),
        )

    async def send(self, payload: Mapping[str, Any]) -> Any:
        """Send according to this gateway's mode."""
        envelope = self.envelope(payload)
        logger.info("[%s] Sending %s via Coordinator (%s)", self.name, self.action, self.mode.value)
        if self.mode is DispatchMode.FIRE_AND_FORGET:
            self._client.dispatch(envelope)
            return {}

        result = await self._client.send(envelope)
        if isinstance(result, Failure):
            logger.error("[%s] Coordinator request failed: %s", self.name, result.error)
            return {}
        return self.unwrap_reply(result.data)
