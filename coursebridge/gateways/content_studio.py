"""Content Studio gateway: course content generation."""

from __future__ import annotations

import copy
from typing import Any, Mapping

from coursebridge.gateways.base import DispatchMode, Gateway


class ContentStudioGateway(Gateway):
    """Asks Content Studio to generate topics, modules and lessons.

    Payloads relayed from Learner AI may already carry their own
    action/description; those are kept as-is.
    """

    mode = DispatchMode.AWAIT_AND_UNWRAP

    @property
    def action(self) -> str:
        return "generate_course_content"

    @property
    def description(self) -> str:
        return (
            "Generate course content including topics, modules, and lessons based on "
            "learning path and skills"
        )

    def response_template(self) -> dict[str, Any]:
        # Content Studio fills `course` with the generated structure
        return {"course": []}

    def stamp(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        stamped = copy.deepcopy(dict(payload))
        stamped["action"] = stamped.get("action") or self.action
        stamped["description"] = stamped.get("description") or self.description
        return stamped

    async def generate_course_content(self, content_payload: Mapping[str, Any]) -> Any:
        return await self.send(content_payload)
