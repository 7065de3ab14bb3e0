"""DevLab gateway: course completion notification."""

from __future__ import annotations

from typing import Any, Mapping

from coursebridge.gateways.base import DispatchMode, Gateway


class DevlabGateway(Gateway):
    """Tells DevLab a learner finished a course so it can prepare exercises.

    Fire-and-forget: the caller never waits for DevLab.
    """

    mode = DispatchMode.FIRE_AND_FORGET

    @property
    def action(self) -> str:
        return "notify_learner_course_completion"

    @property
    def description(self) -> str:
        return (
            "Notify that a learner has successfully completed a course and passed the "
            "final assessment, enabling access to development environment for hands-on "
            "coding practice and project work"
        )

    def response_template(self) -> dict[str, Any]:
        return {"answer": ""}

    async def notify_course_completion(self, completion_payload: Mapping[str, Any]) -> dict:
        return await self.send(completion_payload)
