"""Directory gateway: learner feedback."""

from __future__ import annotations

from typing import Any, Mapping

from coursebridge.gateways.base import DispatchMode, Gateway


class DirectoryGateway(Gateway):
    """Submits learner feedback to Directory through the Coordinator.

    Directory does not return data for feedback; the unwrapped reply is
    usually empty.
    """

    mode = DispatchMode.AWAIT_AND_UNWRAP

    @property
    def action(self) -> str:
        return "submit_feedback"

    @property
    def description(self) -> str:
        return "Submit learner feedback about a course including rating and comments"

    async def submit_feedback(self, feedback_payload: Mapping[str, Any]) -> Any:
        """Send a Directory feedback payload (rating, comment, course, employee)."""
        return await self.send(feedback_payload)
