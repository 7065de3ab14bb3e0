"""Assessment gateway: exam session launch."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from coursebridge.gateways.base import DispatchMode, Gateway

logger = logging.getLogger("coursebridge.gateways.assessment")


class AssessmentGateway(Gateway):
    """Asks Assessment to open an exam session for a learner.

    The filled response carries `redirect_url` and `assessment_session_id`.
    """

    mode = DispatchMode.AWAIT_AND_UNWRAP

    @property
    def action(self) -> str:
        return "create_assessment"

    @property
    def description(self) -> str:
        return "Create a new assessment session for a learner to take a course exam"

    async def create_assessment(self, launch_payload: Mapping[str, Any]) -> Any:
        result = await self.send(launch_payload)
        logger.info(
            "[AssessmentGateway] Launch reply: redirect_url=%s session=%s",
            bool(isinstance(result, dict) and result.get("redirect_url")),
            bool(isinstance(result, dict) and result.get("assessment_session_id")),
        )
        return result
