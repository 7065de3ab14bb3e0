"""Learner AI gateway: batch career learning paths."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from coursebridge.gateways.base import DispatchMode, Gateway, present, unwrap

logger = logging.getLogger("coursebridge.gateways.learner_ai")

DEFAULT_LEARNING_FLOW = "career_path_driven"

_LEARNER_FIELDS = ("learner_id", "learner_name", "preferred_language")


class LearnerAIGateway(Gateway):
    """Requests career learning paths for a company's learners.

    Learner AI answers with its JSON wrapped in `response.answer`; unwrap()
    parses it and returns the batch `data` (company, learners_data, ...).
    """

    mode = DispatchMode.AWAIT_AND_UNWRAP

    @property
    def action(self) -> str:
        return "get_batch_career_paths"

    @property
    def description(self) -> str:
        return (
            "Get batch career learning paths for multiple learners in a company for "
            "CAREER_PATH_DRIVEN flow from Learner AI service"
        )

    @staticmethod
    def build_request(request: Mapping[str, Any]) -> dict[str, Any]:
        """Normalize and check the batch request.

        Raises:
            ValueError: If company or learner fields are missing.
        """
        learners = request.get("learners")
        payload = {
            "company_id": request.get("company_id") or None,
            "company_name": request.get("company_name") or None,
            "learning_flow": request.get("learning_flow") or DEFAULT_LEARNING_FLOW,
            "learners": list(learners) if isinstance(learners, (list, tuple)) else [],
        }
        if not payload["company_id"]:
            raise ValueError("company_id is required for Learner AI request")
        if not payload["company_name"]:
            raise ValueError("company_name is required for Learner AI request")
        if not payload["learners"]:
            raise ValueError("learners array is required and must not be empty for Learner AI request")
        for i, learner in enumerate(payload["learners"]):
            for field_name in _LEARNER_FIELDS:
                if not isinstance(learner, Mapping) or not learner.get(field_name):
                    raise ValueError(f"Learner at index {i} is missing {field_name}")
        return payload

    def unwrap_reply(self, data: Any) -> Any:
        """Unwrap, then decode the JSON Learner AI returns inside `answer`.

        A parsed answer yields its `data` field when present. Without an
        answer string, a result whose `data` already holds `learners_data`
        (the Coordinator unwrapped it for us) yields that `data`.
        """
        result = unwrap(data)
        if not isinstance(result, dict):
            return result
        answer = result.get("answer")
        if isinstance(answer, str):
            try:
                parsed = json.loads(answer)
            except ValueError:
                logger.warning("[LearnerAIGateway] response.answer is not valid JSON, returning it unparsed")
                return result
            if isinstance(parsed, dict) and present(parsed.get("data")):
                return parsed["data"]
            return parsed
        inner = result.get("data")
        if isinstance(inner, dict) and present(inner.get("learners_data")):
            return inner
        return result

    async def get_batch_career_paths(self, request: Mapping[str, Any]) -> Any:
        return await self.send(self.build_request(request))
