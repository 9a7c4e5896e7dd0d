"""Ask the model for a plan and turn its reply into a :class:`Plan`."""

from __future__ import annotations

import logging

from ..models.llm_client import ModelService
from ..tools.retry import execute_with_retry
from .parser import parse_plan_response
from .schemas import Plan, Step

__all__ = ["FALLBACK_DESCRIPTION", "PLANNING_FAILED_DESCRIPTION", "PlanGenerator"]

LOGGER = logging.getLogger(__name__)

FALLBACK_DESCRIPTION = "Execute request"
PLANNING_FAILED_DESCRIPTION = "Execute request (planning failed)"


class PlanGenerator:
    """Create plans through a model collaborator, degrading to a single step."""

    def __init__(self, service: ModelService, *, max_retries: int = 2) -> None:
        self._service = service
        self._max_retries = max_retries

    async def create_plan(self, message: str) -> Plan:
        try:
            response = await execute_with_retry(
                lambda: self._service.request_plan(message),
                max_retries=self._max_retries,
                label="Plan generation",
            )
        except Exception as error:
            LOGGER.warning("Plan generation failed, executing request directly: %s", error)
            return Plan(
                original_request=message,
                steps=[Step(step_number=1, description=PLANNING_FAILED_DESCRIPTION, instruction=message)],
                execution_summary=f"Planning failed: {error}. Falling back to direct execution.",
            )

        steps = parse_plan_response(response)
        if not steps:
            LOGGER.warning("Plan response contained no recognisable steps; using a single step")
            steps = [Step(step_number=1, description=FALLBACK_DESCRIPTION, instruction=message)]
        return Plan(original_request=message, steps=steps)
