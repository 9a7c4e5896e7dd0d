from __future__ import annotations

from typing import List, Sequence

import pytest

from steward.errors import ModelClientError, ModelTransportError
from steward.planning.generator import PlanGenerator
from steward.planning.schemas import PlanStatus


class _PlanService:
    def __init__(self, *responses: object) -> None:
        self.responses = list(responses)
        self.requests: List[str] = []

    async def request_plan(self, message: str) -> str:
        self.requests.append(message)
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return str(response)

    async def execute_step(self, instruction: str, prior_context: Sequence[str]) -> str:
        raise AssertionError("not used")


@pytest.mark.asyncio
async def test_create_plan_parses_marker_reply() -> None:
    service = _PlanService(
        "---PLAN-START---\nSTEP 1: Scaffold\nDO: Create folders\nSTEP 2: Test\nDO: Add tests\n---PLAN-END---"
    )

    plan = await PlanGenerator(service).create_plan("Build the thing")

    assert plan.original_request == "Build the thing"
    assert plan.status is PlanStatus.PENDING
    assert [step.description for step in plan.steps] == ["Scaffold", "Test"]
    assert plan.execution_summary is None


@pytest.mark.asyncio
async def test_unparseable_reply_becomes_single_step() -> None:
    plan = await PlanGenerator(_PlanService("Sure, I can help!")).create_plan("Do it all")

    assert len(plan.steps) == 1
    assert plan.steps[0].description == "Execute request"
    assert plan.steps[0].instruction == "Do it all"


@pytest.mark.asyncio
async def test_transient_failure_is_retried_before_parsing() -> None:
    service = _PlanService(ModelTransportError("connection refused"), "1. One\n2. Two")

    plan = await PlanGenerator(service, max_retries=2).create_plan("Two things")

    assert len(service.requests) == 2
    assert [step.description for step in plan.steps] == ["One", "Two"]


@pytest.mark.asyncio
async def test_planning_failure_degrades_to_direct_execution() -> None:
    service = _PlanService(ModelClientError("HTTP 401: unauthorized"))

    plan = await PlanGenerator(service).create_plan("Refactor everything")

    assert len(service.requests) == 1
    assert plan.steps[0].description == "Execute request (planning failed)"
    assert plan.steps[0].instruction == "Refactor everything"
    assert plan.execution_summary == (
        "Planning failed: HTTP 401: unauthorized. Falling back to direct execution."
    )
