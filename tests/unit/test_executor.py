from __future__ import annotations

import asyncio
from typing import List, Sequence

import pytest

from steward.planning.executor import PlanExecutor
from steward.planning.schemas import Plan, PlanStatus, ProgressKind, Step, StepStatus
from steward.tools.completion import CompletionTracker


def _plan(count: int) -> Plan:
    return Plan(
        original_request="do several things",
        steps=[
            Step(step_number=index, description=f"Step {index}", instruction=f"instruction {index}")
            for index in range(1, count + 1)
        ],
    )


class _StepService:
    def __init__(self, *, fail_on: Sequence[int] = (), error_result_on: Sequence[int] = ()) -> None:
        self.fail_on = set(fail_on)
        self.error_result_on = set(error_result_on)
        self.calls: List[tuple[str, List[str]]] = []

    async def request_plan(self, message: str) -> str:
        raise AssertionError("not used")

    async def execute_step(self, instruction: str, prior_context: Sequence[str]) -> str:
        self.calls.append((instruction, list(prior_context)))
        number = len(self.calls)
        if number in self.fail_on:
            raise RuntimeError(f"step {number} exploded")
        if number in self.error_result_on:
            return "Error: could not write file"
        return f"result {number}"


async def _collect(executor: PlanExecutor, plan: Plan) -> List[ProgressKind]:
    return [event.kind async for event in executor.execute_plan(plan)]


@pytest.mark.asyncio
async def test_successful_plan_emits_events_and_completes() -> None:
    service = _StepService()
    plan = _plan(2)
    events = [event async for event in PlanExecutor(service, CompletionTracker()).execute_plan(plan)]

    assert [event.kind for event in events] == [
        ProgressKind.PLAN_CREATED,
        ProgressKind.STEP_STARTED,
        ProgressKind.STEP_COMPLETED,
        ProgressKind.STEP_STARTED,
        ProgressKind.STEP_COMPLETED,
        ProgressKind.PLAN_COMPLETED,
    ]
    assert events[0].message == "Created plan with 2 steps"
    assert events[2].message == "result 1"
    assert events[-1].current_step == 2
    assert events[-1].message == "All steps completed successfully"
    assert plan.status is PlanStatus.COMPLETED
    assert plan.execution_summary == "Successfully completed 2 of 2 steps."
    assert plan.progress_percentage == 100
    assert service.calls[1] == ("instruction 2", ["Step 1 (Step 1): result 1"])


@pytest.mark.asyncio
async def test_failed_step_is_skipped_and_plan_fails() -> None:
    service = _StepService(fail_on=[2])
    plan = _plan(3)

    kinds = await _collect(PlanExecutor(service, CompletionTracker()), plan)

    assert ProgressKind.STEP_FAILED in kinds
    assert ProgressKind.PLAN_COMPLETED not in kinds
    assert [step.status for step in plan.steps] == [
        StepStatus.COMPLETED,
        StepStatus.SKIPPED,
        StepStatus.COMPLETED,
    ]
    assert plan.steps[1].error_message == "step 2 exploded"
    assert len(service.calls) == 3
    assert plan.status is PlanStatus.FAILED
    assert plan.completed_steps_count == 2
    assert plan.execution_summary == "Completed 2 of 3 steps with some failures."


@pytest.mark.asyncio
async def test_error_result_counts_as_failure() -> None:
    service = _StepService(error_result_on=[1])
    plan = _plan(1)

    kinds = await _collect(PlanExecutor(service, CompletionTracker()), plan)

    assert kinds[-1] is ProgressKind.STEP_FAILED
    assert plan.steps[0].error_message == "Error: could not write file"
    assert plan.status is PlanStatus.FAILED


@pytest.mark.asyncio
async def test_cancelling_while_handling_failure_stops_the_plan() -> None:
    service = _StepService(fail_on=[1])
    plan = _plan(3)
    executor = PlanExecutor(service, CompletionTracker())
    kinds: List[ProgressKind] = []

    async for event in executor.execute_plan(plan):
        kinds.append(event.kind)
        if event.kind is ProgressKind.STEP_FAILED:
            executor.cancel_plan(plan)

    assert kinds[-2:] == [ProgressKind.STEP_FAILED, ProgressKind.PLAN_CANCELLED]
    assert len(service.calls) == 1
    assert plan.status is PlanStatus.CANCELLED
    assert plan.steps[0].status is StepStatus.FAILED
    assert plan.execution_summary == "Plan cancelled by user."


@pytest.mark.asyncio
async def test_failure_hook_can_cancel_before_next_step() -> None:
    service = _StepService(fail_on=[1])
    plan = _plan(2)
    seen: List[int] = []

    async def on_failed(failed_plan: Plan, step: Step) -> None:
        seen.append(step.step_number)
        executor.cancel_plan(failed_plan)

    executor = PlanExecutor(service, CompletionTracker(), on_step_failed=on_failed)
    kinds = await _collect(executor, plan)

    assert seen == [1]
    assert kinds[-1] is ProgressKind.PLAN_CANCELLED
    assert len(service.calls) == 1


@pytest.mark.asyncio
async def test_raising_failure_hook_falls_back_to_skipping() -> None:
    service = _StepService(fail_on=[1])
    plan = _plan(2)

    async def on_failed(failed_plan: Plan, step: Step) -> None:
        raise RuntimeError("prompt closed")

    executor = PlanExecutor(service, CompletionTracker(), on_step_failed=on_failed)
    kinds = await _collect(executor, plan)

    assert kinds[-1] is ProgressKind.STEP_COMPLETED
    assert [step.status for step in plan.steps] == [StepStatus.SKIPPED, StepStatus.COMPLETED]
    assert len(service.calls) == 2
    assert plan.status is PlanStatus.FAILED
    assert plan.execution_summary == "Completed 1 of 2 steps with some failures."


@pytest.mark.asyncio
async def test_completed_and_skipped_steps_are_not_rerun() -> None:
    service = _StepService()
    plan = _plan(3)
    plan.steps[0].status = StepStatus.COMPLETED
    plan.steps[0].result = "earlier"
    executor = PlanExecutor(service, CompletionTracker())
    executor.skip_step(plan, plan.steps[1])

    await _collect(executor, plan)

    assert service.calls == [("instruction 3", ["Step 1 (Step 1): earlier"])]
    assert plan.status is PlanStatus.COMPLETED
    assert plan.execution_summary == "Successfully completed 2 of 3 steps."


@pytest.mark.asyncio
async def test_executor_waits_for_pending_operations_between_steps() -> None:
    tracker = CompletionTracker()
    order: List[str] = []

    class _BackgroundService(_StepService):
        async def execute_step(self, instruction: str, prior_context: Sequence[str]) -> str:
            result = await super().execute_step(instruction, prior_context)
            tracker.register_start()

            async def finish() -> None:
                await asyncio.sleep(0.01)
                order.append(f"finished {instruction}")
                tracker.register_completion()

            asyncio.get_running_loop().create_task(finish())
            return result

    plan = _plan(2)
    async for event in PlanExecutor(_BackgroundService(), tracker).execute_plan(plan):
        if event.kind is ProgressKind.STEP_STARTED:
            order.append(f"start {event.current_step}")

    assert order == ["start 1", "finished instruction 1", "start 2", "finished instruction 2"]


@pytest.mark.asyncio
async def test_drain_timeout_is_not_fatal() -> None:
    tracker = CompletionTracker()
    tracker.register_start()
    plan = _plan(1)

    kinds = await _collect(PlanExecutor(_StepService(), tracker, completion_timeout=0.01), plan)

    assert kinds[-1] is ProgressKind.PLAN_COMPLETED
