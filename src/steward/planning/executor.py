"""Run a plan step by step and stream progress events to the caller."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from ..models.llm_client import ModelService
from ..tools.completion import CompletionTracker
from .schemas import Plan, PlanStatus, ProgressEvent, Step, StepStatus

__all__ = ["PlanExecutor", "StepFailureHook"]

LOGGER = logging.getLogger(__name__)

StepFailureHook = Callable[[Plan, Step], Awaitable[None]]


def _summarise(step: Step) -> str:
    return f"Step {step.step_number} ({step.description}): {step.result}"


class PlanExecutor:
    """Drive a :class:`Plan` through the model collaborator one step at a time.

    Events are produced lazily; the caller consumes them with ``async for``.
    Between steps the executor waits for the completion tracker to drain so
    operations started by one step finish before the next one begins. A failed
    step is skipped and execution continues unless the plan was cancelled,
    either while the caller handled the ``STEP_FAILED`` event or from the
    ``on_step_failed`` hook.
    """

    def __init__(
        self,
        service: ModelService,
        tracker: CompletionTracker,
        *,
        completion_timeout: float = 30.0,
        on_step_failed: Optional[StepFailureHook] = None,
    ) -> None:
        self._service = service
        self._tracker = tracker
        self._completion_timeout = completion_timeout
        self._on_step_failed = on_step_failed

    async def execute_plan(self, plan: Plan) -> AsyncIterator[ProgressEvent]:
        plan.status = PlanStatus.IN_PROGRESS
        yield ProgressEvent.plan_created(plan)

        prior_context: List[str] = [
            _summarise(step) for step in plan.steps if step.status is StepStatus.COMPLETED
        ]
        failed_steps: set[int] = set()

        for step in plan.steps:
            if plan.status is PlanStatus.CANCELLED:
                yield ProgressEvent.plan_cancelled(plan, step)
                return
            if step.is_finished:
                continue

            step.status = StepStatus.IN_PROGRESS
            yield ProgressEvent.step_started(plan, step)

            error_message: Optional[str] = None
            try:
                result = await self._service.execute_step(step.instruction, list(prior_context))
            except Exception as error:
                LOGGER.warning("Step %d failed: %s", step.step_number, error)
                error_message = str(error) or type(error).__name__
            else:
                if result.lstrip().lower().startswith("error:"):
                    error_message = result
                else:
                    step.result = result

            await self._drain()

            if error_message is None:
                step.status = StepStatus.COMPLETED
                prior_context.append(_summarise(step))
                yield ProgressEvent.step_completed(plan, step)
                continue

            step.status = StepStatus.FAILED
            step.error_message = error_message
            failed_steps.add(step.step_number)
            yield ProgressEvent.step_failed(plan, step)

            if self._on_step_failed is not None and plan.status is not PlanStatus.CANCELLED:
                try:
                    await self._on_step_failed(plan, step)
                except Exception as error:
                    LOGGER.warning(
                        "Step failure hook raised for step %d of plan %s: %s", step.step_number, plan.id, error
                    )

            if plan.status is PlanStatus.CANCELLED:
                yield ProgressEvent.plan_cancelled(plan, step)
                return
            step.status = StepStatus.SKIPPED

        if plan.status is PlanStatus.CANCELLED:
            yield ProgressEvent.plan_cancelled(plan)
            return

        finished = all(step.is_finished for step in plan.steps)
        completed = plan.completed_steps_count
        total = plan.total_steps
        if finished and not failed_steps:
            plan.status = PlanStatus.COMPLETED
            plan.execution_summary = f"Successfully completed {completed} of {total} steps."
            yield ProgressEvent.plan_completed(plan)
            return

        plan.status = PlanStatus.FAILED
        plan.execution_summary = f"Completed {completed} of {total} steps with some failures."
        LOGGER.info("Plan %s finished with failures: %s", plan.id, plan.execution_summary)

    def cancel_plan(self, plan: Plan) -> None:
        """Mark ``plan`` cancelled; the running executor stops at its next check."""
        plan.status = PlanStatus.CANCELLED
        plan.execution_summary = "Plan cancelled by user."

    def skip_step(self, plan: Plan, step: Step) -> None:
        if step not in plan.steps:
            raise ValueError(f"Step {step.step_number} does not belong to plan {plan.id}")
        step.status = StepStatus.SKIPPED

    async def _drain(self) -> None:
        if not await self._tracker.wait_for_all_completions(self._completion_timeout):
            LOGGER.warning(
                "Continuing with %d operation(s) still pending after %.1fs",
                self._tracker.pending_count,
                self._completion_timeout,
            )
