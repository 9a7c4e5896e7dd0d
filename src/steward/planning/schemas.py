"""Typed records for plans, steps, and the progress events emitted while running them."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "MAX_DESCRIPTION_LENGTH",
    "Plan",
    "PlanStatus",
    "ProgressEvent",
    "ProgressKind",
    "RecordModel",
    "Step",
    "StepStatus",
]

MAX_DESCRIPTION_LENGTH = 60


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False, validate_assignment=True)


class PlanStatus(str, Enum):
    """Lifecycle states for a plan."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class StepStatus(str, Enum):
    """Lifecycle states for a single step."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class Step(RecordModel):
    """Single unit of work executed by one model turn."""

    step_number: int = Field(ge=1)
    description: str
    instruction: str
    status: StepStatus = StepStatus.PENDING
    result: Optional[str] = None
    error_message: Optional[str] = None

    @field_validator("description")
    @classmethod
    def _shorten_description(cls, value: str) -> str:
        value = value.strip()
        if len(value) > MAX_DESCRIPTION_LENGTH:
            return value[: MAX_DESCRIPTION_LENGTH - 3] + "..."
        return value

    @property
    def is_finished(self) -> bool:
        return self.status in (StepStatus.COMPLETED, StepStatus.SKIPPED)


class Plan(RecordModel):
    """Ordered steps derived from one user request."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    original_request: str
    steps: List[Step] = Field(default_factory=list)
    status: PlanStatus = PlanStatus.PENDING
    execution_summary: Optional[str] = None

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def completed_steps_count(self) -> int:
        """Number of steps that completed; skipped steps do not count."""
        return sum(1 for step in self.steps if step.status is StepStatus.COMPLETED)

    @property
    def progress_percentage(self) -> int:
        if not self.steps:
            return 0
        return int(100 * self.completed_steps_count / len(self.steps))

    @property
    def current_step(self) -> Optional[Step]:
        for step in self.steps:
            if step.status is StepStatus.IN_PROGRESS:
                return step
        return None


class ProgressKind(str, Enum):
    """Event variants yielded by the plan executor."""

    PLAN_CREATED = "PLAN_CREATED"
    STEP_STARTED = "STEP_STARTED"
    STEP_COMPLETED = "STEP_COMPLETED"
    STEP_FAILED = "STEP_FAILED"
    PLAN_COMPLETED = "PLAN_COMPLETED"
    PLAN_CANCELLED = "PLAN_CANCELLED"


class ProgressEvent(RecordModel):
    """Progress notification; ``current_step`` is 0 for plan-level events."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: ProgressKind
    plan_id: str
    current_step: int = 0
    total_steps: int = 0
    step_description: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def plan_created(cls, plan: Plan) -> "ProgressEvent":
        return cls(
            kind=ProgressKind.PLAN_CREATED,
            plan_id=plan.id,
            total_steps=plan.total_steps,
            message=f"Created plan with {plan.total_steps} steps",
        )

    @classmethod
    def step_started(cls, plan: Plan, step: Step) -> "ProgressEvent":
        return cls(
            kind=ProgressKind.STEP_STARTED,
            plan_id=plan.id,
            current_step=step.step_number,
            total_steps=plan.total_steps,
            step_description=step.description,
        )

    @classmethod
    def step_completed(cls, plan: Plan, step: Step) -> "ProgressEvent":
        return cls(
            kind=ProgressKind.STEP_COMPLETED,
            plan_id=plan.id,
            current_step=step.step_number,
            total_steps=plan.total_steps,
            step_description=step.description,
            message=step.result,
        )

    @classmethod
    def step_failed(cls, plan: Plan, step: Step) -> "ProgressEvent":
        return cls(
            kind=ProgressKind.STEP_FAILED,
            plan_id=plan.id,
            current_step=step.step_number,
            total_steps=plan.total_steps,
            step_description=step.description,
            message=step.error_message,
        )

    @classmethod
    def plan_completed(cls, plan: Plan) -> "ProgressEvent":
        return cls(
            kind=ProgressKind.PLAN_COMPLETED,
            plan_id=plan.id,
            current_step=plan.total_steps,
            total_steps=plan.total_steps,
            message="All steps completed successfully",
        )

    @classmethod
    def plan_cancelled(cls, plan: Plan, step: Optional[Step] = None) -> "ProgressEvent":
        return cls(
            kind=ProgressKind.PLAN_CANCELLED,
            plan_id=plan.id,
            current_step=step.step_number if step is not None else 0,
            total_steps=plan.total_steps,
            message="Plan cancelled by user",
        )
