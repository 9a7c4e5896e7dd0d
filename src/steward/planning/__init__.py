"""Planning: decide whether to plan, build plans, and run them."""

from .classifier import ComplexityClassifier
from .executor import PlanExecutor
from .generator import PlanGenerator
from .parser import parse_plan_response
from .schemas import Plan, PlanStatus, ProgressEvent, ProgressKind, Step, StepStatus

__all__ = [
    "ComplexityClassifier",
    "Plan",
    "PlanExecutor",
    "PlanGenerator",
    "PlanStatus",
    "ProgressEvent",
    "ProgressKind",
    "Step",
    "StepStatus",
    "parse_plan_response",
]
