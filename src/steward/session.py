"""Per-conversation wiring of the governor, tracker, assistant, and planner."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import AsyncIterator, Optional

from .approval import SessionApprovalPolicy
from .config import StewardConfig
from .governor import InvocationGovernor, InvocationListener, TrackerListener
from .models.assistant import Assistant
from .models.llm_client import ModelClient
from .planning.classifier import ComplexityClassifier
from .planning.executor import PlanExecutor, StepFailureHook
from .planning.generator import PlanGenerator
from .planning.schemas import Plan, ProgressEvent
from .tools.completion import CompletionTracker
from .tools.operations import FileSystemOperations, OperationExecutor

__all__ = ["Session"]

LOGGER = logging.getLogger(__name__)


class Session:
    """One conversation: a single governor, tracker, and assistant shared by every request.

    ``reset`` starts a fresh conversation by clearing the dedup cache, the
    pending counter, the approval bypasses, and the chat history together.
    """

    def __init__(
        self,
        config: StewardConfig,
        client: ModelClient,
        *,
        project_root: Path | str,
        executor: Optional[OperationExecutor] = None,
        approvals: Optional[SessionApprovalPolicy] = None,
        on_step_failed: Optional[StepFailureHook] = None,
    ) -> None:
        self.config = config
        self.project_root = Path(project_root).resolve()
        self.operations = executor or FileSystemOperations(
            self.project_root, ignore_directories=config.project.ignore_directories
        )
        self.tracker = CompletionTracker()
        self.governor = InvocationGovernor(
            self.operations,
            project_root=self.project_root,
            dedup_window=config.governor.dedup_window,
        )
        self.governor.add_listener(TrackerListener(self.tracker))
        self.approvals = approvals
        if approvals is not None:
            self.governor.write_approver = approvals.approve_write
            self.governor.delete_approver = approvals.approve_delete

        self.assistant = Assistant(
            client,
            self.governor,
            project_root=self.project_root,
            max_tool_iterations=config.execution.max_tool_iterations,
            max_retries=config.retry.max_retries,
        )
        self.classifier = ComplexityClassifier(enabled=config.planning.enabled)
        self.generator = PlanGenerator(self.assistant, max_retries=config.retry.max_retries)
        self.executor = PlanExecutor(
            self.assistant,
            self.tracker,
            completion_timeout=config.execution.completion_timeout,
            on_step_failed=on_step_failed,
        )

    def add_listener(self, listener: InvocationListener) -> None:
        self.governor.add_listener(listener)

    def requires_planning(self, message: str) -> bool:
        return self.classifier.requires_planning(message)

    async def create_plan(self, message: str) -> Plan:
        return await self.generator.create_plan(message)

    def execute_plan(self, plan: Plan) -> AsyncIterator[ProgressEvent]:
        return self.executor.execute_plan(plan)

    def cancel_plan(self, plan: Plan) -> None:
        self.executor.cancel_plan(plan)

    async def ask(self, message: str) -> str:
        """Send ``message`` straight to the assistant and wait for operations to settle."""
        content = await self.assistant.chat(message)
        await self.tracker.wait_for_all_completions(self.config.execution.completion_timeout)
        return content

    def reset(self) -> None:
        self.governor.clear_cache()
        self.tracker.reset()
        self.assistant.clear_history()
        if self.approvals is not None:
            self.approvals.reset()
        LOGGER.debug("Session state cleared")
