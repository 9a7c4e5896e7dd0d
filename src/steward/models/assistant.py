"""Model collaborator that runs the tool-calling loop through the governor."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic.type_adapter import TypeAdapter

from ..governor import InvocationGovernor
from ..prompts import (
    ASSISTANT_SYSTEM_PROMPT,
    render_plan_prompt,
    render_project_context,
    render_step_prompt,
)
from ..tools.operations import OPERATION_ARGUMENTS
from ..tools.retry import execute_with_retry
from .llm_client import ChatMessage, ChatReply, ChatRequest, ModelClient

__all__ = ["Assistant", "OPERATION_DESCRIPTIONS", "build_tool_schemas"]

LOGGER = logging.getLogger(__name__)

OPERATION_DESCRIPTIONS: Dict[str, str] = {
    "list_all_files": "List every file in the project, skipping build and dependency folders.",
    "list_files_by_pattern": "List project files matching a glob pattern such as '*.py' or 'src/**/*.ts'.",
    "read_file": "Read the full text of a project file.",
    "write_file": "Create or overwrite a project file with the given content.",
    "create_file": "Create a project file with the given content.",
    "create_folder": "Create a folder (and any missing parents) inside the project.",
    "delete_file": "Delete a single project file.",
    "delete_folder": "Delete a folder and everything inside it.",
    "search_in_files": "Search project files for text, optionally restricted by a glob pattern.",
    "get_absolute_path": "Return the absolute path for a project-relative path.",
}


def build_tool_schemas(names: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
    """Return OpenAI-style function definitions for the named operations."""
    selected = list(names) if names is not None else list(OPERATION_ARGUMENTS)
    tools: List[Dict[str, Any]] = []
    for name in selected:
        model = OPERATION_ARGUMENTS.get(name)
        if model is None:
            continue
        schema = TypeAdapter(model).json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        tools.append(
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": OPERATION_DESCRIPTIONS.get(name, name),
                    "parameters": schema,
                },
            }
        )
    return tools


class Assistant:
    """Answer prompts with a chat model, executing its operation calls on the way.

    Every operation call goes through the :class:`InvocationGovernor`; calls
    requested together in one reply run concurrently. Each model request is
    retried on transient transport failures.
    """

    def __init__(
        self,
        client: ModelClient,
        governor: InvocationGovernor,
        *,
        project_root: Path | str,
        operations: Optional[Sequence[str]] = None,
        max_tool_iterations: int = 10,
        max_retries: int = 2,
    ) -> None:
        self._client = client
        self._governor = governor
        self._project_root = Path(project_root)
        self._tools = build_tool_schemas(operations)
        self._max_tool_iterations = max(1, max_tool_iterations)
        self._max_retries = max_retries
        self._history: List[ChatMessage] = []

    @property
    def history(self) -> Sequence[ChatMessage]:
        return tuple(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    def _system_messages(self) -> List[ChatMessage]:
        return [
            ChatMessage("system", ASSISTANT_SYSTEM_PROMPT),
            ChatMessage("system", render_project_context(self._project_root)),
        ]

    async def request_plan(self, message: str) -> str:
        request = ChatRequest(
            messages=[
                ChatMessage("system", ASSISTANT_SYSTEM_PROMPT),
                ChatMessage("user", render_plan_prompt(message)),
            ]
        )
        reply = await self._client.complete(request)
        return reply.content

    async def execute_step(self, instruction: str, prior_context: Sequence[str]) -> str:
        messages = self._system_messages()
        messages.append(ChatMessage("user", render_step_prompt(instruction, prior_context)))
        return await self._converse(messages)

    async def chat(self, message: str) -> str:
        """Continue the running conversation with ``message``."""
        if not self._history:
            self._history.extend(self._system_messages())
        self._history.append(ChatMessage("user", message))
        return await self._converse(self._history)

    async def _complete(self, messages: Sequence[ChatMessage]) -> ChatReply:
        request = ChatRequest(messages=list(messages), tools=self._tools)
        return await execute_with_retry(
            lambda: self._client.complete(request),
            max_retries=self._max_retries,
            label="Model request",
        )

    async def _converse(self, messages: List[ChatMessage]) -> str:
        for iteration in range(self._max_tool_iterations):
            reply = await self._complete(messages)
            if not reply.tool_calls:
                messages.append(ChatMessage("assistant", reply.content))
                return reply.content

            LOGGER.debug(
                "Model requested %d operation(s) on iteration %d",
                len(reply.tool_calls),
                iteration + 1,
            )
            messages.append(ChatMessage("assistant", reply.content, tool_calls=tuple(reply.tool_calls)))
            results = await asyncio.gather(
                *(self._governor.invoke(call.name, call.arguments) for call in reply.tool_calls)
            )
            for call, result in zip(reply.tool_calls, results):
                messages.append(ChatMessage("tool", result, tool_call_id=call.id))

        LOGGER.warning("Stopped after %d operation rounds without a final answer", self._max_tool_iterations)
        return (
            f"Error: Stopped after {self._max_tool_iterations} rounds of operations "
            "without a final answer."
        )
