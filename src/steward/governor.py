"""Gatekeeper for every side-effecting operation the assistant requests.

The :class:`InvocationGovernor` sits between the model's tool calls and the
operation executor. Repeated identical calls inside a short window return the
cached result. Writes and deletes wait for the approval collaborators when
they are registered. Observers see a started/finished pair for every executed
call, which the completion tracker turns into its pending count.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .approval import ApprovalDecision, ApprovalResponse, DeleteApprover, WriteApprover
from .tools.completion import CompletionTracker
from .tools.diff import DiffLine, collapse_context, compute_diff, count_changes, split_lines
from .tools.operations import (
    OperationExecutor,
    capture_prestate,
    describe_arguments,
    parse_arguments,
)

__all__ = [
    "InvocationCall",
    "InvocationGovernor",
    "InvocationListener",
    "InvocationOutcome",
    "InvocationResult",
    "OperationType",
    "TrackerListener",
    "describe_invocation",
    "is_mutating",
    "make_call_key",
    "truncate_result",
]

LOGGER = logging.getLogger(__name__)

READ_DEDUP_WINDOW = 2.0
DEFAULT_MUTATION_WINDOW = 5.0
MAX_PREVIEW_LINES = 10
MAX_RESULT_LENGTH = 200
ALREADY_COMPLETED = "Operation already completed."

WRITE_OPERATIONS = frozenset({"write_file", "create_file"})
DELETE_OPERATIONS = frozenset({"delete_file", "delete_folder"})

_PATH_KEYS = ("relative_path", "relativePath", "path")
_LINE_COUNT_RE = re.compile(r"\((\d+) lines?\)")


class OperationType(str, Enum):
    """Display categories for completed operations."""

    WRITE = "Write"
    UPDATE = "Update"
    READ = "Read"
    DELETE = "Delete"
    DELETE_FOLDER = "DeleteFolder"
    CREATE_FOLDER = "CreateFolder"
    LIST = "List"
    GLOB = "Glob"
    SEARCH = "Search"


@dataclass(slots=True)
class InvocationCall:
    """Announcement that an operation is about to run."""

    name: str
    description: str
    arguments: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class InvocationOutcome:
    """Structured summary of a successful operation for review output."""

    operation_type: OperationType
    file_path: str = ""
    line_count: int = 0
    is_new_file: bool = False
    content_preview: Optional[str] = None
    remaining_lines: int = 0
    inline_diff: List[DiffLine] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0
    approval_was_shown: bool = False


@dataclass(slots=True)
class InvocationResult:
    """Outcome notification emitted once an operation settles."""

    name: str
    result: str
    success: bool
    outcome: Optional[InvocationOutcome] = None


@dataclass(slots=True)
class _InvocationRecord:
    key: str
    timestamp: float
    result: str


class InvocationListener:
    """Observer base class; override only the notifications you need."""

    def on_started(self) -> None:
        pass

    def on_invoked(self, call: InvocationCall) -> None:
        pass

    def on_completed(self, result: InvocationResult) -> None:
        pass

    def on_finished(self) -> None:
        pass


class TrackerListener(InvocationListener):
    """Feed governor pendency into a :class:`CompletionTracker`."""

    def __init__(self, tracker: CompletionTracker) -> None:
        self.tracker = tracker

    def on_started(self) -> None:
        self.tracker.register_start()

    def on_finished(self) -> None:
        self.tracker.register_completion()


def is_mutating(name: str) -> bool:
    lowered = name.lower()
    return "write" in lowered or "create" in lowered or "delete" in lowered


def _argument(arguments: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = arguments.get(key)
        if value is not None:
            return str(value)
    return None


def _content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).digest()[:8].hex().upper()


def make_call_key(name: str, arguments: Mapping[str, Any]) -> str:
    """Return the dedup key for a call.

    File writes key on path plus a short content hash so a rewrite with new
    content is never suppressed; everything else keys on its full arguments.
    """
    if name in WRITE_OPERATIONS:
        parts = [name]
        path = _argument(arguments, *_PATH_KEYS)
        if path is not None:
            parts.append(path)
        content = arguments.get("content")
        if content is not None:
            parts.append(_content_hash(str(content)))
        return ":".join(parts)
    canonical = json.dumps(describe_arguments(arguments), sort_keys=True, separators=(",", ":"))
    return f"{name}:{canonical}"


def describe_invocation(name: str, arguments: Mapping[str, Any]) -> str:
    """Return a short human-readable description of a pending call."""
    path = _argument(arguments, *_PATH_KEYS)
    templates = {
        "create_folder": ("Creating folder {}", "Creating folder", path),
        "write_file": ("Writing to {}", "Writing file", path),
        "create_file": ("Writing to {}", "Writing file", path),
        "delete_file": ("Deleting {}", "Deleting file", path),
        "delete_folder": ("Deleting folder {}", "Deleting folder", path),
        "read_file": ("Reading {}", "Reading file", path),
        "list_files_by_pattern": (
            "Finding files matching '{}'",
            "Listing files",
            _argument(arguments, "pattern"),
        ),
        "search_in_files": (
            "Searching for '{}'",
            "Searching files",
            _argument(arguments, "search_text", "searchText", "query"),
        ),
        "get_absolute_path": ("Getting absolute path for {}", "Getting absolute path", path),
    }
    if name == "list_all_files":
        return "Listing all project files"
    if name in templates:
        template, fallback, value = templates[name]
        return template.format(value) if value is not None else fallback
    return name


def truncate_result(result: str, limit: int = MAX_RESULT_LENGTH) -> str:
    if not result:
        return "[empty]"
    if len(result) <= limit:
        return result
    return result[:limit] + "... [truncated]"


class InvocationGovernor:
    """Route operations requested by the model through dedup and approval.

    ``invoke`` is safe to call concurrently from one event loop. Approval
    prompts are serialized so only one is shown at a time.
    """

    def __init__(
        self,
        executor: OperationExecutor,
        *,
        project_root: Path | str | None = None,
        dedup_window: float = DEFAULT_MUTATION_WINDOW,
        read_window: float = READ_DEDUP_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._executor = executor
        self._project_root = Path(project_root).resolve() if project_root is not None else None
        self._mutation_window = dedup_window
        self._read_window = read_window
        self._clock = clock
        self._recent: Dict[str, _InvocationRecord] = {}
        self._inflight: Dict[str, asyncio.Future[str]] = {}
        self._pending = 0
        self._cache_lock = asyncio.Lock()
        self._approval_lock = asyncio.Lock()
        self._listeners: List[InvocationListener] = []
        self.write_approver: Optional[WriteApprover] = None
        self.delete_approver: Optional[DeleteApprover] = None

    @property
    def pending_count(self) -> int:
        return self._pending

    def add_listener(self, listener: InvocationListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: InvocationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear_cache(self) -> None:
        """Forget recent calls and reset the pending counter for a new conversation."""
        self._recent.clear()
        self._inflight.clear()
        self._pending = 0

    async def invoke(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> str:
        arguments = dict(arguments or {})
        window = self._mutation_window if is_mutating(name) else self._read_window
        key = make_call_key(name, arguments)

        async with self._cache_lock:
            record = self._recent.get(key)
            if record is not None and self._clock() - record.timestamp < window:
                LOGGER.debug("Skipping duplicate call %s", key)
                return record.result or ALREADY_COMPLETED
            inflight = self._inflight.get(key)
            if inflight is None:
                inflight = asyncio.get_running_loop().create_future()
                self._inflight[key] = inflight
                self._pending += 1
                owner = True
            else:
                owner = False

        if not owner:
            LOGGER.debug("Joining in-flight call %s", key)
            return await asyncio.shield(inflight)

        try:
            result = await self._execute(name, arguments, key)
        finally:
            if self._inflight.get(key) is inflight:
                del self._inflight[key]
            if not inflight.done():
                inflight.cancel()
        inflight.set_result(result)
        return result

    async def _execute(self, name: str, arguments: Dict[str, Any], key: str) -> str:
        self._notify("on_started")
        self._notify(
            "on_invoked",
            InvocationCall(
                name=name,
                description=describe_invocation(name, arguments),
                arguments=describe_arguments(arguments),
            ),
        )

        try:
            try:
                parse_arguments(name, arguments)
                prestate = await self._capture_prestate(name, arguments)
                approval_shown, declined = await self._request_approval(name, arguments, prestate)
                if declined is not None:
                    self._notify(
                        "on_completed",
                        InvocationResult(name=name, result=truncate_result(declined), success=True),
                    )
                    return declined
                raw_result = await self._executor(name, arguments)
            except Exception as error:
                LOGGER.warning("Operation %s failed: %s", name, error)
                self._notify(
                    "on_completed",
                    InvocationResult(name=name, result=f"Error: {error}", success=False),
                )
                return f"Function failed: {error}"

            result = "" if raw_result is None else str(raw_result)
            async with self._cache_lock:
                self._recent[key] = _InvocationRecord(key=key, timestamp=self._clock(), result=result)
                self._cleanup()

            failed = result.lower().startswith("error:")
            outcome = None
            if not failed:
                outcome = self._build_outcome(name, arguments, result, prestate, approval_shown)
            self._notify(
                "on_completed",
                InvocationResult(
                    name=name,
                    result=truncate_result(result),
                    success=not failed,
                    outcome=outcome,
                ),
            )
            return result
        finally:
            if self._pending > 0:
                self._pending -= 1
            self._notify("on_finished")

    # ----------------------------------------------------------------- helpers
    def _notify(self, event: str, *payload: Any) -> None:
        for listener in list(self._listeners):
            getattr(listener, event)(*payload)

    def _cleanup(self) -> None:
        cutoff = self._clock() - self._mutation_window
        for stale in [key for key, record in self._recent.items() if record.timestamp < cutoff]:
            del self._recent[stale]

    async def _capture_prestate(self, name: str, arguments: Mapping[str, Any]) -> Optional[str]:
        if self._project_root is None or name not in WRITE_OPERATIONS | DELETE_OPERATIONS:
            return None
        path = _argument(arguments, *_PATH_KEYS)
        if not path:
            return None
        return await asyncio.to_thread(capture_prestate, self._project_root, path)

    async def _request_approval(
        self, name: str, arguments: Mapping[str, Any], prestate: Optional[str]
    ) -> tuple[bool, Optional[str]]:
        """Return whether approval was requested and the replacement result when declined."""
        path = _argument(arguments, *_PATH_KEYS)
        if not path:
            return False, None

        if name in WRITE_OPERATIONS and self.write_approver is not None:
            content = arguments.get("content")
            if content is None:
                return False, None
            async with self._approval_lock:
                decision = await self.write_approver(path, prestate, str(content))
            return True, self._declined_write(path, decision)

        if name in DELETE_OPERATIONS and self.delete_approver is not None:
            async with self._approval_lock:
                decision = await self.delete_approver(path, prestate)
            return True, self._declined_delete(path, decision)

        return False, None

    @staticmethod
    def _declined_write(path: str, decision: ApprovalDecision) -> Optional[str]:
        if decision.response is ApprovalResponse.DENIED:
            return f"User denied the file write to '{path}'. Do not retry this write unless the user asks."
        if decision.response is ApprovalResponse.NEW_INSTRUCTIONS:
            return (
                f"User rejected the file write to '{path}' and provided new instructions: "
                f"{decision.message or ''}"
            )
        return None

    @staticmethod
    def _declined_delete(path: str, decision: ApprovalDecision) -> Optional[str]:
        if decision.response is ApprovalResponse.DENIED:
            return f"User denied the deletion of '{path}'. Do not retry unless the user asks."
        if decision.response is ApprovalResponse.NEW_INSTRUCTIONS:
            return (
                f"User rejected the deletion of '{path}' and provided new instructions: "
                f"{decision.message or ''}"
            )
        return None

    def _build_outcome(
        self,
        name: str,
        arguments: Mapping[str, Any],
        result: str,
        prestate: Optional[str],
        approval_shown: bool,
    ) -> Optional[InvocationOutcome]:
        path = _argument(arguments, *_PATH_KEYS) or ""

        if name in WRITE_OPERATIONS:
            new_content = str(arguments.get("content") or "")
            lines = split_lines(new_content)
            if prestate is None:
                preview = lines[:MAX_PREVIEW_LINES]
                return InvocationOutcome(
                    operation_type=OperationType.WRITE,
                    file_path=path,
                    line_count=len(lines),
                    is_new_file=True,
                    content_preview="\n".join(preview),
                    remaining_lines=max(0, len(lines) - len(preview)),
                    approval_was_shown=approval_shown,
                )
            diff = compute_diff(prestate, new_content)
            additions, deletions = count_changes(diff)
            return InvocationOutcome(
                operation_type=OperationType.UPDATE,
                file_path=path,
                line_count=len(lines),
                inline_diff=collapse_context(diff, 3),
                additions=additions,
                deletions=deletions,
                approval_was_shown=approval_shown,
            )

        if name == "read_file":
            match = _LINE_COUNT_RE.search(result)
            return InvocationOutcome(
                operation_type=OperationType.READ,
                file_path=path,
                line_count=int(match.group(1)) if match else 0,
            )

        if name == "delete_file":
            line_count = len(prestate.split("\n")) if prestate else 0
            return InvocationOutcome(
                operation_type=OperationType.DELETE,
                file_path=path,
                line_count=line_count,
                deletions=line_count,
                approval_was_shown=approval_shown,
            )

        if name == "delete_folder":
            return InvocationOutcome(
                operation_type=OperationType.DELETE_FOLDER,
                file_path=path,
                approval_was_shown=approval_shown,
            )
        if name == "create_folder":
            return InvocationOutcome(operation_type=OperationType.CREATE_FOLDER, file_path=path)
        if name == "list_all_files":
            return InvocationOutcome(operation_type=OperationType.LIST)
        if name == "list_files_by_pattern":
            return InvocationOutcome(
                operation_type=OperationType.GLOB,
                file_path=_argument(arguments, "pattern") or "*.*",
            )
        if name == "search_in_files":
            return InvocationOutcome(
                operation_type=OperationType.SEARCH,
                file_path=_argument(arguments, "search_text", "searchText", "query") or "",
            )
        return None
