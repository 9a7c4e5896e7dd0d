"""Approval decisions for proposed mutations and the session bypass policy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from .tools.diff import collapse_context, compute_diff, count_changes, render_diff, split_lines

__all__ = [
    "ApprovalDecision",
    "ApprovalPrompt",
    "ApprovalRequest",
    "ApprovalResponse",
    "DeleteApprover",
    "SessionApprovalPolicy",
    "WriteApprover",
]

LOGGER = logging.getLogger(__name__)


class ApprovalResponse(str, Enum):
    """The human's disposition on a proposed mutation."""

    APPROVED = "approved"
    APPROVED_NO_ASK_AGAIN = "approved_no_ask_again"
    DENIED = "denied"
    NEW_INSTRUCTIONS = "new_instructions"


@dataclass(frozen=True, slots=True)
class ApprovalDecision:
    """Decision returned by an approval collaborator; ``message`` carries redirect text."""

    response: ApprovalResponse
    message: Optional[str] = None

    @property
    def proceeds(self) -> bool:
        return self.response in (ApprovalResponse.APPROVED, ApprovalResponse.APPROVED_NO_ASK_AGAIN)

    @classmethod
    def approved(cls) -> "ApprovalDecision":
        return cls(ApprovalResponse.APPROVED)

    @classmethod
    def denied(cls) -> "ApprovalDecision":
        return cls(ApprovalResponse.DENIED)

    @classmethod
    def redirect(cls, message: str) -> "ApprovalDecision":
        return cls(ApprovalResponse.NEW_INSTRUCTIONS, message)


class WriteApprover(Protocol):
    async def __call__(self, path: str, old_content: Optional[str], new_content: str) -> ApprovalDecision:
        ...


class DeleteApprover(Protocol):
    async def __call__(self, path: str, old_content: Optional[str]) -> ApprovalDecision:
        ...


@dataclass(frozen=True, slots=True)
class ApprovalRequest:
    """Everything a prompt needs to show the user before asking."""

    path: str
    is_delete: bool
    is_new_file: bool
    is_folder: bool
    preview: str
    additions: int
    deletions: int


ApprovalPrompt = Callable[[ApprovalRequest], Awaitable[ApprovalDecision]]


class SessionApprovalPolicy:
    """Ask a prompt for decisions and remember "don't ask again" answers for the session.

    Choosing "don't ask again" on a new file turns on a global bypass for all
    later writes and deletes. On an existing file it only bypasses that path.
    Deletes are bypassed by the global flag alone.
    """

    def __init__(self, prompt: ApprovalPrompt) -> None:
        self._prompt = prompt
        self._global_bypass = False
        self._approved_paths: set[str] = set()

    @property
    def global_bypass(self) -> bool:
        return self._global_bypass

    def is_path_approved(self, path: str) -> bool:
        return path.lower() in self._approved_paths

    def reset(self) -> None:
        self._global_bypass = False
        self._approved_paths.clear()

    async def approve_write(self, path: str, old_content: Optional[str], new_content: str) -> ApprovalDecision:
        is_new_file = old_content is None
        if self._global_bypass or self.is_path_approved(path):
            LOGGER.debug("Auto-approved write to %s", path)
            return ApprovalDecision.approved()

        diff = compute_diff(old_content, new_content)
        additions, deletions = count_changes(diff)
        request = ApprovalRequest(
            path=path,
            is_delete=False,
            is_new_file=is_new_file,
            is_folder=False,
            preview=render_diff(collapse_context(diff, 3)),
            additions=additions,
            deletions=deletions,
        )
        decision = await self._prompt(request)
        if decision.response is ApprovalResponse.APPROVED_NO_ASK_AGAIN:
            if is_new_file:
                self._global_bypass = True
            else:
                self._approved_paths.add(path.lower())
        return decision

    async def approve_delete(self, path: str, old_content: Optional[str]) -> ApprovalDecision:
        if self._global_bypass:
            LOGGER.debug("Auto-approved deletion of %s", path)
            return ApprovalDecision.approved()

        is_folder = old_content is not None and old_content.startswith("Folder:")
        if is_folder or not old_content:
            preview = old_content or ""
            deletions = 0
        else:
            lines = [line.rstrip("\r") for line in split_lines(old_content)]
            preview = "\n".join(f"{index:>4} - {line}" for index, line in enumerate(lines, start=1))
            deletions = len(lines)
        request = ApprovalRequest(
            path=path,
            is_delete=True,
            is_new_file=False,
            is_folder=is_folder,
            preview=preview,
            additions=0,
            deletions=deletions,
        )
        decision = await self._prompt(request)
        if decision.response is ApprovalResponse.APPROVED_NO_ASK_AGAIN:
            self._global_bypass = True
        return decision
