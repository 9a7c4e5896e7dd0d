"""Heuristic gate deciding whether a request is large enough to plan first."""

from __future__ import annotations

import re

__all__ = ["ComplexityClassifier"]

_QUESTION_PREFIXES = (
    "what",
    "why",
    "how",
    "when",
    "where",
    "who",
    "which",
    "can you explain",
    "tell me about",
    "describe",
    "show me",
)

_SIMPLE_ACTION_VERBS = (
    "delete",
    "remove",
    "read",
    "show",
    "list",
    "find",
    "search",
    "open",
    "cat",
    "print",
    "display",
    "rename",
)

_IMPERATIVE_VERBS = (
    "create",
    "build",
    "implement",
    "make",
    "develop",
    "write",
    "add",
    "design",
    "set up",
    "configure",
    "generate",
    "refactor",
    "update",
    "modify",
    "change",
    "fix",
    "debug",
    "optimize",
)

_SCOPE_WORDS = (
    "game",
    "application",
    "app",
    "feature",
    "system",
    "component",
    "page",
    "form",
    "api",
    "endpoint",
    "service",
    "module",
    "website",
    "site",
    "project",
    "program",
    "tool",
    "utility",
    "class",
    "function",
    "method",
    "interface",
    "database",
)

_NUMBERED_ITEM = re.compile(r"^\s*\d+[.)]\s+", re.MULTILINE)

SIMPLE_ACTION_MAX_LENGTH = 150
LONG_REQUEST_LENGTH = 400
SCOPED_TASK_MIN_WORDS = 12
CHAINED_TASK_MIN_WORDS = 10
NUMBERED_LIST_MIN_ITEMS = 3


def _starts_with_word(text: str, words: tuple[str, ...]) -> bool:
    return any(text.startswith(word + " ") for word in words)


class ComplexityClassifier:
    """Decide whether a message should be planned before it is executed.

    The rules are ordered; the first rule that matches decides. Questions and
    short single-verb actions never plan, numbered lists and large scoped
    builds always do.
    """

    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled

    def requires_planning(self, message: str) -> bool:
        if not self.enabled or not message or not message.strip():
            return False

        text = message.strip()
        lowered = text.lower()

        if lowered.endswith("?") or lowered.startswith(_QUESTION_PREFIXES):
            return False

        if (
            _starts_with_word(lowered, _SIMPLE_ACTION_VERBS)
            and len(lowered) < SIMPLE_ACTION_MAX_LENGTH
            and " and " not in lowered
            and " also " not in lowered
        ):
            return False

        if len(_NUMBERED_ITEM.findall(text)) >= NUMBERED_LIST_MIN_ITEMS:
            return True

        word_count = len(lowered.split())
        imperative = _starts_with_word(lowered, _IMPERATIVE_VERBS)

        if (
            imperative
            and any(word in lowered for word in _SCOPE_WORDS)
            and word_count >= SCOPED_TASK_MIN_WORDS
        ):
            return True

        if len(lowered) > LONG_REQUEST_LENGTH:
            return True

        if (
            word_count >= CHAINED_TASK_MIN_WORDS
            and imperative
            and (" and then " in lowered or (" also " in lowered and " and " in lowered))
        ):
            return True

        return False
