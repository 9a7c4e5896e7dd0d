"""Building blocks used by the governor and plan executor."""

from .completion import CompletionTracker
from .diff import DiffLine, DiffLineType, collapse_context, compute_diff, count_changes, render_diff
from .operations import FileSystemOperations, OperationExecutor, parse_arguments
from .retry import execute_with_retry, is_transient_error

__all__ = [
    "CompletionTracker",
    "DiffLine",
    "DiffLineType",
    "FileSystemOperations",
    "OperationExecutor",
    "collapse_context",
    "compute_diff",
    "count_changes",
    "execute_with_retry",
    "is_transient_error",
    "parse_arguments",
    "render_diff",
]
