"""Typed operation arguments and the project-confined filesystem operation executor."""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import shutil
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.type_adapter import TypeAdapter

from ..errors import OperationError

__all__ = [
    "DEFAULT_IGNORE_DIRECTORIES",
    "FileSystemOperations",
    "GenericArgs",
    "OPERATION_ARGUMENTS",
    "OperationArgs",
    "OperationExecutor",
    "PathArgs",
    "PatternArgs",
    "SearchArgs",
    "WriteFileArgs",
    "NoArgs",
    "capture_prestate",
    "describe_arguments",
    "parse_arguments",
]

LOGGER = logging.getLogger(__name__)

OperationExecutor = Callable[[str, Dict[str, Any]], Awaitable[str]]

DEFAULT_IGNORE_DIRECTORIES: frozenset[str] = frozenset(
    {
        ".git",
        "node_modules",
        "bin",
        "obj",
        ".vs",
        ".vscode",
        "packages",
        "dist",
        "build",
        "__pycache__",
        ".idea",
    }
)


class _ArgsModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class WriteFileArgs(_ArgsModel):
    """Arguments for ``write_file``/``create_file``."""

    relative_path: str = Field(validation_alias=AliasChoices("relative_path", "relativePath", "path"))
    content: str


class PathArgs(_ArgsModel):
    """Arguments for operations addressed by a single project-relative path."""

    relative_path: str = Field(validation_alias=AliasChoices("relative_path", "relativePath", "path"))


class PatternArgs(_ArgsModel):
    """Arguments for glob listings."""

    pattern: str = "*.*"


class SearchArgs(_ArgsModel):
    """Arguments for text search across files."""

    search_text: str = Field(validation_alias=AliasChoices("search_text", "searchText", "query"))
    pattern: str = "*.*"


class NoArgs(_ArgsModel):
    """Operations that take no arguments."""


class GenericArgs(BaseModel):
    """Fallback shape for operations without a registered argument model."""

    model_config = ConfigDict(extra="allow", frozen=True)


OperationArgs = Union[WriteFileArgs, PathArgs, PatternArgs, SearchArgs, NoArgs, GenericArgs]

OPERATION_ARGUMENTS: Dict[str, type[BaseModel]] = {
    "write_file": WriteFileArgs,
    "create_file": WriteFileArgs,
    "read_file": PathArgs,
    "delete_file": PathArgs,
    "delete_folder": PathArgs,
    "create_folder": PathArgs,
    "get_absolute_path": PathArgs,
    "list_all_files": NoArgs,
    "list_files_by_pattern": PatternArgs,
    "search_in_files": SearchArgs,
}


def parse_arguments(name: str, arguments: Mapping[str, Any] | None) -> OperationArgs:
    """Validate ``arguments`` into the registered shape for ``name``."""
    model = OPERATION_ARGUMENTS.get(name, GenericArgs)
    payload = dict(arguments or {})
    try:
        return TypeAdapter(model).validate_python(payload)
    except ValidationError as error:
        raise OperationError(f"Arguments for {name} did not validate: {error}") from error


def _resolve(project_root: Path, relative_path: str) -> Path:
    candidate = (project_root / relative_path).resolve()
    if candidate != project_root and project_root not in candidate.parents:
        raise PermissionError(f"Access denied: Path is outside project root: {relative_path}")
    return candidate


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def capture_prestate(project_root: Path, relative_path: str) -> str | None:
    """Return the current content at ``relative_path`` before it is mutated.

    Files yield their text, directories yield a sorted recursive listing, and
    missing or unreadable paths yield ``None``.
    """
    try:
        target = _resolve(project_root, relative_path)
    except PermissionError:
        return None
    if target.is_file():
        try:
            return _read_text(target)
        except (OSError, UnicodeDecodeError):
            return None
    if target.is_dir():
        listing = sorted(
            path.relative_to(target).as_posix() for path in target.rglob("*") if path.is_file()
        )
        lines = [f"Folder: {relative_path}/", f"Contents ({len(listing)} files):"]
        lines.extend(f"  {entry}" for entry in listing)
        return "\n".join(lines)
    return None


def _matches_pattern(relative: str, pattern: str) -> bool:
    relative = relative.replace("\\", "/")
    pattern = pattern.replace("\\", "/")
    if pattern in {"*.*", "*", "**"}:
        return True
    lowered = relative.lower()
    if fnmatch.fnmatch(lowered, pattern.lower()):
        return True
    if "/" not in pattern:
        return fnmatch.fnmatch(lowered.rsplit("/", 1)[-1], pattern.lower())
    if pattern.startswith("**/"):
        return _matches_pattern(relative, pattern[3:])
    return False


class FileSystemOperations:
    """Filesystem actions confined to ``project_root``.

    Instances are callable as an operation executor: ``await ops(name, args)``.
    Expected failures are reported as ``"Error: ..."`` strings; path escapes and
    unknown operations raise.
    """

    def __init__(self, project_root: Path | str, *, ignore_directories: Iterable[str] = ()) -> None:
        self._root = Path(project_root).resolve()
        self._ignore = set(DEFAULT_IGNORE_DIRECTORIES)
        self._ignore.update(ignore_directories)
        self._handlers: Dict[str, Callable[[Any], str]] = {
            "list_all_files": self._list_all_files,
            "list_files_by_pattern": self._list_files_by_pattern,
            "read_file": self._read_file,
            "write_file": self._write_file,
            "create_file": self._write_file,
            "create_folder": self._create_folder,
            "delete_file": self._delete_file,
            "delete_folder": self._delete_folder,
            "search_in_files": self._search_in_files,
            "get_absolute_path": self._get_absolute_path,
        }

    @property
    def project_root(self) -> Path:
        return self._root

    @property
    def operation_names(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    async def __call__(self, name: str, arguments: Dict[str, Any]) -> str:
        handler = self._handlers.get(name)
        if handler is None:
            raise OperationError(f"Unknown operation: {name}")
        parsed = parse_arguments(name, arguments)
        return await asyncio.to_thread(handler, parsed)

    # ----------------------------------------------------------------- helpers
    def _iter_files(self) -> list[Path]:
        files: list[Path] = []
        pending = [self._root]
        while pending:
            directory = pending.pop()
            try:
                entries = sorted(directory.iterdir())
            except PermissionError:
                continue
            for entry in entries:
                if entry.is_dir():
                    if entry.name not in self._ignore:
                        pending.append(entry)
                elif entry.is_file():
                    files.append(entry)
        return sorted(files)

    def _relative(self, path: Path) -> str:
        return path.relative_to(self._root).as_posix()

    # -------------------------------------------------------------- operations
    def _list_all_files(self, _: NoArgs) -> str:
        files = [self._relative(path) for path in self._iter_files()]
        if not files:
            return "No files found in the project."
        return "\n".join(files)

    def _list_files_by_pattern(self, args: PatternArgs) -> str:
        files = [
            relative
            for relative in (self._relative(path) for path in self._iter_files())
            if _matches_pattern(relative, args.pattern)
        ]
        if not files:
            return f"No files found matching pattern: {args.pattern}"
        return "\n".join(files)

    def _read_file(self, args: PathArgs) -> str:
        target = _resolve(self._root, args.relative_path)
        if not target.is_file():
            return f"Error: File not found: {args.relative_path}"
        try:
            content = _read_text(target)
        except (OSError, UnicodeDecodeError) as error:
            return f"Error reading file '{args.relative_path}': {error}"
        line_count = len(content.split("\n"))
        return f"File: {args.relative_path} ({line_count} lines)\n{'=' * 50}\n{content}"

    def _write_file(self, args: WriteFileArgs) -> str:
        target = _resolve(self._root, args.relative_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(args.content, encoding="utf-8")
        except OSError as error:
            return f"Error writing file '{args.relative_path}': {error}"
        line_count = len(args.content.split("\n"))
        return (
            f"Successfully wrote {line_count} lines to:\n"
            f"Relative path: {args.relative_path}\n"
            f"Absolute path: {target}"
        )

    def _create_folder(self, args: PathArgs) -> str:
        target = _resolve(self._root, args.relative_path)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            return f"Error creating folder '{args.relative_path}': {error}"
        return f"Created folder: {args.relative_path}\nAbsolute path: {target}"

    def _delete_file(self, args: PathArgs) -> str:
        target = _resolve(self._root, args.relative_path)
        if not target.is_file():
            return f"Error: File not found: {args.relative_path}"
        try:
            target.unlink()
        except OSError as error:
            return f"Error deleting file '{args.relative_path}': {error}"
        return f"Deleted file: {args.relative_path}"

    def _delete_folder(self, args: PathArgs) -> str:
        target = _resolve(self._root, args.relative_path)
        if target == self._root:
            return "Error: Refusing to delete the project root."
        if not target.is_dir():
            return f"Error: Folder not found: {args.relative_path}"
        try:
            shutil.rmtree(target)
        except OSError as error:
            return f"Error deleting folder '{args.relative_path}': {error}"
        return f"Deleted folder: {args.relative_path}"

    def _search_in_files(self, args: SearchArgs) -> str:
        needle = args.search_text.lower()
        results: list[str] = []
        for path in self._iter_files():
            relative = self._relative(path)
            if not _matches_pattern(relative, args.pattern):
                continue
            try:
                lines = _read_text(path).split("\n")
            except (OSError, UnicodeDecodeError):
                continue
            hits = [(index, line) for index, line in enumerate(lines, start=1) if needle in line.lower()]
            if not hits:
                continue
            results.append(f"{relative}:")
            results.extend(f"  Line {index}: {line.strip()}" for index, line in hits)
        if not results:
            return f"No matches found for '{args.search_text}' in files matching '{args.pattern}'"
        return "\n".join(results)

    def _get_absolute_path(self, args: PathArgs) -> str:
        target = _resolve(self._root, args.relative_path)
        if not target.exists():
            return f"Path does not exist: {target}"
        return f"Absolute path: {target}"


def describe_arguments(arguments: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Stringify argument values for notifications and dedup keys."""
    return {str(key): "" if value is None else str(value) for key, value in (arguments or {}).items()}
