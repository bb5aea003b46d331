"""Copy, move and delete primitives shared by the facade and the retrier."""

from __future__ import annotations

import shutil
from enum import StrEnum
from os import PathLike
from pathlib import Path

StrPath = str | PathLike[str]


class FileOperationKind(StrEnum):
    """Supported single-file operations."""

    COPY = "copy"
    MOVE = "move"
    DELETE = "delete"

    @property
    def requires_destination(self) -> bool:
        return self is not FileOperationKind.DELETE


def parse_file_operation(kind: str | FileOperationKind) -> FileOperationKind | None:
    """Return the operation kind for ``kind`` or ``None`` when unsupported."""
    try:
        return FileOperationKind(kind)
    except ValueError:
        return None


def check_file_operation(
    kind: str | FileOperationKind,
    source: StrPath | None,
    destination: StrPath | None,
) -> tuple[FileOperationKind | None, str | None]:
    """Validate call parameters before any attempt is made.

    Returns:
        The parsed kind and ``None``, or ``None`` and the reason the call is
        invalid.
    """
    if not kind or not source:
        return None, "operation and source are required"
    parsed = parse_file_operation(kind)
    if parsed is None:
        return None, f"unsupported operation: {kind}"
    if parsed.requires_destination and not destination:
        return None, f"destination is required for {parsed} operation"
    return parsed, None


def perform_file_operation(
    kind: FileOperationKind,
    source: StrPath,
    destination: StrPath | None = None,
) -> None:
    """Run one file operation, raising ``OSError`` when it fails.

    Deleting a missing file succeeds.
    """
    if kind is FileOperationKind.DELETE:
        Path(source).unlink(missing_ok=True)
        return
    if destination is None:
        raise ValueError(f"destination is required for {kind} operation")
    if kind is FileOperationKind.COPY:
        shutil.copy(source, destination)
        return
    shutil.move(source, destination)
