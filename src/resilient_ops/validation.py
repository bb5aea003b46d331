"""Input predicates consulted before database and file operations."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Protocol

import structlog

from resilient_ops.file_ops import StrPath
from resilient_ops.logging import StructuredLogger, log_error

InputKind = Literal["file", "dir", "executable", "sql"]

_logger: StructuredLogger = structlog.stdlib.get_logger(__name__)


class InputValidator(Protocol):
    """Boolean predicate deciding whether an input path may be used."""

    def __call__(self, path: StrPath, kind: InputKind) -> bool:
        """Return true when ``path`` is usable as ``kind``."""


def _validation_errors(path: Path, kind: InputKind) -> list[str]:
    if not path.exists():
        return [f"does not exist: {path}"]

    errors: list[str] = []
    if kind in {"file", "sql"}:
        if not path.is_file():
            errors.append(f"not a file: {path}")
        elif not os.access(path, os.R_OK):
            errors.append(f"not readable: {path}")
        elif kind == "sql" and path.stat().st_size == 0:
            errors.append(f"empty file: {path}")
    elif kind == "dir":
        if not path.is_dir():
            errors.append(f"not a directory: {path}")
        elif not os.access(path, os.R_OK):
            errors.append(f"directory not readable: {path}")
    elif kind == "executable" and not os.access(path, os.X_OK):
        errors.append(f"not executable: {path}")
    return errors


def validate_input_file(path: StrPath, kind: InputKind = "file") -> bool:
    """Check that ``path`` exists and is usable as ``kind``.

    ``sql`` is a readable regular file that is not empty.
    """
    if not path:
        log_error(_logger, "validation.failed", kind=kind, errors=["path is empty"])
        return False
    errors = _validation_errors(Path(path), kind)
    if errors:
        log_error(
            _logger, "validation.failed", kind=kind, path=str(path), errors=errors
        )
        return False
    return True
