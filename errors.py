"""Exceptions raised by the Shader Patch install and uninstall engine."""
from __future__ import annotations

from typing import Optional


class InstallerError(Exception):
    """Base class for every installer failure."""


class AccessDenied(InstallerError):
    """The current user cannot write to the install tree.

    Not a final failure when the process is unprivileged: the caller hands
    the work to an elevated instance instead.
    """

    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__(message or f"Access denied to {path}")
        self.path = path


class PathResolutionError(InstallerError):
    """A staged file does not live under the staging root."""


class LedgerCorruptError(InstallerError):
    """The persisted install ledger is missing, unreadable or malformed."""


class FileOperationError(InstallerError):
    """A single file could not be copied, moved or deleted."""

    def __init__(self, path: str, error: BaseException):
        super().__init__(f"{path}: {error}")
        self.path = path
        self.error = error


class ElevatedProcessFailed(InstallerError):
    """The elevated child process exited with a nonzero code."""

    def __init__(self, exit_code: int):
        super().__init__(f"Elevated installer exited with code {exit_code}")
        self.exit_code = exit_code
