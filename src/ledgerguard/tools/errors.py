"""Error taxonomy shared by the journal mutation tools."""

from __future__ import annotations

from typing import Any, Mapping


class LedgerEditError(RuntimeError):
    """Base class for failures raised while editing a journal."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class AddressingError(LedgerEditError):
    """Raised when a line range or target file cannot be addressed."""


class DriftError(LedgerEditError):
    """Raised when on-disk content no longer matches what the caller expected."""


class PatchError(LedgerEditError):
    """Raised when a unified diff is malformed or targets an unexpected path."""


class PatchMismatchError(PatchError):
    """Raised when a hunk's context or removed line disagrees with the file."""


class ValidationFailure(LedgerEditError):
    """Raised when the external consistency check rejects staged content."""

    def __init__(
        self,
        message: str,
        *,
        result: Any = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.result = result


class HledgerError(LedgerEditError):
    """Raised when the accounting engine cannot be run or exits non-zero."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        stderr: str = "",
        command: str = "",
    ) -> None:
        super().__init__(
            message,
            details={"exit_code": exit_code, "stderr": stderr, "command": command},
        )
        self.exit_code = exit_code
        self.stderr = stderr
        self.command = command


class HledgerTimeoutError(HledgerError):
    """Raised when the accounting engine exceeds its time budget."""


class ReadOnlyModeError(LedgerEditError):
    """Raised when a mutation is attempted while read-only mode is active."""


class ConfigError(LedgerEditError):
    """Raised when the configuration file cannot be parsed."""


__all__ = [
    "AddressingError",
    "ConfigError",
    "DriftError",
    "HledgerError",
    "HledgerTimeoutError",
    "LedgerEditError",
    "PatchError",
    "PatchMismatchError",
    "ReadOnlyModeError",
    "ValidationFailure",
]
