"""Validation gate run against staged journal copies before any commit.

The gate delegates the actual accounting checks to an injected validator,
normally :meth:`ledgerguard.tools.hledger.HledgerRunner.check`. A non-zero exit,
a timeout or a failure to launch the validator all count as a rejection. The
caller is expected to discard its staged copy when :func:`run_validation`
raises, so the original journal is never touched by rejected content.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Tuple

from .errors import HledgerError, ValidationFailure
from .telemetry import emit_event

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandResult:
    """Captured outcome of an external command."""

    command: Tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def command_line(self) -> str:
        return " ".join(self.command)

    def short_message(self) -> str:
        if self.success:
            return "passed"
        fallback = self.stderr.strip() or self.stdout.strip()
        if fallback:
            return fallback.splitlines()[0]
        return f"exit code {self.exit_code}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command_line,
            "success": self.success,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration": round(self.duration, 3),
        }


Validator = Callable[[Path], CommandResult]


def run_validation(validator: Validator, path: Path) -> CommandResult:
    """Run ``validator`` against ``path`` and raise unless it reports success."""

    try:
        result = validator(path)
    except (HledgerError, OSError, subprocess.TimeoutExpired) as error:
        emit_event("validation_failed", path=path, reason=str(error))
        raise ValidationFailure(
            f"Journal check could not complete: {error}",
            details={"path": path.as_posix()},
        ) from error

    if not result.success:
        emit_event(
            "validation_failed",
            path=path,
            exit_code=result.exit_code,
            stderr=result.stderr.strip(),
        )
        raise ValidationFailure(
            f"Journal check failed: {result.short_message()}",
            result=result,
            details={"path": path.as_posix(), "exit_code": result.exit_code, "stderr": result.stderr},
        )

    LOGGER.debug("Validation passed for %s", path)
    emit_event("validation_passed", path=path, duration=result.duration)
    return result


__all__ = ["CommandResult", "Validator", "run_validation"]
