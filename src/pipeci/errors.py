# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(eq=False)
class CIError(Exception):
    """
    Structured pipeline error with enough context for:
      - clean CLI output
      - tests asserting on the failing job / missing names
      - debugging without full tracebacks
    """
    message: str
    job: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    kind = "ci_error"

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ValidationError(CIError):
    """A job spec (or registry) is malformed or its environment is incomplete."""
    kind = "validation"


class UnknownJobError(CIError):
    """A pipeline references job names that are not in the registry."""
    kind = "unknown_job"

    def __init__(self, names: List[str], known: List[str]):
        self.names = list(names)
        self.known = list(known)
        super().__init__(
            message=f"Unknown job(s): {', '.join(self.names)}",
            details={"known": ", ".join(self.known)},
        )


class ExecutionError(CIError):
    """The container engine reported a non-zero exit for a job's commands."""
    kind = "execution"

    def __init__(
        self,
        message: str,
        *,
        job: Optional[str] = None,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        command: Optional[str] = None,
    ):
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        details: Dict[str, Any] = {}
        if exit_code is not None:
            details["exit_code"] = exit_code
        super().__init__(message=message, job=job, details=details)


class EngineUnavailable(CIError):
    """The selected container engine cannot be started or reached."""
    kind = "engine_unavailable"


class EngineError(CIError):
    """The engine failed a job for a reason other than a non-zero exit (bad image, missing source)."""
    kind = "engine"


class EmitError(CIError):
    """The registry cannot be rendered into the target CI document."""
    kind = "emit"


ENGINE_HINTS = {
    "docker": "Install Docker and ensure the daemon is running.",
    "dagger": "Install the Dagger CLI and a container runtime (Docker, Podman) it can use.",
}
