# model.py
from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from .errors import ValidationError


@dataclass(frozen=True)
class CacheMount:
    """A named engine cache volume mounted at `path` inside the container."""
    path: str
    volume: str


@dataclass(frozen=True)
class JobSpec:
    """
    Declarative description of one pipeline step.

    The container is built from `image`; caches are mounted, `setup_commands`
    run in order, the source is copied to `workdir` (minus `source_excludes`)
    and `run_command` runs last through `sh -c`.

    `required_env` lists variables that must be set when the job runs. Their
    values are injected as secrets by the engine, so `run_command` refers to
    them as `$NAME` instead of interpolating them.
    """
    name: str
    image: str
    run_command: Tuple[str, ...]
    setup_commands: Tuple[Tuple[str, ...], ...] = ()
    cache_mounts: Tuple[CacheMount, ...] = ()
    workdir: str = "/app"
    source_excludes: Tuple[str, ...] = ()
    required_env: Tuple[str, ...] = ()
    env: Tuple[Tuple[str, str], ...] = ()
    needs: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("Job name must not be empty")

        # normalise list inputs so the value stays hashable/immutable
        object.__setattr__(self, "run_command", _lines(self.run_command))
        object.__setattr__(self, "setup_commands", tuple(tuple(c) for c in self.setup_commands))
        object.__setattr__(self, "cache_mounts", tuple(self.cache_mounts))
        object.__setattr__(self, "source_excludes", tuple(self.source_excludes))
        object.__setattr__(self, "required_env", tuple(self.required_env))
        object.__setattr__(self, "needs", tuple(self.needs))
        env = self.env.items() if isinstance(self.env, Mapping) else self.env
        object.__setattr__(self, "env", tuple((str(k), str(v)) for k, v in env))

        if not any(line.strip() for line in self.run_command):
            raise ValidationError("Job has an empty run command", job=self.name)

        if any(not cmd for cmd in self.setup_commands):
            raise ValidationError("Setup commands must not be empty", job=self.name)

        paths = [m.path for m in self.cache_mounts]
        if len(set(paths)) != len(paths):
            dupes = sorted({p for p in paths if paths.count(p) > 1})
            raise ValidationError(
                "Cache mount paths must be unique",
                job=self.name,
                details={"duplicates": ", ".join(dupes)},
            )

    @property
    def script(self) -> str:
        """Run command as a single shell string."""
        return " && ".join(line.strip() for line in self.run_command if line.strip())

    def require_env(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """
        Look up every `required_env` name in `environ` (default: os.environ).

        Returns:
            name -> value for the required variables

        Raises:
            ValidationError: naming every variable that is unset or empty
        """
        environ = os.environ if environ is None else environ
        missing = [n for n in self.required_env if not environ.get(n)]
        if missing:
            raise ValidationError(
                f"{' or '.join(missing)} not found",
                job=self.name,
                details={"missing": ", ".join(missing)},
            )
        return {n: environ[n] for n in self.required_env}


def _lines(value: str | Iterable[str]) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def job_spec(
    name: str,
    image: str,
    run_command: str | Sequence[str],
    *,
    setup_commands: Sequence[Sequence[str]] = (),
    cache_mounts: Sequence[CacheMount] = (),
    workdir: str = "/app",
    source_excludes: Sequence[str] = (),
    required_env: Sequence[str] = (),
    env: Optional[Mapping[str, str]] = None,
    needs: Sequence[str] = (),
    environ: Optional[Mapping[str, str]] = None,
) -> JobSpec:
    """
    Build a JobSpec and check its required environment.

    Only reads the environment; fails with ValidationError when the run
    command is empty or a required variable is missing.
    """
    spec = JobSpec(
        name=name,
        image=image,
        run_command=_lines(run_command),
        setup_commands=tuple(tuple(c) for c in setup_commands),
        cache_mounts=tuple(cache_mounts),
        workdir=workdir,
        source_excludes=tuple(source_excludes),
        required_env=tuple(required_env),
        env=tuple((env or {}).items()),
        needs=tuple(needs),
    )
    spec.require_env(environ)
    return spec


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------

class JobStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class FailureReason(str, enum.Enum):
    EXIT = "exit"          # non-zero exit inside the container
    TIMEOUT = "timeout"    # per-job timeout exceeded
    ERROR = "error"        # engine failed before/while running the job


@dataclass
class ExecutionResult:
    """Outcome of running one JobSpec."""
    job_name: str
    status: JobStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    reason: Optional[FailureReason] = None
    error: Optional[str] = None
    duration: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.SUCCESS

    def to_dict(self) -> dict:
        return {
            "job": self.job_name,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "reason": self.reason.value if self.reason else None,
            "error": self.error,
            "duration": self.duration,
        }
