# executor.py
from __future__ import annotations

import time
from pathlib import Path
from typing import Mapping, Optional

import anyio

from .engines import ContainerEngine
from .errors import EngineError, EngineUnavailable, ExecutionError, ValidationError
from .model import ExecutionResult, FailureReason, JobSpec, JobStatus
from .plan import ContainerPlan, plan_for


class JobExecutor:
    """
    Realizes one JobSpec against a container engine and captures its output.

    Each call is independent: no shared state, no retries (job commands such
    as database migrations are not safe to re-run blindly).
    """

    def __init__(
        self,
        engine: ContainerEngine,
        *,
        environ: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            engine: container engine the plans are handed to
            environ: where required variables are read from (default: os.environ)
            timeout: per-job limit in seconds; None means no limit
        """
        self.engine = engine
        self.environ = environ
        self.timeout = timeout

    def plan(self, spec: JobSpec, source: str | Path = ".", workdir: Optional[str] = None) -> ContainerPlan:
        """Validate the job's environment and build its container plan."""
        secrets = spec.require_env(self.environ)
        return plan_for(spec, str(source), workdir=workdir, secrets=secrets)

    async def execute(
        self,
        spec: JobSpec,
        source: str | Path = ".",
        workdir: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Run `spec` with `source` copied into the container.

        Returns a successful or failed ExecutionResult. A non-zero exit, a
        timeout and any other engine failure (bad image, lost connection,
        SDK error) all come back as a failed result; only ValidationError and
        EngineUnavailable propagate. Nothing reaches the engine when the
        environment is incomplete.
        """
        plan = self.plan(spec, source, workdir)
        start = time.monotonic()

        try:
            if self.timeout is not None:
                with anyio.fail_after(self.timeout):
                    output = await self.engine.run(plan)
            else:
                output = await self.engine.run(plan)
        except TimeoutError:
            return ExecutionResult(
                job_name=spec.name,
                status=JobStatus.FAILURE,
                reason=FailureReason.TIMEOUT,
                error=f"Timed out after {self.timeout}s",
                duration=time.monotonic() - start,
            )
        except ExecutionError as e:
            return ExecutionResult(
                job_name=spec.name,
                status=JobStatus.FAILURE,
                stdout=e.stdout,
                stderr=e.stderr,
                exit_code=e.exit_code,
                reason=FailureReason.EXIT,
                error=e.message,
                duration=time.monotonic() - start,
            )
        except (ValidationError, EngineUnavailable):
            raise
        except EngineError as e:
            return self._errored(spec, e.details.get("error") or e.message, start)
        except Exception as e:
            return self._errored(spec, f"{type(e).__name__}: {e}", start)

        return ExecutionResult(
            job_name=spec.name,
            status=JobStatus.SUCCESS,
            stdout=output.stdout,
            stderr=output.stderr,
            exit_code=0,
            duration=time.monotonic() - start,
        )

    @staticmethod
    def _errored(spec: JobSpec, error: str, start: float) -> ExecutionResult:
        return ExecutionResult(
            job_name=spec.name,
            status=JobStatus.FAILURE,
            reason=FailureReason.ERROR,
            error=error,
            duration=time.monotonic() - start,
        )
