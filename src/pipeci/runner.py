# runner.py
from __future__ import annotations

import enum
import os
import runpy
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import anyio

from .dag import build_dag, topo_levels
from .errors import CIError
from .executor import JobExecutor
from .model import ExecutionResult, JobSpec
from .registry import JobRegistry, coerce_registry
from .ui.console import Console, get_console


class FailurePolicy(str, enum.Enum):
    STOP_ON_FIRST_FAILURE = "stop"
    CONTINUE_ON_FAILURE = "continue"


class Concurrency(str, enum.Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class CancelToken:
    """Checked by the runner between jobs; a job already handed to the engine keeps running."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


# ----------------------------------------------------------------------
# Runner
# ----------------------------------------------------------------------

class PipelineRunner:
    """
    Runs an ordered list of job names from a registry.

    - Unknown names fail before anything runs (UnknownJobError).
    - Required environment of every selected job is checked before the
      first job starts (ValidationError).
    - STOP_ON_FIRST_FAILURE halts after a failed job; the jobs that never
      started are left out of the results, not reported as failed.
    - PARALLEL runs the `needs` levels concurrently, at most `max_workers`
      jobs at a time.
    """

    def __init__(
        self,
        registry: JobRegistry,
        executor: JobExecutor,
        *,
        failure: FailurePolicy = FailurePolicy.STOP_ON_FIRST_FAILURE,
        concurrency: Concurrency = Concurrency.SEQUENTIAL,
        max_workers: Optional[int] = None,
        console: Optional[Console] = None,
    ):
        self.registry = registry
        self.executor = executor
        self.failure = failure
        self.concurrency = concurrency
        if max_workers is None:
            c = os.cpu_count() or 2
            max_workers = max(1, c - 1)
        self.max_workers = max_workers
        self.console = console

    @property
    def _console(self) -> Console:
        return self.console or get_console()

    @property
    def _stop_on_failure(self) -> bool:
        return self.failure is FailurePolicy.STOP_ON_FIRST_FAILURE

    async def run(
        self,
        names: Optional[Sequence[str]] = None,
        *,
        source: str | Path = ".",
        cancel: Optional[CancelToken] = None,
    ) -> List[ExecutionResult]:
        names = list(names) if names is not None else self.registry.names()
        specs = self.registry.resolve(names)

        # fail fast: no container work if any selected job lacks its env
        for spec in specs:
            spec.require_env(self.executor.environ)

        cancel = cancel or CancelToken()
        if self.concurrency is Concurrency.PARALLEL:
            return await self._run_parallel(specs, source, cancel)
        return await self._run_sequential(specs, source, cancel)

    async def _run_job(self, spec: JobSpec, source: str | Path) -> ExecutionResult:
        console = self._console
        console.print_job_start(spec.name)
        result = await self.executor.execute(spec, source)
        console.print_job_result(result)
        return result

    async def _run_sequential(
        self,
        specs: List[JobSpec],
        source: str | Path,
        cancel: CancelToken,
    ) -> List[ExecutionResult]:
        results: List[ExecutionResult] = []
        for spec in specs:
            if cancel.cancelled:
                self._console.print_info(f"Cancelled before {spec.name}")
                break

            result = await self._run_job(spec, source)
            results.append(result)

            if not result.ok and self._stop_on_failure:
                break
        return results

    async def _run_parallel(
        self,
        specs: List[JobSpec],
        source: str | Path,
        cancel: CancelToken,
    ) -> List[ExecutionResult]:
        by_name = {s.name: s for s in specs}
        adj, indeg = build_dag(specs)
        levels = topo_levels(adj, indeg)

        limiter = anyio.CapacityLimiter(self.max_workers)
        results: Dict[str, ExecutionResult] = {}
        errors: List[CIError] = []

        async def run_one(spec: JobSpec) -> None:
            async with limiter:
                if cancel.cancelled:
                    return
                try:
                    results[spec.name] = await self._run_job(spec, source)
                except CIError as e:
                    errors.append(e)
                    tg.cancel_scope.cancel()

        for level_idx, level in enumerate(levels):
            if cancel.cancelled:
                break
            self._console.print_debug(f"Stage {level_idx + 1}: {level}")

            async with anyio.create_task_group() as tg:
                for name in level:
                    tg.start_soon(run_one, by_name[name])

            if errors:
                raise errors[0]

            failed = any(not results[n].ok for n in level if n in results)
            if failed and self._stop_on_failure:
                break

        # report in request order
        return [results[s.name] for s in specs if s.name in results]


def exit_code(results: Iterable[ExecutionResult]) -> int:
    """0 when every attempted job succeeded, 1 otherwise."""
    return 0 if all(r.ok for r in results) else 1


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_registry(path: str | Path) -> JobRegistry:
    """
    Load a job registry from a python file path.

    The file must define either:
      - registry() -> JobRegistry | List[JobEntry]
      - JOBS = JobRegistry(...) or [JobEntry, ...]
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"pipeci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    value = None
    if "registry" in globals_dict and callable(globals_dict["registry"]):
        value = globals_dict["registry"]()
    elif "JOBS" in globals_dict:
        value = globals_dict["JOBS"]

    registry = coerce_registry(value)
    if registry is None:
        raise TypeError(
            "Workflow must return/define a JobRegistry or a List[JobEntry]. "
            "Define registry() -> JobRegistry or JOBS = [JobEntry, ...]."
        )
    return registry
