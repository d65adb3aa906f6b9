# engines/dagger_engine.py
from __future__ import annotations

import sys
from typing import Any, Optional, TextIO

import dagger

from ..errors import ENGINE_HINTS, EngineError, EngineUnavailable, ExecutionError
from ..plan import (
    ContainerPlan,
    CopyDirectory,
    Exec,
    FromImage,
    MountCache,
    SecretEnv,
    SetEnv,
    SetWorkdir,
)
from . import EngineOutput


class DaggerEngine:
    """Runs plans through the Dagger engine (one session per run unless a client is given)."""

    name = "dagger"

    def __init__(self, client: Optional[dagger.Client] = None, log_output: Optional[TextIO] = None):
        self._client = client
        self._log_output = log_output if log_output is not None else sys.stderr

    async def run(self, plan: ContainerPlan) -> EngineOutput:
        if self._client is not None:
            return await self._run(self._client, plan)

        config = dagger.Config(log_output=self._log_output)
        try:
            async with dagger.Connection(config) as client:
                return await self._run(client, plan)
        except dagger.DaggerError as e:
            # failures inside _run are already CIErrors; this is the session itself
            raise EngineUnavailable(
                "Could not start the Dagger engine",
                job=plan.job,
                details={"error": str(e), "hint": ENGINE_HINTS["dagger"]},
            ) from e

    async def _run(self, client: dagger.Client, plan: ContainerPlan) -> EngineOutput:
        ctr = build_container(client, plan)
        try:
            ctr = await ctr.sync()
            stdout = await ctr.stdout()
            stderr = await ctr.stderr()
        except dagger.ExecError as e:
            raise ExecutionError(
                f"Command exited with status {e.exit_code}",
                job=plan.job,
                exit_code=e.exit_code,
                stdout=e.stdout,
                stderr=e.stderr,
                command=" ".join(e.command),
            ) from e
        except dagger.DaggerError as e:
            raise EngineError(
                "Dagger could not run the job",
                job=plan.job,
                details={"error": str(e)},
            ) from e
        return EngineOutput(stdout=stdout, stderr=stderr)


def build_container(client: Any, plan: ContainerPlan) -> Any:
    """Chain the plan's operations onto a fresh container, in order."""
    ctr = client.container()
    for op in plan.ops:
        if isinstance(op, FromImage):
            ctr = ctr.from_(op.image)
        elif isinstance(op, MountCache):
            ctr = ctr.with_mounted_cache(op.path, client.cache_volume(op.volume))
        elif isinstance(op, SetEnv):
            ctr = ctr.with_env_variable(op.name, op.value)
        elif isinstance(op, Exec):
            ctr = ctr.with_exec(list(op.args))
        elif isinstance(op, CopyDirectory):
            src = client.host().directory(op.source)
            ctr = ctr.with_directory(op.dest, src, exclude=list(op.exclude))
        elif isinstance(op, SetWorkdir):
            ctr = ctr.with_workdir(op.path)
        elif isinstance(op, SecretEnv):
            secret = client.set_secret(op.name, plan.secrets[op.name])
            ctr = ctr.with_secret_variable(op.name, secret)
        else:
            raise TypeError(f"Unsupported plan operation: {op!r}")
    return ctr
