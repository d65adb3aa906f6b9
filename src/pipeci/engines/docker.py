# engines/docker.py
from __future__ import annotations

import os
import re
import shlex
import subprocess
import uuid
from pathlib import Path
from typing import List, Mapping, Optional

import anyio

from ..errors import ENGINE_HINTS, EngineUnavailable, ExecutionError
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

SOURCE_MOUNT = "/pipeci-src"

# printed right before the run command; stdout above it is setup output
RUN_MARKER = "==> pipeci run"


# ---------------------------------------------------------------------
# Plan -> docker run
# ---------------------------------------------------------------------

def _copy_script(op: CopyDirectory) -> str:
    tar_args = ["tar", "-C", SOURCE_MOUNT, *(f"--exclude={g}" for g in op.exclude), "-cf", "-", "."]
    tar_out = shlex.join(tar_args)
    dest = shlex.quote(op.dest)
    return f"mkdir -p {dest} && {tar_out} | tar -C {dest} -xf -"


def container_name(job: str) -> str:
    """Unique docker container name for one run of `job`."""
    slug = re.sub(r"[^a-zA-Z0-9_.-]+", "-", job).strip("-") or "job"
    return f"pipeci-{slug}-{uuid.uuid4().hex[:12]}"


def split_run_output(stdout: str) -> str:
    """Drop the setup commands' output, keeping what the run command printed."""
    _, sep, tail = stdout.partition(RUN_MARKER + "\n")
    return tail if sep else stdout


def docker_command(plan: ContainerPlan, repo_root: Path, name: Optional[str] = None) -> List[str]:
    """
    Translate a plan into a single `docker run` invocation.

    Named volumes back the cache mounts, the source is bind-mounted read-only
    and copied into the workdir with `tar --exclude`, and every exec becomes
    one link of an `&&` chain, with RUN_MARKER echoed before the run command.
    Secrets are passed as `-e NAME` so their values only travel through the
    docker client's environment.
    """
    cmd = ["docker", "run", "--rm"]
    if name:
        cmd.extend(["--name", name])
    cmd.extend(["-v", f"{repo_root.resolve()}:{SOURCE_MOUNT}:ro"])

    script: List[str] = []
    image: Optional[str] = None
    run = plan.run

    for op in plan.ops:
        if isinstance(op, FromImage):
            image = op.image
        elif isinstance(op, MountCache):
            cmd.extend(["-v", f"{op.volume}:{op.path}"])
        elif isinstance(op, SetEnv):
            cmd.extend(["-e", f"{op.name}={op.value}"])
        elif isinstance(op, SecretEnv):
            cmd.extend(["-e", op.name])
        elif isinstance(op, Exec):
            if op is run:
                script.append(shlex.join(["printf", "%s\\n", RUN_MARKER]))
            script.append(shlex.join(op.args))
        elif isinstance(op, CopyDirectory):
            script.append(_copy_script(op))
        elif isinstance(op, SetWorkdir):
            script.append(f"cd {shlex.quote(op.path)}")
        else:
            raise TypeError(f"Unsupported plan operation: {op!r}")

    if image is None:
        raise ValueError(f"[{plan.job}] plan has no image")

    cmd.append(image)
    cmd.extend(["sh", "-c", " && ".join(script)])
    return cmd


# ---------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------

class DockerEngine:
    """Runs plans with the local docker CLI."""

    name = "docker"

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ
        self._checked = False

    async def _check_docker_available(self) -> None:
        """Check if Docker is available, raise helpful error if not."""
        if self._checked:
            return
        try:
            await anyio.run_process(["docker", "--version"], check=True)
        except (subprocess.CalledProcessError, OSError) as e:
            raise EngineUnavailable(
                "Docker is not available",
                details={"error": str(e), "hint": ENGINE_HINTS["docker"]},
            ) from e
        self._checked = True

    async def _remove(self, name: str) -> None:
        await anyio.run_process(["docker", "rm", "-f", name], check=False)

    async def run(self, plan: ContainerPlan) -> EngineOutput:
        await self._check_docker_available()

        copies = plan.of_type(CopyDirectory)
        if not copies:
            raise ValueError(f"[{plan.job}] plan has no source copy")
        name = container_name(plan.job)
        cmd = docker_command(plan, Path(copies[0].source), name=name)

        env = dict(os.environ if self._environ is None else self._environ)
        env.update(plan.secrets)

        try:
            proc = await anyio.run_process(cmd, check=False, env=env)
        except anyio.get_cancelled_exc_class():
            # killing the docker client does not stop the container
            with anyio.CancelScope(shield=True):
                await self._remove(name)
            raise

        stdout = split_run_output(proc.stdout.decode("utf-8", errors="replace"))
        stderr = proc.stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise ExecutionError(
                f"Command exited with status {proc.returncode}",
                job=plan.job,
                exit_code=proc.returncode,
                stdout=stdout,
                stderr=stderr,
                command=plan.run.args[-1],
            )
        return EngineOutput(stdout=stdout, stderr=stderr)
