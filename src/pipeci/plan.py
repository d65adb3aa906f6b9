# plan.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

from .model import JobSpec


# ---------------------------------------------------------------------
# Container operations
# ---------------------------------------------------------------------
# A plan is the engine-neutral description of one job container. Engines
# translate each operation into their own calls, in order.

@dataclass(frozen=True)
class FromImage:
    image: str


@dataclass(frozen=True)
class MountCache:
    path: str
    volume: str


@dataclass(frozen=True)
class SetEnv:
    name: str
    value: str


@dataclass(frozen=True)
class Exec:
    args: Tuple[str, ...]


@dataclass(frozen=True)
class CopyDirectory:
    dest: str
    source: str
    exclude: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SetWorkdir:
    path: str


@dataclass(frozen=True)
class SecretEnv:
    """Secret variable; the value lives in ContainerPlan.secrets."""
    name: str


Op = Union[FromImage, MountCache, SetEnv, Exec, CopyDirectory, SetWorkdir, SecretEnv]


@dataclass(frozen=True)
class ContainerPlan:
    job: str
    ops: Tuple[Op, ...]
    secrets: Dict[str, str] = field(default_factory=dict, repr=False, hash=False, compare=False)

    @property
    def image(self) -> str:
        return next(op.image for op in self.ops if isinstance(op, FromImage))

    @property
    def run(self) -> Exec:
        """The job body: always the last operation."""
        last = self.ops[-1] if self.ops else None
        if not isinstance(last, Exec):
            raise ValueError(f"[{self.job}] plan does not end with a run command")
        return last

    def of_type(self, kind: type) -> list:
        return [op for op in self.ops if isinstance(op, kind)]


def plan_for(
    spec: JobSpec,
    source: str,
    *,
    workdir: Optional[str] = None,
    secrets: Optional[Dict[str, str]] = None,
) -> ContainerPlan:
    """
    Turn a JobSpec into an ordered container plan:

      image -> cache mounts -> env -> setup execs -> source copy
            -> workdir -> secret env -> run command

    Caches are mounted before setup so installers (Nix, bundler) write into
    the persisted volumes.
    """
    workdir = workdir or spec.workdir
    ops: list[Op] = [FromImage(spec.image)]
    ops.extend(MountCache(m.path, m.volume) for m in spec.cache_mounts)
    ops.extend(SetEnv(k, v) for k, v in spec.env)
    ops.extend(Exec(tuple(cmd)) for cmd in spec.setup_commands)
    ops.append(CopyDirectory(dest=workdir, source=str(source), exclude=spec.source_excludes))
    ops.append(SetWorkdir(workdir))
    ops.extend(SecretEnv(name) for name in spec.required_env)
    ops.append(Exec(("sh", "-c", spec.script)))
    return ContainerPlan(job=spec.name, ops=tuple(ops), secrets=dict(secrets or {}))
