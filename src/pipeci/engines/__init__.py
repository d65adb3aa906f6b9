# engines/__init__.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..plan import ContainerPlan


@dataclass(frozen=True)
class EngineOutput:
    stdout: str
    stderr: str = ""


class ContainerEngine(Protocol):
    """
    Realizes a ContainerPlan.

    Implementations raise ExecutionError on a non-zero exit inside the
    container and EngineUnavailable when the engine cannot start.
    """

    name: str

    async def run(self, plan: ContainerPlan) -> EngineOutput:
        ...


ENGINES = ("dagger", "docker")


def engine_for(name: str) -> ContainerEngine:
    """Instantiate an engine by name ("dagger" or "docker")."""
    # imported lazily so `docker` works without the Dagger SDK loaded
    if name == "dagger":
        from .dagger_engine import DaggerEngine
        return DaggerEngine()
    if name == "docker":
        from .docker import DockerEngine
        return DockerEngine()
    raise ValueError(f"Unknown engine {name!r}; expected one of {', '.join(ENGINES)}")


__all__ = ["ContainerEngine", "EngineOutput", "ENGINES", "engine_for"]
