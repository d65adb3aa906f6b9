from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import anyio
import pytest

from pipeci.dsl import build
from pipeci.engines import EngineOutput
from pipeci.errors import ExecutionError
from pipeci.plan import ContainerPlan
from pipeci.registry import JobRegistry
from pipeci.ui.console import Console, set_console


class FakeEngine:
    """Records every plan it is given; jobs listed in `failures` exit 1."""

    name = "fake"

    def __init__(
        self,
        failures: Iterable[str] = (),
        delays: Optional[Dict[str, float]] = None,
        errors: Optional[Dict[str, Exception]] = None,
    ):
        self.plans: List[ContainerPlan] = []
        self.failures = set(failures)
        self.delays = delays or {}
        self.errors = errors or {}
        self.active = 0
        self.max_active = 0

    @property
    def ran(self) -> List[str]:
        return [p.job for p in self.plans]

    async def run(self, plan: ContainerPlan) -> EngineOutput:
        self.plans.append(plan)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if plan.job in self.delays:
                await anyio.sleep(self.delays[plan.job])
            if plan.job in self.errors:
                raise self.errors[plan.job]
            if plan.job in self.failures:
                raise ExecutionError(
                    "Command exited with status 1",
                    job=plan.job,
                    exit_code=1,
                    stdout=f"{plan.job} partial\n",
                    stderr=f"{plan.job} boom\n",
                    command=plan.run.args[-1],
                )
            return EngineOutput(stdout=f"{plan.job} ok\n")
        finally:
            self.active -= 1


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def console():
    c = Console(debug=False)
    set_console(c)
    return c


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def fake_engine():
    return FakeEngine


def simple_job(name: str, *needs: str, run: str = "make"):
    return (
        build(name)
        .from_image("alpine:3.19")
        .setup("apk", "add", "make")
        .copy_source(exclude=[".git"])
        .run(run)
        .depends_on(*needs)
        .describe(f"Job {name}")
        .entry()
    )


@pytest.fixture
def abc_registry():
    return JobRegistry.of(simple_job("a"), simple_job("b"), simple_job("c"))


@pytest.fixture
def make_job():
    return simple_job
