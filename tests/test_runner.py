import textwrap

import pytest

from pipeci.dsl import build
from pipeci.errors import EngineUnavailable, UnknownJobError, ValidationError
from pipeci.executor import JobExecutor
from pipeci.model import FailureReason, JobStatus
from pipeci.registry import JobRegistry
from pipeci.runner import (
    CancelToken,
    Concurrency,
    FailurePolicy,
    PipelineRunner,
    exit_code,
    load_registry,
)


def _runner(registry, engine, **kwargs):
    return PipelineRunner(registry, JobExecutor(engine, environ={}), **kwargs)


def _statuses(results):
    return [(r.job_name, r.status) for r in results]


@pytest.mark.anyio
async def test_stop_on_first_failure(abc_registry, fake_engine):
    engine = fake_engine(failures=["b"])
    results = await _runner(abc_registry, engine).run(["a", "b", "c"])

    assert _statuses(results) == [("a", JobStatus.SUCCESS), ("b", JobStatus.FAILURE)]
    assert engine.ran == ["a", "b"]
    assert exit_code(results) == 1


@pytest.mark.anyio
async def test_continue_on_failure(abc_registry, fake_engine):
    engine = fake_engine(failures=["b"])
    runner = _runner(abc_registry, engine, failure=FailurePolicy.CONTINUE_ON_FAILURE)
    results = await runner.run(["a", "b", "c"])

    assert _statuses(results) == [
        ("a", JobStatus.SUCCESS),
        ("b", JobStatus.FAILURE),
        ("c", JobStatus.SUCCESS),
    ]


@pytest.mark.anyio
async def test_runs_in_requested_order(abc_registry, engine):
    results = await _runner(abc_registry, engine).run(["c", "a"])
    assert engine.ran == ["c", "a"]
    assert exit_code(results) == 0


@pytest.mark.anyio
async def test_defaults_to_every_job(abc_registry, engine):
    await _runner(abc_registry, engine).run()
    assert engine.ran == ["a", "b", "c"]


@pytest.mark.anyio
async def test_unknown_job_fails_before_anything_runs(abc_registry, engine):
    with pytest.raises(UnknownJobError) as exc:
        await _runner(abc_registry, engine).run(["a", "b", "missing"])
    assert exc.value.names == ["missing"]
    assert engine.plans == []


@pytest.mark.anyio
async def test_missing_env_fails_before_anything_runs(make_job, engine):
    deploy = build("deploy").from_image("alpine").run("deploy").require_env("TOKEN").describe("Deploy").entry()
    registry = JobRegistry.of(make_job("a"), deploy)

    with pytest.raises(ValidationError):
        await _runner(registry, engine).run(["a", "deploy"])
    assert engine.plans == []


@pytest.mark.anyio
async def test_cancel_token(abc_registry, engine):
    token = CancelToken()
    token.cancel()
    assert await _runner(abc_registry, engine).run(["a", "b"], cancel=token) == []
    assert engine.plans == []


@pytest.mark.anyio
async def test_engine_error_propagates(abc_registry, fake_engine):
    engine = fake_engine(errors={"b": EngineUnavailable("Docker is not available")})
    with pytest.raises(EngineUnavailable):
        await _runner(abc_registry, engine).run(["a", "b", "c"])
    assert engine.ran == ["a", "b"]


@pytest.mark.anyio
async def test_unexpected_error_is_a_failed_job(abc_registry, fake_engine):
    engine = fake_engine(errors={"b": RuntimeError("transport closed")})
    results = await _runner(abc_registry, engine).run(["a", "b", "c"])

    assert _statuses(results) == [("a", JobStatus.SUCCESS), ("b", JobStatus.FAILURE)]
    assert results[1].reason is FailureReason.ERROR
    assert "transport closed" in results[1].error
    assert exit_code(results) == 1


# ----------------------------------------------------------------------
# parallel
# ----------------------------------------------------------------------

@pytest.fixture
def dag_registry(make_job):
    return JobRegistry.of(
        make_job("lint"),
        make_job("docs"),
        make_job("test", "lint"),
        make_job("deploy", "test", "docs"),
    )


@pytest.mark.anyio
async def test_parallel_respects_needs(dag_registry, fake_engine):
    engine = fake_engine(delays={"lint": 0.05, "docs": 0.05})
    runner = _runner(dag_registry, engine, concurrency=Concurrency.PARALLEL, max_workers=4)
    results = await runner.run(["deploy", "test", "docs", "lint"])

    # reported in request order
    assert [r.job_name for r in results] == ["deploy", "test", "docs", "lint"]
    assert all(r.ok for r in results)
    assert set(engine.ran[:2]) == {"lint", "docs"}
    assert engine.ran[2:] == ["test", "deploy"]
    assert engine.max_active == 2


@pytest.mark.anyio
async def test_parallel_worker_cap(dag_registry, fake_engine):
    engine = fake_engine(delays={"lint": 0.02, "docs": 0.02})
    runner = _runner(dag_registry, engine, concurrency=Concurrency.PARALLEL, max_workers=1)
    await runner.run(["lint", "docs"])
    assert engine.max_active == 1


@pytest.mark.anyio
async def test_parallel_stops_after_failed_level(dag_registry, fake_engine):
    engine = fake_engine(failures=["lint"])
    runner = _runner(dag_registry, engine, concurrency=Concurrency.PARALLEL)
    results = await runner.run(["lint", "docs", "test", "deploy"])

    assert _statuses(results) == [("lint", JobStatus.FAILURE), ("docs", JobStatus.SUCCESS)]
    assert "test" not in engine.ran


@pytest.mark.anyio
async def test_parallel_continue_runs_everything(dag_registry, fake_engine):
    engine = fake_engine(failures=["lint"])
    runner = _runner(
        dag_registry,
        engine,
        concurrency=Concurrency.PARALLEL,
        failure=FailurePolicy.CONTINUE_ON_FAILURE,
    )
    results = await runner.run(["lint", "docs", "test", "deploy"])
    assert len(results) == 4
    assert exit_code(results) == 1


@pytest.mark.anyio
async def test_parallel_unexpected_error_keeps_sibling_results(dag_registry, fake_engine):
    engine = fake_engine(errors={"docs": RuntimeError("transport closed")}, delays={"lint": 0.05})
    runner = _runner(
        dag_registry,
        engine,
        concurrency=Concurrency.PARALLEL,
        failure=FailurePolicy.CONTINUE_ON_FAILURE,
    )
    results = await runner.run(["lint", "docs", "test"])

    assert _statuses(results) == [
        ("lint", JobStatus.SUCCESS),
        ("docs", JobStatus.FAILURE),
        ("test", JobStatus.SUCCESS),
    ]
    assert results[1].reason is FailureReason.ERROR


@pytest.mark.anyio
async def test_parallel_engine_error_propagates(dag_registry, fake_engine):
    engine = fake_engine(errors={"docs": EngineUnavailable("Docker is not available")})
    runner = _runner(dag_registry, engine, concurrency=Concurrency.PARALLEL)
    with pytest.raises(EngineUnavailable):
        await runner.run(["lint", "docs", "test"])
    assert "test" not in engine.ran


def test_exit_code_empty():
    assert exit_code([]) == 0


# ----------------------------------------------------------------------
# workflow loading
# ----------------------------------------------------------------------

def test_load_registry_function(tmp_path):
    path = tmp_path / "my_workflow.py"
    path.write_text(textwrap.dedent("""
        from pipeci import build, wf

        def registry():
            return wf(build("lint").from_image("python:3.12").run("ruff check .").describe("Run ruff"))
    """))
    registry = load_registry(path)
    assert registry.descriptions() == {"lint": "Run ruff"}


def test_load_registry_jobs_constant(tmp_path):
    path = tmp_path / "jobs_workflow.py"
    path.write_text(textwrap.dedent("""
        from pipeci import JobRegistry, build

        JOBS = JobRegistry.of(build("a").from_image("alpine").run("true").entry())
    """))
    assert load_registry(path).names() == ["a"]


def test_load_registry_rejects_other_values(tmp_path):
    path = tmp_path / "bad_workflow.py"
    path.write_text("JOBS = ['a']\n")
    with pytest.raises(TypeError, match="JobRegistry"):
        load_registry(path)


def test_load_registry_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_registry(tmp_path / "nope.py")
