# cli.py
from __future__ import annotations

import functools
import sys
from pathlib import Path
from typing import Optional, Tuple

import anyio
import click

from pipeci.emit import GitLabEmitter
from pipeci.engines import ENGINES, engine_for
from pipeci.errors import CIError, UnknownJobError
from pipeci.executor import JobExecutor
from pipeci.jobs import DEFAULT_PIPELINE, default_registry
from pipeci.registry import JobRegistry
from pipeci.runner import Concurrency, FailurePolicy, PipelineRunner, exit_code, load_registry
from pipeci.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW = "pipeci_workflow.py"
BUILTIN = "<built-in>"


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []
    current_dir = Path(".")

    default_workflow = current_dir / DEFAULT_WORKFLOW
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in current_dir.glob("*_workflow.py"):
        if path != default_workflow:
            workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Optional[Path]:
    """
    Discover workflow file from argument or default.

    Args:
        workflow_arg: Optional workflow argument from CLI

    Returns:
        Path to workflow file, or None to use the built-in jobs

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  pipeci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()
    if not workflow_files:
        return None

    # the default name wins over other *_workflow.py files
    for path in workflow_files:
        if path.name == DEFAULT_WORKFLOW:
            return path

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  pipeci run --workflow {workflow_files[0]}",
        )
        sys.exit(1)

    return workflow_files[0]


def resolve_registry(workflow_arg: str | None) -> Tuple[JobRegistry, str]:
    """Registry from the discovered workflow file, else the built-in Ruby jobs."""
    workflow_path = discover_workflow(workflow_arg)
    if workflow_path is None:
        return default_registry(), BUILTIN
    return load_registry(workflow_path), workflow_path.name


def _fail(ctx: click.Context, exc: Exception, code: int = 1) -> None:
    console = get_console()
    if isinstance(exc, CIError):
        details = [f"{k}: {v}" for k, v in exc.details.items()]
        if exc.job:
            details.insert(0, f"job: {exc.job}")
        console.print_error(exc.kind, exc.message, details=details or None)
    else:
        console.print_exception(exc)
    sys.exit(code)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """pipeci: declarative CI jobs run in containers."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("jobs", nargs=-1)
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)")
@click.option("--src", default=".", show_default=True, type=click.Path(file_okay=False), help="Source directory copied into each job")
@click.option("--engine", default="dagger", show_default=True, type=click.Choice(ENGINES), help="Container engine")
@click.option("--fail-fast/--keep-going", default=True, show_default=True, help="Stop after the first failed job")
@click.option("--parallel", is_flag=True, default=False, help="Run independent jobs concurrently")
@click.option("--workers", default=None, type=int, help="Max concurrent jobs with --parallel")
@click.option("--timeout", default=None, type=float, help="Per-job timeout in seconds")
@click.pass_context
def run(ctx, jobs, workflow, src, engine, fail_fast, parallel, workers, timeout):
    """Run JOBS (default: the whole pipeline)."""
    console = get_console()

    try:
        registry, workflow_name = resolve_registry(workflow)
        names = list(jobs) or (list(DEFAULT_PIPELINE) if workflow_name == BUILTIN else registry.names())
        registry.resolve(names)

        console.print_run_started(
            source=str(Path(src).resolve()),
            workflow=workflow_name,
            engine=engine,
            jobs=names,
        )

        runner = PipelineRunner(
            registry,
            JobExecutor(engine_for(engine), timeout=timeout),
            failure=FailurePolicy.STOP_ON_FIRST_FAILURE if fail_fast else FailurePolicy.CONTINUE_ON_FAILURE,
            concurrency=Concurrency.PARALLEL if parallel else Concurrency.SEQUENTIAL,
            max_workers=workers,
            console=console,
        )
        results = anyio.run(functools.partial(runner.run, names, source=src))

        console.print_results(results)
        code = exit_code(results)
        if code:
            sys.exit(code)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except UnknownJobError as e:
        _fail(ctx, e, code=2)
    except (CIError, FileNotFoundError, TypeError, ValueError) as e:
        _fail(ctx, e)
    except Exception as e:
        # engine SDK or transport failure outside any job
        _fail(ctx, e)


@cli.command(name="list")
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)")
@click.pass_context
def list_jobs(ctx, workflow):
    """List available jobs."""
    console = get_console()
    try:
        registry, workflow_name = resolve_registry(workflow)
    except (CIError, FileNotFoundError, TypeError, ValueError) as e:
        _fail(ctx, e)
    console.print_header(f"Jobs ({workflow_name})")
    console.print_jobs(registry.descriptions())


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)")
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False), help="Write to a file instead of stdout")
@click.pass_context
def emit(ctx, workflow, output):
    """Generate a .gitlab-ci.yml for the jobs."""
    console = get_console()
    try:
        registry, _ = resolve_registry(workflow)
        emitter = GitLabEmitter()
        if output:
            path = emitter.write(registry, output)
            console.print_info(f"Wrote {path}")
        else:
            click.echo(emitter.emit(registry), nl=False)
    except (CIError, FileNotFoundError, TypeError, ValueError) as e:
        _fail(ctx, e)


def main() -> None:
    cli()


if __name__ == "__main__":
    cli()
