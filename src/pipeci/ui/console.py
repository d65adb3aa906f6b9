"""Console output formatting utilities for pipeci."""

from __future__ import annotations

import json
import sys
from typing import Iterable, Mapping, Optional

from ..model import ExecutionResult


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, show_output: bool = True):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            show_output: If True, echo each job's captured stdout
        """
        self.debug = debug
        self.show_output = show_output

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(
        self,
        source: str,
        workflow: str,
        engine: str,
        jobs: Iterable[str],
    ) -> None:
        """Print run start information."""
        jobs = list(jobs)
        print("\nRUN STARTED")
        print(f"Source: {source}")
        print(f"Workflow: {workflow}")
        print(f"Engine: {engine}")
        print(f"Jobs: {len(jobs)} ({', '.join(jobs)})")
        print()

    def print_job_start(self, name: str) -> None:
        """Print job start message."""
        print(f"\nJOB STARTED: {name}")

    def print_job_result(self, result: ExecutionResult) -> None:
        """Print a finished job: its output, then its status."""
        self.print_debug(json.dumps(result.to_dict()))
        if self.show_output and result.stdout:
            print(result.stdout.rstrip("\n"))
        if result.ok:
            self.print_success(result.job_name, result.duration)
            return
        self.print_failure(
            result.job_name,
            reason=result.error or "",
            exit_code=result.exit_code,
            stderr=result.stderr,
        )

    def print_success(self, name: str, duration: Optional[float] = None) -> None:
        """Print success message."""
        if duration is not None:
            print(f"STATUS: success ({duration:.1f}s)")
        else:
            print("STATUS: success")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        """
        Print failure message.

        Args:
            name: Job name
            reason: Failure reason/error message
            exit_code: Optional exit code
            stderr: Captured stderr; only the tail is shown outside debug mode
        """
        print(f"JOB FAILED: {name}")
        if exit_code is not None:
            print(f"Exit code: {exit_code}")
        if reason:
            print(f"Error: {reason.splitlines()[0]}")
        if stderr:
            tail = stderr if self.debug else "\n".join(stderr.rstrip().splitlines()[-20:])
            print(tail, file=sys.stderr)

    def print_jobs(self, descriptions: Mapping[str, str]) -> None:
        """Print job names with their descriptions."""
        width = max((len(n) for n in descriptions), default=0)
        for name, description in descriptions.items():
            print(f"  {name.ljust(width)}  {description}")

    def print_results(self, results: Iterable[ExecutionResult]) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for result in results:
            status_display = "SUCCESS" if result.ok else "FAILED"
            if result.reason is not None:
                status_display += f" ({result.reason.value})"
            print(f"  {result.job_name}: {status_display}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
