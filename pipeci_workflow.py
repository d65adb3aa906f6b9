# pipeci_workflow.py
# Workflow for pipeci itself: lint, tests and a generated-config check.
from __future__ import annotations

from pipeci import build, wf

PY_IMAGE = "python:3.12-slim"
EXCLUDES = [".git", ".venv", "**/__pycache__", ".pytest_cache"]


def _python_job(name: str):
    return (
        build(name)
        .from_image(PY_IMAGE)
        .cache("/root/.cache/pip", "pip-cache")
        .copy_source(exclude=EXCLUDES)
        .workdir("/src")
        .run("pip install -e '.[test]' ruff")
    )


def registry():
    return wf(
        # Lint job - runs ruff on the codebase
        _python_job("lint")
        .run("ruff check src tests")
        .describe("Run ruff"),

        # Test job - runs pytest once lint passed (ordering applies with --parallel)
        _python_job("test")
        .run("pytest -q")
        .depends_on("lint")
        .describe("Run pytest"),

        # Config check - the built-in jobs still render to GitLab CI
        _python_job("emit-check")
        .run("pipeci emit -o /tmp/.gitlab-ci.yml", "test -s /tmp/.gitlab-ci.yml")
        .describe("Render the GitLab CI config"),
    )
