# src/pipeci/dsl.py
from __future__ import annotations

from typing import List, Optional, Sequence

from .model import CacheMount, JobSpec
from .registry import JobEntry


# ---------------------------------------------------------------------
# Command helpers
# ---------------------------------------------------------------------

def sh(*lines: str) -> List[str]:
    """Shell lines for a job body: sh("bundle install", "bundle exec rubocop")."""
    return [line for line in lines if line.strip()]


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._image: Optional[str] = None
        self._setup: list[tuple[str, ...]] = []
        self._caches: list[CacheMount] = []
        self._workdir: str = "/app"
        self._excludes: list[str] = []
        self._run: list[str] = []
        self._required_env: list[str] = []
        self._env: dict[str, str] = {}
        self._needs: list[str] = []
        self._description: str = ""

    def from_image(self, image: str):
        self._image = image
        return self

    def setup(self, *args: str):
        """One setup exec, given as argv: .setup("apk", "add", "bash")."""
        self._setup.append(tuple(args))
        return self

    def setup_sh(self, cmd: str):
        self._setup.append(("sh", "-c", cmd))
        return self

    def cache(self, path: str, volume: str):
        self._caches.append(CacheMount(path=path, volume=volume))
        return self

    def copy_source(self, *, exclude: Sequence[str] = ()):
        self._excludes.extend(exclude)
        return self

    def workdir(self, path: str):
        self._workdir = path
        return self

    def run(self, *lines: str):
        self._run.extend(lines)
        return self

    def require_env(self, *names: str):
        self._required_env.extend(names)
        return self

    def with_env(self, **env):
        # force values to str so the spec stays hashable
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def depends_on(self, *job_names: str):
        self._needs.extend(job_names)
        return self

    def describe(self, description: str):
        self._description = description
        return self

    def build(self) -> JobSpec:
        if not self._image:
            raise ValueError(f"Job '{self.name}' has no image")

        return JobSpec(
            name=self.name,
            image=self._image,
            run_command=tuple(self._run),
            setup_commands=tuple(self._setup),
            cache_mounts=tuple(self._caches),
            workdir=self._workdir,
            source_excludes=tuple(self._excludes),
            required_env=tuple(self._required_env),
            env=tuple(self._env.items()),
            needs=tuple(self._needs),
        )

    def entry(self) -> JobEntry:
        """Build the spec and pair it with its description."""
        return JobEntry(spec=self.build(), description=self._description or self.name)


def build(name: str) -> JobBuilder:
    """Convenience: build('lint').from_image(...).run(...).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*entries: JobEntry | JobBuilder) -> List[JobEntry]:
    """
    Workflow definition helper.

        from pipeci import wf, build

        def registry():
            return wf(
                build("lint").from_image("python:3.12").run("ruff check ."),
                build("test").from_image("python:3.12").run("pytest -q"),
            )
    """
    return [e.entry() if isinstance(e, JobBuilder) else e for e in entries]
