# emit.py
# Render a JobRegistry as a hosted CI provider's pipeline document (GitLab CI).
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field

from .errors import EmitError
from .registry import JobRegistry


class ConfigEmitter(Protocol):
    def emit(self, registry: JobRegistry) -> str:
        ...


# -------------------- Schemas --------------------

# Top-level keys GitLab does not treat as job names.
GITLAB_KEYWORDS = frozenset({
    "default",
    "include",
    "stages",
    "variables",
    "workflow",
    "image",
    "services",
    "cache",
    "before_script",
    "after_script",
    "types",
})


class GitLabCache(BaseModel):
    model_config = ConfigDict(extra="forbid")

    paths: List[str] = Field(min_length=1)


class GitLabJob(BaseModel):
    model_config = ConfigDict(extra="forbid")

    script: List[str] = Field(min_length=1)
    stage: Optional[str] = None
    variables: Optional[Dict[str, str]] = None
    needs: Optional[List[str]] = None


class GitLabPipeline(BaseModel):
    model_config = ConfigDict(extra="forbid")

    image: Optional[str] = None
    services: List[str] = Field(default_factory=list)
    variables: Dict[str, str] = Field(default_factory=dict)
    cache: Optional[GitLabCache] = None
    before_script: List[str] = Field(default_factory=list)
    stages: Optional[List[str]] = None
    jobs: Dict[str, GitLabJob] = Field(default_factory=dict)

    def to_document(self) -> Dict[str, Any]:
        """Flatten into GitLab's layout: globals first, then one key per job."""
        doc = self.model_dump(exclude={"jobs"}, exclude_none=True)
        doc = {k: v for k, v in doc.items() if v not in ([], {})}
        for name, job in self.jobs.items():
            doc[name] = job.model_dump(exclude_none=True)
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "GitLabPipeline":
        top = {k: v for k, v in doc.items() if k in GITLAB_KEYWORDS}
        for unsupported in ("default", "include", "workflow", "after_script", "types"):
            top.pop(unsupported, None)
        jobs = {k: v for k, v in doc.items() if k not in GITLAB_KEYWORDS and not str(k).startswith(".")}
        return cls.model_validate({**top, "jobs": jobs})


# -------------------- Emitter --------------------

class GitLabEmitter:
    """
    Emits `.gitlab-ci.yml` for a registry: one job per entry whose script is
    the job's run command. Defaults mirror a Rails app on GitLab (Ruby image,
    database/cache services, bundler before_script).
    """

    def __init__(
        self,
        *,
        image: Optional[str] = "ruby:latest",
        services: Sequence[str] = ("mysql:latest", "redis:latest", "postgres:latest"),
        variables: Optional[Dict[str, str]] = None,
        cache_paths: Sequence[str] = ("vendor/ruby",),
        before_script: Sequence[str] = (
            "ruby -v",
            "bundle config set --local deployment true",
            "bundle install -j $(nproc)",
        ),
        stage: Optional[str] = None,
    ):
        self.image = image
        self.services = list(services)
        self.variables = {"POSTGRES_DB": "database_name"} if variables is None else dict(variables)
        self.cache_paths = list(cache_paths)
        self.before_script = list(before_script)
        self.stage = stage

    def pipeline(self, registry: JobRegistry) -> GitLabPipeline:
        jobs: Dict[str, Dict[str, Any]] = {}
        for entry in registry:
            name = entry.name
            if name in GITLAB_KEYWORDS:
                raise EmitError(f"Job name '{name}' is a reserved GitLab CI keyword", job=name)
            if name.startswith("."):
                raise EmitError(f"Job name '{name}' would be a hidden GitLab CI job", job=name)

            spec = entry.spec
            job: Dict[str, Any] = {"script": [line.strip() for line in spec.run_command if line.strip()]}
            if self.stage:
                job["stage"] = self.stage
            if spec.env:
                job["variables"] = dict(spec.env)
            needs = [n for n in spec.needs if n in registry]
            if needs:
                job["needs"] = needs
            jobs[name] = job

        try:
            return GitLabPipeline.model_validate({
                "image": self.image,
                "services": self.services,
                "variables": self.variables,
                "cache": {"paths": self.cache_paths} if self.cache_paths else None,
                "before_script": self.before_script,
                "stages": [self.stage] if self.stage else None,
                "jobs": jobs,
            })
        except pydantic.ValidationError as e:
            raise EmitError("Invalid GitLab CI document", details={"errors": e.error_count()}) from e

    def emit(self, registry: JobRegistry) -> str:
        doc = self.pipeline(registry).to_document()
        try:
            return yaml.safe_dump(doc, sort_keys=False, default_flow_style=False, width=120)
        except yaml.YAMLError as e:
            raise EmitError(f"Could not serialize GitLab CI document: {e}") from e

    def write(self, registry: JobRegistry, path: str | Path) -> Path:
        out = Path(path)
        out.write_text(self.emit(registry), encoding="utf-8")
        return out


def parse_gitlab(text: str) -> GitLabPipeline:
    """Parse and validate a GitLab CI document produced by GitLabEmitter."""
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise EmitError(f"Invalid YAML: {e}") from e
    if not isinstance(doc, dict):
        raise EmitError("GitLab CI document must be a mapping")
    try:
        return GitLabPipeline.from_document(doc)
    except pydantic.ValidationError as e:
        raise EmitError("Invalid GitLab CI document", details={"errors": e.error_count()}) from e
