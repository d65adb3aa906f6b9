from .dsl import JobBuilder, build, sh, wf
from .emit import GitLabEmitter
from .errors import CIError, EmitError, EngineError, EngineUnavailable, ExecutionError, UnknownJobError, ValidationError
from .executor import JobExecutor
from .model import CacheMount, ExecutionResult, JobSpec, JobStatus, job_spec
from .registry import JobEntry, JobRegistry
from .runner import CancelToken, Concurrency, FailurePolicy, PipelineRunner

__all__ = [
    "JobBuilder", "build", "sh", "wf",
    "GitLabEmitter",
    "CIError", "EmitError", "EngineError", "EngineUnavailable", "ExecutionError", "UnknownJobError", "ValidationError",
    "JobExecutor",
    "CacheMount", "ExecutionResult", "JobSpec", "JobStatus", "job_spec",
    "JobEntry", "JobRegistry",
    "CancelToken", "Concurrency", "FailurePolicy", "PipelineRunner",
]
