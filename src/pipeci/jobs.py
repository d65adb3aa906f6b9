# jobs.py
# Built-in Ruby/Rails pipeline: rubocop, rails tests, rspec and a Heroku deploy.
from __future__ import annotations

from typing import Mapping, Optional

from .dsl import JobBuilder, build, sh
from .model import JobSpec, job_spec
from .registry import JobEntry, JobRegistry

BASE_IMAGE = "alpine:latest"
APP_DIR = "/app"
SOURCE_EXCLUDES = ["vendor", ".git", ".devbox", ".fluentci"]

NIX_INSTALL = (
    "curl --proto =https --tlsv1.2 -sSf -L https://install.determinate.systems/nix"
    " | sh -s -- install linux --extra-conf 'sandbox = false' --init none --no-confirm"
)
DEVBOX_INSTALL = "curl -fsSL https://get.jetpack.io/devbox | bash"

RUBY_PRELUDE = sh(
    "eval $(devbox shell --print-env)",
    "ruby -v",
    "bundle config set --local deployment true",
)
BUNDLE_INSTALL = "bundle install -j $(nproc)"

HEROKU_ENV = ("HEROKU_APP_NAME", "HEROKU_PRODUCTION_KEY")

DEFAULT_PIPELINE = ("rubocop", "rails", "rspec")


def _devbox_job(name: str) -> JobBuilder:
    """Alpine + Nix + Devbox, with the Nix store and bundle dir on cache volumes."""
    return (
        build(name)
        .from_image(BASE_IMAGE)
        .cache("/nix", "nix")
        .cache("/etc/nix", "nix-etc")
        .cache(f"{APP_DIR}/vendor", "bundle-cache")
        .with_env(FORCE=1)
        .setup("apk", "update")
        .setup("apk", "add", "bash", "curl")
        .setup_sh(NIX_INSTALL)
        .setup("adduser", "--disabled-password", "devbox")
        .setup("addgroup", "devbox", "nixbld")
        .setup_sh(DEVBOX_INSTALL)
        .copy_source(exclude=SOURCE_EXCLUDES)
        .workdir(APP_DIR)
        .run(*RUBY_PRELUDE)
    )


def rubocop() -> JobEntry:
    return (
        _devbox_job("rubocop")
        .run(BUNDLE_INSTALL, "bundle exec rubocop")
        .describe("Run rubocop")
        .entry()
    )


def rails() -> JobEntry:
    # migrations are not idempotent; the executor never retries this job
    return (
        _devbox_job("rails")
        .run(
            BUNDLE_INSTALL,
            "bundle exec rails db:migrate",
            "bundle exec rails db:seed",
            "bundle exec rails test",
        )
        .describe("Run rails tests")
        .entry()
    )


def rspec() -> JobEntry:
    return (
        _devbox_job("rspec")
        .run("gem install rspec", BUNDLE_INSTALL, "rspec spec")
        .describe("Run rspec tests")
        .entry()
    )


def _heroku_builder() -> JobBuilder:
    return (
        _devbox_job("heroku_deploy")
        .run(
            BUNDLE_INSTALL,
            "gem install dpl",
            "dpl --provider=heroku --app=$HEROKU_APP_NAME --api-key=$HEROKU_PRODUCTION_KEY",
        )
        .require_env(*HEROKU_ENV)
        .describe("Deploy to heroku")
    )


def heroku_deploy() -> JobEntry:
    return _heroku_builder().entry()


def heroku_deploy_job(environ: Optional[Mapping[str, str]] = None) -> JobSpec:
    """
    Deploy job with its environment checked up front.

    Raises:
        ValidationError: HEROKU_APP_NAME or HEROKU_PRODUCTION_KEY is unset
    """
    spec = _heroku_builder().build()
    return job_spec(
        spec.name,
        spec.image,
        spec.run_command,
        setup_commands=spec.setup_commands,
        cache_mounts=spec.cache_mounts,
        workdir=spec.workdir,
        source_excludes=spec.source_excludes,
        required_env=spec.required_env,
        env=dict(spec.env),
        environ=environ,
    )


def default_registry() -> JobRegistry:
    return JobRegistry.of(rubocop(), rails(), rspec(), heroku_deploy())
