"""Google Cloud Build configuration for staged function groups.

This module renders the build configs that deploy and delete a function
group through Cloud Build (one gcloud step per function, named with the
``${_PREFIX}`` substitution), resolves substitutions locally, and submits
builds with ``gcloud builds submit``.
"""

from __future__ import annotations

import re
import shutil
import subprocess  # nosec B404
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from funcstage.config.validator import flatten_pydantic_errors
from funcstage.lib.errors import (
    CloudSDKNotInstalledError,
    ConfigError,
    DeploymentError,
    SubstitutionError,
)
from funcstage.lib.logging_config import get_logger
from funcstage.models.function import FunctionDescriptor, ProjectConfig

logger = get_logger(__name__)

CLOUD_SDK_IMAGE = "gcr.io/google.com/cloudsdktool/cloud-sdk"
PREFIX_VARIABLE = "_PREFIX"
DEPLOY_CONFIG_FILENAME = "cloudbuild.yaml"
DELETE_CONFIG_FILENAME = "cloudbuilddelete.yaml"

# Substitutions provided by Cloud Build itself
BUILT_IN_SUBSTITUTIONS = frozenset(
    {
        "PROJECT_ID",
        "PROJECT_NUMBER",
        "BUILD_ID",
        "LOCATION",
        "TRIGGER_NAME",
        "COMMIT_SHA",
        "SHORT_SHA",
        "REVISION_ID",
        "BRANCH_NAME",
        "TAG_NAME",
        "REPO_NAME",
        "REPO_FULL_NAME",
        "SERVICE_ACCOUNT",
        "SERVICE_ACCOUNT_EMAIL",
    }
)

USER_SUBSTITUTION_PATTERN = re.compile(r"^_[A-Z0-9_]+$")
SUBSTITUTION_PATTERN = re.compile(r"\$\$|\$\{([A-Z0-9_]+)\}|\$([A-Z0-9_]+)")
BUILD_ID_PATTERN = re.compile(r"/builds/([0-9a-fA-F-]{8,})")


class BuildStep(BaseModel):
    """A single Cloud Build step.

    Attributes:
        name: Builder image the step runs in
        entrypoint: Executable inside the builder image
        args: Arguments passed to the entrypoint
        dir: Working directory relative to the uploaded source
        id: Step identifier
        wait_for: Step ids this step waits on ("-" starts immediately)
        env: KEY=VALUE pairs exported to the step
        secret_env: Secret names exported to the step
        script: Inline script run instead of entrypoint/args
        timeout: Step timeout (e.g. 300s)
        allow_failure: Keep the build going when this step fails

    Step fields not modelled here (``allowExitCodes``, ``volumes``, ...) are
    kept as-is and rendered back unchanged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(..., description="Builder image")
    entrypoint: str | None = Field(default=None, description="Step entrypoint")
    args: list[str] = Field(default_factory=list, description="Step arguments")
    dir: str | None = Field(default=None, description="Working directory")
    id: str | None = Field(default=None, description="Step identifier")
    wait_for: list[str] | None = Field(
        default=None, alias="waitFor", description="Step dependencies"
    )
    env: list[str] | None = Field(default=None, description="Step environment")
    secret_env: list[str] | None = Field(
        default=None, alias="secretEnv", description="Secret environment names"
    )
    script: str | None = Field(default=None, description="Inline step script")
    timeout: str | None = Field(default=None, description="Step timeout")
    allow_failure: bool | None = Field(
        default=None, alias="allowFailure", description="Tolerate step failure"
    )


class BuildConfig(BaseModel):
    """A Cloud Build configuration file.

    Top-level fields other than the ones below (``availableSecrets``,
    ``serviceAccount``, ``logsBucket``, ...) pass through untouched.
    """

    model_config = ConfigDict(extra="allow")

    steps: list[BuildStep] = Field(..., min_length=1, description="Build steps")
    substitutions: dict[str, str] | None = Field(
        default=None, description="Default substitution values"
    )
    options: dict[str, Any] | None = Field(default=None, description="Build options")
    timeout: str | None = Field(default=None, description="Build timeout (e.g. 600s)")


@dataclass
class BuildSubmission:
    """Result of submitting a build.

    Attributes:
        command: The gcloud command that was run
        build_id: Cloud Build id parsed from gcloud output, when present
        log_lines: Combined gcloud output lines
    """

    command: list[str]
    build_id: str | None = None
    log_lines: list[str] = field(default_factory=list)


def validate_substitutions(values: dict[str, str]) -> None:
    """Check that user-defined substitution keys follow Cloud Build rules.

    Raises:
        SubstitutionError: If a key is not of the form _UPPER_CASE
    """
    for key in values:
        if key in BUILT_IN_SUBSTITUTIONS:
            continue
        if not USER_SUBSTITUTION_PATTERN.match(key):
            raise SubstitutionError(
                key,
                "User-defined substitutions must start with an underscore and "
                "contain only uppercase letters, numbers and underscores.",
            )


def substitute_text(text: str, values: dict[str, str]) -> str:
    """Resolve ``$VAR`` and ``${VAR}`` references in a single string.

    User variables (leading underscore) must be bound. Built-in and other
    variables are replaced only when bound and otherwise left untouched.
    ``$$`` is an escaped literal ``$``.

    Raises:
        SubstitutionError: If a user variable is not bound
    """

    def replace(match: re.Match[str]) -> str:
        if match.group(0) == "$$":
            return "$"
        variable = match.group(1) or match.group(2)
        if variable in values:
            return values[variable]
        if variable.startswith("_"):
            raise SubstitutionError(variable, "No value was provided.")
        return match.group(0)

    return SUBSTITUTION_PATTERN.sub(replace, text)


def substitute(config: BuildConfig, values: dict[str, str]) -> BuildConfig:
    """Return a copy of the config with substitutions bound in every step.

    Values given here override the config's own ``substitutions`` defaults.

    Raises:
        SubstitutionError: If a key is invalid or a user variable is unbound
    """
    bound = {**(config.substitutions or {}), **values}
    validate_substitutions(bound)

    steps = [
        step.model_copy(
            update={
                "name": substitute_text(step.name, bound),
                "args": [substitute_text(arg, bound) for arg in step.args],
                "dir": substitute_text(step.dir, bound) if step.dir else step.dir,
                "env": (
                    [substitute_text(pair, bound) for pair in step.env]
                    if step.env
                    else step.env
                ),
                "script": (
                    substitute_text(step.script, bound) if step.script else step.script
                ),
            }
        )
        for step in config.steps
    ]
    return config.model_copy(update={"steps": steps, "substitutions": None})


def _location_args(config: ProjectConfig) -> list[str]:
    args = [f"--region={config.region}"]
    if config.gen2:
        args.append("--gen2")
    return args


def _relative_source(descriptor: FunctionDescriptor, base_dir: Path) -> str:
    source = Path(descriptor.source_dir)
    if not source.is_absolute():
        return source.as_posix()
    try:
        return source.resolve().relative_to(base_dir.resolve()).as_posix()
    except ValueError as exc:
        raise ConfigError(
            field=f"functions.{descriptor.local_name}.source_dir",
            message=(
                f"{source} is outside {base_dir}; Cloud Build only sees the "
                "uploaded directory."
            ),
        ) from exc


def generate_deploy_config(
    config: ProjectConfig,
    base_dir: Path,
    descriptors: list[FunctionDescriptor] | None = None,
    parallel: bool = False,
) -> BuildConfig:
    """Build the Cloud Build config that deploys every function.

    Cloud Build stops at the first failing step, so the remaining functions
    are not deployed after a failure. Use the lifecycle driver for a
    fail-soft rollout.

    Args:
        config: Project configuration
        base_dir: Directory uploaded as the build source
        descriptors: Functions to include (default: all declared)
        parallel: Let steps start immediately instead of running in order
    """
    steps: list[BuildStep] = []
    for descriptor in descriptors or config.functions:
        args = [
            "functions",
            "deploy",
            f"${{{PREFIX_VARIABLE}}}-{descriptor.local_name}",
            f"--runtime={descriptor.runtime}",
            "--trigger-http",
            f"--entry-point={descriptor.entry_point}",
            *_location_args(config),
        ]
        if config.allow_unauthenticated:
            args.append("--allow-unauthenticated")
        if config.memory:
            args.append(f"--memory={config.memory}")
        if config.env_vars:
            pairs = ",".join(f"{k}={v}" for k, v in sorted(config.env_vars.items()))
            args.append(f"--set-env-vars={pairs}")
        args.append("--source=.")

        steps.append(
            BuildStep(
                name=CLOUD_SDK_IMAGE,
                entrypoint="gcloud",
                args=args,
                dir=_relative_source(descriptor, base_dir),
                id=f"deploy-{descriptor.local_name}",
                wait_for=["-"] if parallel else None,
            )
        )
    return BuildConfig(steps=steps)


def generate_delete_config(
    config: ProjectConfig,
    names: list[str] | None = None,
    parallel: bool = False,
) -> BuildConfig:
    """Build the Cloud Build config that deletes every function.

    The delete config needs no source; submit it with ``no_source=True``.
    Steps are marked ``allowFailure`` so a function that is already gone
    does not stop the remaining deletes.
    """
    local_names = names or [f.local_name for f in config.functions]
    steps = [
        BuildStep(
            name=CLOUD_SDK_IMAGE,
            entrypoint="gcloud",
            args=[
                "functions",
                "delete",
                f"${{{PREFIX_VARIABLE}}}-{name}",
                *_location_args(config),
                "--quiet",
            ],
            id=f"delete-{name}",
            wait_for=["-"] if parallel else None,
            allow_failure=True,
        )
        for name in local_names
    ]
    return BuildConfig(steps=steps)


def render_build_config(config: BuildConfig) -> str:
    """Serialize a build config to YAML."""
    payload = config.model_dump(mode="json", by_alias=True, exclude_none=True)
    return yaml.safe_dump(payload, sort_keys=False, default_flow_style=False)


def write_build_config(config: BuildConfig, path: Path) -> Path:
    """Write a build config to disk and return the path."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_build_config(config), encoding="utf-8")
    except OSError as exc:
        raise DeploymentError(
            operation="render",
            message=f"Failed to write build config to {path}: {exc}",
        ) from exc
    return path


def load_build_config(path: Path) -> BuildConfig:
    """Load and validate a Cloud Build YAML file.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError("build_config", f"Cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(
            "build_config", f"Failed to parse YAML file {path}: {exc}"
        ) from exc

    try:
        return BuildConfig.model_validate(content or {})
    except PydanticValidationError as exc:
        error_text = "\n".join(flatten_pydantic_errors(exc))
        raise ConfigError(
            "build_config", f"Invalid build config in {path}:\n{error_text}"
        ) from exc


def build_submit_command(
    config_path: Path,
    substitutions: dict[str, str],
    *,
    source_dir: Path | None = None,
    no_source: bool = False,
    project: str | None = None,
    gcloud_bin: str = "gcloud",
) -> list[str]:
    """Return the ``gcloud builds submit`` command line for a build."""
    cmd = [gcloud_bin, "builds", "submit", f"--config={config_path}"]
    if substitutions:
        pairs = ",".join(f"{k}={v}" for k, v in sorted(substitutions.items()))
        cmd.append(f"--substitutions={pairs}")
    if project:
        cmd.append(f"--project={project}")
    if no_source:
        cmd.append("--no-source")
    else:
        cmd.append(str(source_dir or Path(".")))
    return cmd


def submit_build(
    config_path: Path,
    substitutions: dict[str, str],
    *,
    source_dir: Path | None = None,
    no_source: bool = False,
    project: str | None = None,
    gcloud_bin: str = "gcloud",
    timeout: int = 3600,
) -> BuildSubmission:
    """Submit a build config to Cloud Build and wait for it to finish.

    The config is resolved locally first so unbound substitutions fail before
    anything is uploaded.

    Raises:
        ConfigError: If the build config is invalid
        SubstitutionError: If substitutions do not bind
        CloudSDKNotInstalledError: If gcloud is not installed
        DeploymentError: If the build fails
    """
    substitute(load_build_config(config_path), substitutions)

    resolved = shutil.which(gcloud_bin)
    if resolved is None:
        raise CloudSDKNotInstalledError(provider="gcp", sdk_name=gcloud_bin)

    cmd = build_submit_command(
        config_path,
        substitutions,
        source_dir=source_dir,
        no_source=no_source,
        project=project,
        gcloud_bin=resolved,
    )
    logger.info(f"Submitting {config_path.name} to Cloud Build")
    logger.debug(f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(  # noqa: S603  # nosec B603
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise DeploymentError(
            operation="submit",
            message=f"Build did not finish within {timeout} seconds",
        ) from exc

    output = "\n".join(part for part in (result.stdout, result.stderr) if part)
    log_lines = output.splitlines()
    match = BUILD_ID_PATTERN.search(output)
    build_id = match.group(1) if match else None

    if result.returncode != 0:
        tail = " ".join(log_lines[-5:]) or f"exit code {result.returncode}"
        raise DeploymentError(
            operation="submit",
            message=f"Build {build_id or '(unknown id)'} failed: {tail}",
        )

    logger.info(f"Build {build_id or '(unknown id)'} finished")
    return BuildSubmission(command=cmd, build_id=build_id, log_lines=log_lines)
