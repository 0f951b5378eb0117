"""CLI commands for deploying and deleting function groups.

Implements 'funcstage deploy', 'funcstage delete' and 'funcstage status',
which drive the lifecycle of every function in funcstage.yaml under a prefix,
and 'funcstage logs' for reading one deployed function's logs.
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import click

from funcstage.config.defaults import DEFAULT_CONFIG_FILENAME, PREFIX_ENV_VAR
from funcstage.deploy.deployers import create_deployer
from funcstage.deploy.lifecycle import LifecycleDriver, resolve_targets
from funcstage.deploy.naming import resource_ids
from funcstage.deploy.state import get_state_path
from funcstage.lib.errors import (
    CloudSDKNotInstalledError,
    ConfigError,
    DeploymentError,
    FileNotFoundError,
    SubstitutionError,
)
from funcstage.lib.logging_config import get_logger, setup_logging
from funcstage.models.deployment import FunctionResult, FunctionStatus, has_failures
from funcstage.models.function import FunctionDescriptor, ProjectConfig

logger = get_logger(__name__)

STATUS_COLORS = {
    FunctionStatus.DEPLOYED: "green",
    FunctionStatus.DELETED: "green",
    FunctionStatus.ACTIVE: "green",
    FunctionStatus.ABSENT: "yellow",
    FunctionStatus.SKIPPED: "yellow",
    FunctionStatus.FAILED: "red",
}


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in lifecycle commands.

    Exit codes:
        2: Configuration error
        3: Deployment/execution error
    """
    try:
        yield
    except (ConfigError, FileNotFoundError, SubstitutionError) as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except CloudSDKNotInstalledError as e:
        logger.error(f"Cloud tooling missing: {e}")
        click.secho("Error: gcloud is not available", fg="red", err=True)
        click.echo(f"  {e}", err=True)
        sys.exit(3)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(3)


config_argument = click.argument(
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=DEFAULT_CONFIG_FILENAME,
    required=False,
)
prefix_option = click.option(
    "--prefix",
    "-p",
    envvar=PREFIX_ENV_VAR,
    required=True,
    help=f"Stage prefix for deployed names (env: {PREFIX_ENV_VAR})",
)
only_option = click.option(
    "--only",
    multiple=True,
    help="Limit to these function names (repeatable)",
)
verbose_option = click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose debug logging"
)
quiet_option = click.option(
    "--quiet", "-q", is_flag=True, help="Only print resource ids and statuses"
)


@click.command()
@config_argument
@prefix_option
@only_option
@click.option(
    "--fail-fast/--no-fail-fast",
    default=None,
    help="Stop after the first failed function (default from config)",
)
@click.option(
    "--max-workers",
    type=click.IntRange(1, 32),
    default=None,
    help="Number of functions deployed in parallel",
)
@click.option("--dry-run", is_flag=True, help="Show what would be deployed")
@verbose_option
@quiet_option
def deploy(
    config_file: str,
    prefix: str,
    only: tuple[str, ...],
    fail_fast: bool | None,
    max_workers: int | None,
    dry_run: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Deploy every function in CONFIG_FILE under PREFIX.

    Each function is deployed as '<prefix>-<name>'. Deploying the same
    prefix again updates the functions in place.

    Example:

        funcstage deploy --prefix myprefix

        funcstage deploy funcstage.yaml -p pr-42 --only func1
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        config, config_path = _load_config(config_file)
        descriptors = _select(config, only)
        ids = resource_ids(prefix, descriptors)

        if not quiet:
            _display_plan("Deploy", config, prefix, descriptors, ids)

        if dry_run:
            click.secho("[DRY RUN] No functions were deployed", fg="yellow")
            sys.exit(0)

        driver = _make_driver(config, config_path, fail_fast, max_workers)
        results = driver.deploy(descriptors, prefix)
        _finish(results, quiet, "Deployment")


@click.command()
@config_argument
@prefix_option
@only_option
@click.option("--force", is_flag=True, help="Skip confirmation prompt")
@click.option(
    "--fail-fast/--no-fail-fast",
    default=None,
    help="Stop after the first failed function (default from config)",
)
@click.option("--dry-run", is_flag=True, help="Show what would be deleted")
@verbose_option
@quiet_option
def delete(
    config_file: str,
    prefix: str,
    only: tuple[str, ...],
    force: bool,
    fail_fast: bool | None,
    dry_run: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Delete every function deployed under PREFIX.

    Targets the functions declared in CONFIG_FILE plus any the local
    manifest recorded under PREFIX. The source code is not needed.
    Functions that are already gone are reported as ABSENT.

    Example:

        funcstage delete --prefix myprefix --force
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        config, config_path = _load_config(config_file)
        descriptors = _select(config, only)
        state_path = get_state_path(config_path)
        targets = resolve_targets(
            descriptors, prefix, state_path, include_recorded=not only
        )

        if not quiet:
            click.echo()
            click.secho("Delete Configuration:", bold=True)
            click.echo(f"  Prefix:    {prefix}")
            click.echo(f"  Region:    {config.region}")
            for target in targets:
                click.echo(f"  Function:  {target.resource_id}")
            click.echo()

        if dry_run:
            click.secho("[DRY RUN] No functions were deleted", fg="yellow")
            sys.exit(0)

        if not force:
            confirm = click.confirm(
                f"Delete {len(targets)} function(s) with prefix '{prefix}'?",
                default=False,
            )
            if not confirm:
                click.secho("Delete aborted.", fg="yellow")
                sys.exit(0)

        driver = _make_driver(config, config_path, fail_fast, None)
        results = driver.delete(descriptors, prefix, include_recorded=not only)
        _finish(results, quiet, "Delete")


@click.command()
@config_argument
@prefix_option
@only_option
@verbose_option
@quiet_option
def status(
    config_file: str,
    prefix: str,
    only: tuple[str, ...],
    verbose: bool,
    quiet: bool,
) -> None:
    """Show the platform state of every function under PREFIX."""
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        config, config_path = _load_config(config_file)
        descriptors = _select(config, only)

        driver = _make_driver(config, config_path, None, None)
        results = driver.status(descriptors, prefix, include_recorded=not only)

        if quiet:
            for result in results:
                click.echo(f"{result.resource_id} {result.status.value}")
            sys.exit(0)

        click.echo()
        click.secho(f"Status for prefix '{prefix}'", bold=True)
        _display_results(results)
        click.echo()


@click.command()
@click.argument("name")
@config_argument
@prefix_option
@click.option(
    "--limit",
    type=click.IntRange(1, 1000),
    default=50,
    show_default=True,
    help="Number of log lines to read",
)
@verbose_option
def logs(
    name: str,
    config_file: str,
    prefix: str,
    limit: int,
    verbose: bool,
) -> None:
    """Print recent log lines of function NAME deployed under PREFIX."""
    setup_logging(verbose=verbose)

    with handle_deployment_errors():
        config, _ = _load_config(config_file)
        rid = resource_ids(prefix, _select(config, (name,)))[name]

        deployer = create_deployer(config)
        try:
            lines = deployer.stream_logs(rid, limit=limit)
        except NotImplementedError as e:
            raise DeploymentError(operation="logs", message=str(e)) from e

        for line in lines:
            click.echo(line)



def _load_config(config_file: str) -> tuple[ProjectConfig, Path]:
    from funcstage.config.loader import ConfigLoader

    loader = ConfigLoader()
    config = loader.load(config_file)
    return config, Path(config_file).resolve()


def _select(config: ProjectConfig, only: tuple[str, ...]) -> list[FunctionDescriptor]:
    try:
        return config.select(only)
    except ValueError as e:
        raise ConfigError(field="only", message=str(e)) from e


def _make_driver(
    config: ProjectConfig,
    config_path: Path,
    fail_fast: bool | None,
    max_workers: int | None,
) -> LifecycleDriver:
    deployer = create_deployer(config)
    driver = LifecycleDriver.from_config(
        config, deployer, state_path=get_state_path(config_path)
    )
    if fail_fast is not None:
        driver.fail_fast = fail_fast
    if max_workers is not None:
        driver.max_workers = max_workers
    return driver


def _display_plan(
    action: str,
    config: ProjectConfig,
    prefix: str,
    descriptors: list[FunctionDescriptor],
    ids: dict[str, str],
) -> None:
    click.echo()
    click.secho(f"{action} Configuration:", bold=True)
    click.echo(f"  Prefix:    {prefix}")
    click.echo(f"  Project:   {config.project or '(gcloud default)'}")
    click.echo(f"  Region:    {config.region}")
    for descriptor in descriptors:
        click.echo(
            f"  Function:  {ids[descriptor.local_name]} "
            f"({descriptor.runtime}, {descriptor.entry_point})"
        )
    click.echo()


def _display_results(results: list[FunctionResult]) -> None:
    for result in results:
        color = STATUS_COLORS.get(result.status)
        line = f"  {result.resource_id:<40} {result.status.value:<9}"
        if result.url:
            line += f" {result.url}"
        elif result.error:
            line += f" {result.error}"
        click.secho(line, fg=color)


def _finish(results: list[FunctionResult], quiet: bool, action: str) -> None:
    failed = has_failures(results)

    if quiet:
        for result in results:
            click.echo(f"{result.resource_id} {result.status.value}")
    else:
        click.echo()
        if failed:
            click.secho(f"{action} finished with failures", fg="red", bold=True)
        else:
            click.secho(f"{action} Successful!", fg="green", bold=True)
        _display_results(results)
        click.echo()

    if failed:
        sys.exit(3)
