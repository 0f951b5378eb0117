"""CLI commands for Cloud Build configurations.

Implements 'funcstage build render', which writes the deploy and delete
build configs for a function group, and 'funcstage build submit', which
runs one of them on Cloud Build with a prefix bound to ``_PREFIX``.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from funcstage.cli.commands.deploy import (
    config_argument,
    handle_deployment_errors,
    prefix_option,
    quiet_option,
    verbose_option,
)
from funcstage.config.loader import ConfigLoader
from funcstage.deploy.cloudbuild import (
    DELETE_CONFIG_FILENAME,
    DEPLOY_CONFIG_FILENAME,
    PREFIX_VARIABLE,
    build_submit_command,
    generate_delete_config,
    generate_deploy_config,
    load_build_config,
    substitute,
    submit_build,
    write_build_config,
)
from funcstage.deploy.naming import resource_ids
from funcstage.lib.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


@click.group(name="build", invoke_without_command=True)
@click.pass_context
def build(ctx: click.Context) -> None:
    """Render and submit Cloud Build configurations.

    Subcommands:

        render  Write cloudbuild.yaml and cloudbuilddelete.yaml
        submit  Run the deploy or delete build on Cloud Build

    Example:

        funcstage build render

        funcstage build submit deploy --prefix myprefix
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@build.command()
@config_argument
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory for the build configs (default: next to CONFIG_FILE)",
)
@click.option(
    "--parallel",
    is_flag=True,
    help="Let every step start immediately instead of one after another",
)
@verbose_option
@quiet_option
def render(
    config_file: str,
    output_dir: str | None,
    parallel: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Write the deploy and delete build configs for CONFIG_FILE.

    Function names in the configs use the ``${_PREFIX}`` substitution, so
    one pair of files serves every stage.
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        config_path = Path(config_file).resolve()
        config = ConfigLoader().load(config_file)
        base_dir = config_path.parent
        target_dir = Path(output_dir).resolve() if output_dir else base_dir

        deploy_path = write_build_config(
            generate_deploy_config(config, base_dir, parallel=parallel),
            target_dir / DEPLOY_CONFIG_FILENAME,
        )
        delete_path = write_build_config(
            generate_delete_config(config, parallel=parallel),
            target_dir / DELETE_CONFIG_FILENAME,
        )
        logger.debug(f"Rendered build configs into {target_dir}")

        if quiet:
            click.echo(str(deploy_path))
            click.echo(str(delete_path))
            return

        click.echo()
        click.secho("Build configs written", fg="green", bold=True)
        click.echo(f"  Deploy:    {deploy_path}")
        click.echo(f"  Delete:    {delete_path}")
        click.echo(f"  Functions: {len(config.functions)}")
        click.echo()


@build.command()
@click.argument("action", type=click.Choice(["deploy", "delete"]))
@config_argument
@prefix_option
@click.option(
    "--build-config",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Build config to submit (default: the rendered file for ACTION)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Print the gcloud command without submitting",
)
@verbose_option
@quiet_option
def submit(
    action: str,
    config_file: str,
    prefix: str,
    build_config: str | None,
    dry_run: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Submit the deploy or delete build with _PREFIX bound to PREFIX.

    Example:

        funcstage build submit deploy --prefix myprefix

        funcstage build submit delete funcstage.yaml -p myprefix
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        config_path = Path(config_file).resolve()
        config = ConfigLoader().load(config_file)
        resource_ids(prefix, config.functions)

        default_name = (
            DEPLOY_CONFIG_FILENAME if action == "deploy" else DELETE_CONFIG_FILENAME
        )
        build_path = (
            Path(build_config).resolve()
            if build_config
            else config_path.parent / default_name
        )
        substitutions = {PREFIX_VARIABLE: prefix}
        no_source = action == "delete"
        source_dir = None if no_source else config_path.parent

        if dry_run:
            substitute(load_build_config(build_path), substitutions)
            cmd = build_submit_command(
                build_path,
                substitutions,
                source_dir=source_dir,
                no_source=no_source,
                project=config.project,
            )
            click.secho("[DRY RUN] Would run:", fg="yellow")
            click.echo(f"  {' '.join(cmd)}")
            sys.exit(0)

        if not quiet:
            click.echo(f"Submitting {build_path.name} with {PREFIX_VARIABLE}={prefix}")

        submission = submit_build(
            build_path,
            substitutions,
            source_dir=source_dir,
            no_source=no_source,
            project=config.project,
        )

        if quiet:
            click.echo(submission.build_id or "")
            return

        click.secho("Build Successful!", fg="green", bold=True)
        if submission.build_id:
            click.echo(f"  Build ID:  {submission.build_id}")
