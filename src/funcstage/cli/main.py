"""Entry point for the funcstage command.

Provides the top-level click group that registers every subcommand.
"""

import click

from funcstage import __version__
from funcstage.cli.commands.build import build
from funcstage.cli.commands.deploy import delete, deploy, logs, status


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="funcstage")
@click.pass_context
def main(ctx: click.Context) -> None:
    """funcstage - Deploy and tear down prefixed Cloud Functions groups.

    Every function declared in funcstage.yaml is deployed as
    '<prefix>-<name>', so several copies of a group (one per branch, pull
    request or developer) can live side by side in one project.
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


main.add_command(deploy)
main.add_command(delete)
main.add_command(status)
main.add_command(logs)
main.add_command(build)


if __name__ == "__main__":
    main()
