"""Main CLI entry point for notify-service management commands."""

import click

from notify_service.cli.commands import jobs
from notify_service.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="1.0.0", prog_name="notify")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Notification engine CLI.

    \b
    Command Groups:
      jobs       Run or list the periodic notification sweeps
    """
    ctx.ensure_object(dict)


cli.add_command(jobs.jobs)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
