"""CLI entry point for gator."""

import os
import sys

import click

from ..commands import CommandContext, build_router
from ..config import Config
from ..database import FeedRepository, create_database_engine
from ..errors import GatorError
from ..logging import setup_logging, get_logger

logger = get_logger(__name__)


@click.command(context_settings={'ignore_unknown_options': True, 'help_option_names': ['-h', '--help']})
@click.argument('command')
@click.argument('args', nargs=-1, type=click.UNPROCESSED)
@click.option('--config', 'config_path', envvar='GATOR_CONFIG', type=click.Path(dir_okay=False),
              help='Path to the JSON config file (default ~/.gatorconfig.json).')
def cli(command, args, config_path):
    """gator - follow RSS/Atom feeds and aggregate their posts.

    Run "gator help" for the list of commands.
    """
    level = os.getenv('LOG_LEVEL') or ('INFO' if command == 'agg' else 'WARNING')
    setup_logging(level=level)

    try:
        config = Config.read(config_path)
        repo = FeedRepository(create_database_engine(config.db_url))

        context = CommandContext(config=config, repo=repo, command=command, args=list(args))
        response = build_router().route(context)
    except GatorError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if response:
        click.echo(response)


if __name__ == "__main__":
    cli()
