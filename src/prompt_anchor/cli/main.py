"""prompt-anchor CLI entry point.

JSON-only output.
"""

import logging
from typing import Optional

import click

from prompt_anchor.cli.config import create_context
from prompt_anchor.cli.registry import register_all_commands
from prompt_anchor.core.logging_config import configure_logging


@click.group()
@click.option(
    "--config",
    "config_file",
    envvar="PROMPT_ANCHOR_CONFIG_FILE",
    type=click.Path(exists=False, dir_okay=False),
    help="TOML config file",
)
@click.option(
    "--taxonomy-file",
    type=click.Path(exists=False, dir_okay=False),
    help="JSON taxonomy to use instead of the built-in one",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
@click.option(
    "--log-format",
    type=click.Choice(["structured", "human"]),
    default=None,
    help="Log line format (default: from config)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Optional[str],
    taxonomy_file: Optional[str],
    verbose: bool,
    log_format: Optional[str],
) -> None:
    """prompt-anchor - span normalization and anchor relocation.

    All commands output JSON for reliable parsing.
    """
    ctx.ensure_object(dict)
    cli_context = create_context(config_file=config_file, taxonomy_file=taxonomy_file)
    ctx.obj["cli_context"] = cli_context

    config = cli_context.config
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.WARNING)
    configure_logging(level=level, format=log_format or config.log_format)


# Register all command groups
register_all_commands(cli)


if __name__ == "__main__":
    cli()
