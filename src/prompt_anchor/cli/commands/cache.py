"""Result cache commands for the prompt-anchor CLI.

The cache itself lives in memory for the life of one process, so these
commands expose its key derivation and settings rather than its entries.
"""

import click

from prompt_anchor.cli.inputs import read_text_file
from prompt_anchor.cli.logging import cli_command
from prompt_anchor.cli.output import emit_success
from prompt_anchor.cli.registry import get_context
from prompt_anchor.core.cache import generate_key, hash_document


@click.group("cache")
def cache() -> None:
    """Result cache key derivation and settings."""
    pass


@cache.command("key")
@click.argument("text_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--quote", required=True, help="Highlighted text")
@click.option("--left", "left_ctx", default="", help="Text before the quote")
@click.option("--right", "right_ctx", default="", help="Text after the quote")
@cli_command("key")
def cache_key_cmd(text_file: str, quote: str, left_ctx: str, right_ctx: str) -> None:
    """Print the cache key for a quote within TEXT_FILE."""
    text = read_text_file(text_file)
    document_hash = hash_document(text)
    emit_success(
        {
            "key": generate_key(quote, left_ctx, right_ctx, document_hash),
            "document_hash": document_hash,
        }
    )


@cache.command("info")
@click.pass_context
@cli_command("info")
def cache_info_cmd(ctx: click.Context) -> None:
    """Show the configured cache settings."""
    result_cache = get_context(ctx).cache()
    emit_success(result_cache.get_stats())
