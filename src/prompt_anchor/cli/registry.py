"""Command registry for the prompt-anchor CLI.

Centralized registration of all command groups.
"""

from typing import Optional

import click

from prompt_anchor.cli.config import CLIContext

# Module-level storage for CLI context (for testing)
_cli_context: Optional[CLIContext] = None


def set_context(ctx: Optional[CLIContext]) -> None:
    """Set the CLI context at module level.

    Primarily used for testing when not using Click's context.
    """
    global _cli_context
    _cli_context = ctx


def get_context(ctx: Optional[click.Context] = None) -> CLIContext:
    """Get CLI context from Click context or module-level storage.

    Args:
        ctx: Optional Click context with cli_context stored in obj.
             If None, returns module-level context.

    Raises:
        RuntimeError: If no context is available.
    """
    if ctx is not None and ctx.obj and "cli_context" in ctx.obj:
        return ctx.obj["cli_context"]

    if _cli_context is not None:
        return _cli_context

    raise RuntimeError("No CLI context available. Call set_context() first.")


def register_all_commands(cli: click.Group) -> None:
    """Register all command groups with the CLI.

    Command groups are lazily imported to avoid circular dependencies.
    """
    from prompt_anchor.cli.commands import anchors, cache, spans, taxonomy

    cli.add_command(spans)
    cli.add_command(anchors)
    cli.add_command(cache)
    cli.add_command(taxonomy)

    @cli.command("version")
    def version() -> None:
        """Show CLI version information."""
        from prompt_anchor import __version__
        from prompt_anchor.cli.output import emit_success
        from prompt_anchor.core.responses import RESPONSE_VERSION

        emit_success(
            {
                "version": __version__,
                "name": "prompt-anchor",
                "response_version": RESPONSE_VERSION,
            }
        )
