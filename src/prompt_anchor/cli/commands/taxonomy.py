"""Taxonomy lookup commands for the prompt-anchor CLI."""

import click

from prompt_anchor.cli.logging import cli_command
from prompt_anchor.cli.output import emit_error, emit_success
from prompt_anchor.cli.registry import get_context
from prompt_anchor.core.responses import ErrorCode, ErrorType
from prompt_anchor.core.taxonomy import Taxonomy, parent_category


@click.group("taxonomy")
def taxonomy() -> None:
    """Category taxonomy lookups."""
    pass


def _load(ctx: click.Context) -> Taxonomy:
    try:
        return get_context(ctx).taxonomy
    except (OSError, ValueError) as e:
        emit_error(
            f"Could not load taxonomy: {e}",
            code=ErrorCode.INVALID_FORMAT.value,
            error_type=ErrorType.VALIDATION.value,
        )


@taxonomy.command("resolve")
@click.argument("role")
@click.pass_context
@cli_command("resolve")
def resolve_cmd(ctx: click.Context, role: str) -> None:
    """Map ROLE (a category id or legacy name) to a category."""
    active = _load(ctx)
    category = active.lookup(role)
    fallback = category is None
    if fallback:
        category = active.default_category
    emit_success(
        {
            "role": role,
            "category": category,
            "parent": parent_category(category),
            "fallback": fallback,
        },
        warnings=[f"Unknown role {role!r}; using default category"] if fallback else None,
    )


@taxonomy.command("list")
@click.pass_context
@cli_command("list")
def list_cmd(ctx: click.Context) -> None:
    """List the valid category identifiers."""
    active = _load(ctx)
    emit_success(
        {
            "version": active.version,
            "default_category": active.default_category,
            "categories": sorted(active.valid_categories),
            "aliases": dict(sorted(active.aliases.items())),
        }
    )
