"""Anchor resolution and suggestion commands for the prompt-anchor CLI."""

from typing import Optional

import click

from prompt_anchor.cli.inputs import load_json_file, read_text_file
from prompt_anchor.cli.logging import cli_command
from prompt_anchor.cli.output import emit_error, emit_success
from prompt_anchor.cli.registry import get_context
from prompt_anchor.core.anchors import Anchor, LockedSpan, relocate_locked_spans
from prompt_anchor.core.responses import ErrorCode, ErrorType
from prompt_anchor.core.suggestions import ApplyStatus, apply_suggestion_to_prompt


def _anchor_options(func):
    func = click.option(
        "--prefer-index",
        type=click.IntRange(min=0),
        default=None,
        help="Offset the quote was last seen at (a hint only)",
    )(func)
    func = click.option("--right", "right_ctx", default="", help="Text right after the quote")(func)
    func = click.option("--left", "left_ctx", default="", help="Text right before the quote")(func)
    func = click.option("--quote", required=True, help="Text the anchor points at")(func)
    return func


@click.group("anchors")
def anchors() -> None:
    """Anchor relocation and suggestion application."""
    pass


@anchors.command("resolve")
@click.argument("text_file", type=click.Path(exists=True, dir_okay=False))
@_anchor_options
@click.pass_context
@cli_command("resolve")
def resolve_cmd(
    ctx: click.Context,
    text_file: str,
    quote: str,
    left_ctx: str,
    right_ctx: str,
    prefer_index: Optional[int],
) -> None:
    """Locate an anchor in TEXT_FILE.

    An anchor that cannot be confidently relocated is reported with
    ``found: false``; it is not an error.
    """
    text = read_text_file(text_file)
    anchor = Anchor(quote=quote, left_ctx=left_ctx, right_ctx=right_ctx, prefer_index=prefer_index)
    match = get_context(ctx).resolver().resolve(text, anchor)

    emit_success(
        {
            "found": match is not None,
            "match": match.to_dict() if match is not None else None,
            "text": text[match.start:match.end] if match is not None else None,
            "anchor": anchor.to_dict(),
        }
    )


@anchors.command("apply")
@click.argument("text_file", type=click.Path(exists=True, dir_okay=False))
@_anchor_options
@click.option("--suggestion", required=True, help="Replacement text")
@click.option("--idempotency-key", default=None, help="Echoed back on the result")
@click.pass_context
@cli_command("apply")
def apply_cmd(
    ctx: click.Context,
    text_file: str,
    quote: str,
    left_ctx: str,
    right_ctx: str,
    prefer_index: Optional[int],
    suggestion: str,
    idempotency_key: Optional[str],
) -> None:
    """Replace the anchored text in TEXT_FILE with a suggestion.

    Prints the updated prompt; TEXT_FILE itself is never modified.
    """
    text = read_text_file(text_file)
    anchor = Anchor(quote=quote, left_ctx=left_ctx, right_ctx=right_ctx, prefer_index=prefer_index)
    result = apply_suggestion_to_prompt(
        text,
        suggestion,
        anchor,
        idempotency_key=idempotency_key,
        resolver=get_context(ctx).resolver(),
    )

    warnings = None
    if result.status is ApplyStatus.NOT_FOUND:
        warnings = ["Anchor not found; prompt left unchanged"]
    emit_success(result.to_dict(), warnings=warnings)


@anchors.command("relocate")
@click.argument("text_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("locked_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
@cli_command("relocate")
def relocate_cmd(ctx: click.Context, text_file: str, locked_file: str) -> None:
    """Relocate the locked spans in LOCKED_FILE within an edited TEXT_FILE.

    LOCKED_FILE holds a JSON list of ``{"id", "quote", "left_ctx",
    "right_ctx", "prefer_index"}`` objects.
    """
    cli_ctx = get_context(ctx)
    text = read_text_file(text_file)
    payload = load_json_file(locked_file)
    if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
        emit_error(
            "Locked spans file must contain a JSON list of objects",
            code=ErrorCode.INVALID_FORMAT.value,
            error_type=ErrorType.VALIDATION.value,
        )

    result = relocate_locked_spans(
        text,
        [LockedSpan.from_dict(item) for item in payload],
        resolver=cli_ctx.resolver(),
        context_chars=cli_ctx.config.normalizer.context_chars,
    )
    emit_success(
        {
            "resolved": [
                {**locked.to_dict(), "match": match.to_dict()}
                for locked, match in result.resolved
            ],
            "missing": result.missing,
        }
    )
