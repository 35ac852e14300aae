"""Span normalization commands for the prompt-anchor CLI."""

from typing import Any, List

import click

from prompt_anchor.cli.inputs import load_json_file, read_text_file
from prompt_anchor.cli.logging import cli_command
from prompt_anchor.cli.output import emit_error, emit_success
from prompt_anchor.cli.registry import get_context
from prompt_anchor.core.responses import ErrorCode, ErrorType
from prompt_anchor.core.spans import build_grapheme_mapper, utf16_offset_to_index


@click.group("spans")
def spans() -> None:
    """Labeled span normalization."""
    pass


def _spans_payload(payload: Any) -> List[Any]:
    if isinstance(payload, dict):
        payload = payload.get("spans")
    if not isinstance(payload, list):
        emit_error(
            "Spans file must contain a JSON list or an object with a 'spans' list",
            code=ErrorCode.INVALID_FORMAT.value,
            error_type=ErrorType.VALIDATION.value,
            remediation='Provide [{"role": ..., "start": ..., "end": ...}, ...]',
        )
    return payload


def _from_utf16(spans_list: List[Any], text: str) -> List[Any]:
    converted = []
    for raw in spans_list:
        if isinstance(raw, dict):
            raw = dict(raw)
            for key in ("start", "end"):
                value = raw.get(key)
                if isinstance(value, int) and not isinstance(value, bool):
                    raw[key] = utf16_offset_to_index(text, value)
        converted.append(raw)
    return converted


@spans.command("normalize")
@click.argument("text_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("spans_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--allow-overlap/--resolve-overlap",
    default=None,
    help="Keep overlapping spans of different categories (default: from config)",
)
@click.option("--graphemes", is_flag=True, help="Include grapheme cluster offsets")
@click.option(
    "--utf16-offsets",
    is_flag=True,
    help="Span offsets count UTF-16 code units (as produced by JavaScript)",
)
@click.pass_context
@cli_command("normalize")
def normalize_cmd(
    ctx: click.Context,
    text_file: str,
    spans_file: str,
    allow_overlap: bool,
    graphemes: bool,
    utf16_offsets: bool,
) -> None:
    """Normalize labeled spans in SPANS_FILE against TEXT_FILE.

    Prints the ordered highlight list plus the spans that were dropped.
    """
    cli_ctx = get_context(ctx)
    text = read_text_file(text_file)
    raw_spans = _spans_payload(load_json_file(spans_file))
    if utf16_offsets:
        raw_spans = _from_utf16(raw_spans, text)

    try:
        normalizer = cli_ctx.normalizer(allow_overlap=allow_overlap)
    except (OSError, ValueError) as e:
        emit_error(
            f"Could not load taxonomy: {e}",
            code=ErrorCode.INVALID_FORMAT.value,
            error_type=ErrorType.VALIDATION.value,
        )

    mapper = build_grapheme_mapper(text) if graphemes else None
    report = normalizer.normalize_report(raw_spans, text, grapheme_mapper=mapper)

    emit_success(
        {
            "highlights": [h.to_dict() for h in report.highlights],
            "count": len(report.highlights),
            "dropped": [{"index": d.index, "reason": d.reason} for d in report.dropped],
            "fallback_roles": report.fallback_roles,
            "overlaps_resolved": report.overlaps_resolved,
            "merges": report.merges,
            "taxonomy_version": normalizer.taxonomy.version,
        }
    )
