"""Applying suggestions to a prompt and shaping suggestion payloads."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from prompt_anchor.core.anchors import Anchor, AnchorResolver, MatchTier

logger = logging.getLogger(__name__)

#: Characters of prompt text sent on each side of a highlight
DEFAULT_SUGGESTION_CONTEXT_CHARS = 1000


class ApplyStatus(str, Enum):
    APPLIED = "applied"
    NO_OP = "no_op"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of :func:`apply_suggestion_to_prompt`.

    ``updated_prompt`` is None unless ``status`` is APPLIED. The original
    prompt is never modified.
    """

    status: ApplyStatus
    updated_prompt: Optional[str] = None
    replacement_target: Optional[str] = None
    match_start: Optional[int] = None
    match_end: Optional[int] = None
    idempotency_key: Optional[str] = None
    tier: Optional[MatchTier] = None

    @property
    def applied(self) -> bool:
        return self.status is ApplyStatus.APPLIED

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "status": self.status.value,
            "updated_prompt": self.updated_prompt,
        }
        if self.replacement_target is not None:
            result["replacement_target"] = self.replacement_target
        if self.match_start is not None:
            result["match_start"] = self.match_start
            result["match_end"] = self.match_end
        if self.tier is not None:
            result["tier"] = self.tier.value
        if self.idempotency_key is not None:
            result["idempotency_key"] = self.idempotency_key
        return result


def apply_suggestion_to_prompt(
    prompt: Optional[str],
    suggestion_text: str,
    anchor: Anchor,
    *,
    idempotency_key: Optional[str] = None,
    resolver: Optional[AnchorResolver] = None,
) -> ApplyResult:
    """Replace the text ``anchor`` points at with ``suggestion_text``.

    The anchor is relocated first, so stale offsets never decide where the
    replacement lands. If it cannot be relocated the prompt is left alone
    and the result is NOT_FOUND. If the located text already equals the
    suggestion the result is NO_OP.

    Args:
        prompt: Current prompt text.
        suggestion_text: Replacement text.
        anchor: Where the replacement goes.
        idempotency_key: Caller-supplied key echoed back on the result.
        resolver: Resolver to use (default: a fresh AnchorResolver).

    Raises:
        TypeError: If ``suggestion_text`` is not a string.
    """
    if not isinstance(suggestion_text, str):
        raise TypeError("suggestion_text must be a string")

    resolver = resolver or AnchorResolver()
    match = resolver.resolve(prompt, anchor)
    if prompt is None or match is None:
        logger.info("Suggestion not applied: anchor %r not found", anchor.quote[:40])
        return ApplyResult(status=ApplyStatus.NOT_FOUND, idempotency_key=idempotency_key)

    target = prompt[match.start:match.end]
    if target == suggestion_text:
        return ApplyResult(
            status=ApplyStatus.NO_OP,
            replacement_target=target,
            match_start=match.start,
            match_end=match.end,
            idempotency_key=idempotency_key,
            tier=match.tier,
        )

    updated = prompt[:match.start] + suggestion_text + prompt[match.end:]
    return ApplyResult(
        status=ApplyStatus.APPLIED,
        updated_prompt=updated,
        replacement_target=target,
        match_start=match.start,
        match_end=match.end,
        idempotency_key=idempotency_key,
        tier=match.tier,
    )


# ---------------------------------------------------------------------------
# Suggestion payloads
# ---------------------------------------------------------------------------


def _suggestion_text(item: Any) -> Optional[str]:
    if isinstance(item, str):
        text = item
    elif isinstance(item, Mapping) and isinstance(item.get("text"), str):
        text = item["text"]
    else:
        return None
    text = text.strip()
    return text or None


def merge_suggestions(existing: Iterable[Any], incoming: Iterable[Any]) -> List[str]:
    """Concatenate suggestion lists, dropping blanks and case-insensitive repeats.

    Order is preserved; the first spelling of a repeated suggestion wins.
    """
    seen = set()
    merged: List[str] = []
    for item in list(existing) + list(incoming):
        text = _suggestion_text(item)
        if text is None:
            continue
        folded = text.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        merged.append(text)
    return merged


def parse_suggestions(payload: Any) -> List[str]:
    """Extract suggestion strings from a ``{"suggestions": [...]}`` payload.

    Items may be strings or ``{"text": ...}`` objects. Anything else,
    including a malformed payload, yields no suggestions.
    """
    if not isinstance(payload, Mapping):
        return []
    items = payload.get("suggestions")
    if not isinstance(items, list):
        return []
    return merge_suggestions([], items)


@dataclass(frozen=True)
class SuggestionContext:
    """The highlighted phrase located in the prompt, with surrounding text.

    When the phrase cannot be located, ``found`` is False, offsets are None
    and both context strings are empty.
    """

    highlighted_text: str
    found: bool
    start: Optional[int] = None
    end: Optional[int] = None
    context_before: str = ""
    context_after: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "highlighted_text": self.highlighted_text,
            "found": self.found,
            "start": self.start,
            "end": self.end,
            "context_before": self.context_before,
            "context_after": self.context_after,
        }


def build_suggestion_context(
    prompt: str,
    highlighted_text: str,
    prefer_index: Optional[int] = None,
    window: int = DEFAULT_SUGGESTION_CONTEXT_CHARS,
    resolver: Optional[AnchorResolver] = None,
) -> SuggestionContext:
    """Locate ``highlighted_text`` in ``prompt`` and cut context windows around it."""
    resolver = resolver or AnchorResolver()
    match = resolver.resolve(
        prompt, Anchor(quote=highlighted_text, prefer_index=prefer_index)
    )
    if match is None:
        return SuggestionContext(highlighted_text=highlighted_text, found=False)
    return SuggestionContext(
        highlighted_text=highlighted_text,
        found=True,
        start=match.start,
        end=match.end,
        context_before=prompt[max(0, match.start - window):match.start],
        context_after=prompt[match.end:match.end + window],
    )


__all__ = [
    "DEFAULT_SUGGESTION_CONTEXT_CHARS",
    "ApplyStatus",
    "ApplyResult",
    "apply_suggestion_to_prompt",
    "merge_suggestions",
    "parse_suggestions",
    "SuggestionContext",
    "build_suggestion_context",
]
