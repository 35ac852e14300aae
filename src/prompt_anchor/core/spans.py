"""
Span normalization: raw labeler output -> validated highlight records.

A labeling service returns offset-based spans (``{"role", "start", "end"}``)
computed against some version of the text. :class:`SpanNormalizer` turns
them into :class:`Highlight` records that are guaranteed to satisfy, for the
text they are normalized against:

* ``0 <= start < end <= len(text)`` and ``text[start:end] == quote``
* ``category`` is a member of the taxonomy
* the list is sorted by ``(start, end)`` and never holds two same-category
  highlights separated only by whitespace

A malformed span is dropped and logged; it never aborts the batch.

Offsets are indices into the Python ``str`` (code points). Producers that
count UTF-16 code units should convert with :func:`utf16_offset_to_index`.

Example:
    from prompt_anchor.core.spans import normalize

    highlights = normalize(
        [{"role": "Wardrobe", "start": 4, "end": 9}],
        "The quick brown fox",
    )
    highlights[0].category  # "subject.wardrobe"
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import regex

from prompt_anchor.core.taxonomy import DEFAULT_TAXONOMY, Taxonomy

logger = logging.getLogger(__name__)

#: Characters captured on each side of a highlight
DEFAULT_CONTEXT_CHARS = 20

#: Labeler request defaults: span budget and confidence floor
DEFAULT_MAX_SPANS = 60
DEFAULT_MIN_CONFIDENCE = 0.5

HIGHLIGHT_SOURCE = "llm"
HIGHLIGHT_VERSION = "llm-v1"

#: Maps a string index to a grapheme index
GraphemeMapper = Callable[[int], int]

GRAPHEME_CLUSTER = regex.compile(r"\X")

# Drop reasons
DROP_NOT_A_SPAN = "not_a_span"
DROP_NON_FINITE = "non_finite_offset"
DROP_INVALID_RANGE = "invalid_range"
DROP_COLLAPSED = "collapsed_after_clamp"
DROP_EMPTY_QUOTE = "empty_quote"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class RawSpan:
    """A span as produced by a labeler, before any validation.

    Offsets are left untyped: labelers emit ints, floats, numeric strings
    and occasionally garbage.
    """

    role: Any
    start: Any
    end: Any
    confidence: Any = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RawSpan":
        role = data.get("role")
        if role is None:
            role = data.get("category")
        return cls(
            role=role,
            start=data.get("start"),
            end=data.get("end"),
            confidence=data.get("confidence"),
            id=data.get("id"),
        )


@dataclass(frozen=True)
class Highlight:
    """A validated, taxonomy-categorized span over one text buffer.

    ``start_grapheme`` / ``end_grapheme`` are set only when a grapheme
    mapper was supplied, and ``confidence`` only when the labeler sent one.
    Unset optional fields are omitted from :meth:`to_dict`.
    """

    id: str
    category: str
    role: str
    start: int
    end: int
    quote: str
    left_ctx: str
    right_ctx: str
    confidence: Optional[float] = None
    source: str = HIGHLIGHT_SOURCE
    version: str = HIGHLIGHT_VERSION
    start_grapheme: Optional[int] = None
    end_grapheme: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "category": self.category,
            "role": self.role,
            "start": self.start,
            "end": self.end,
            "quote": self.quote,
            "left_ctx": self.left_ctx,
            "right_ctx": self.right_ctx,
            "source": self.source,
            "version": self.version,
        }
        if self.confidence is not None:
            result["confidence"] = self.confidence
        if self.start_grapheme is not None:
            result["start_grapheme"] = self.start_grapheme
        if self.end_grapheme is not None:
            result["end_grapheme"] = self.end_grapheme
        return result


@dataclass
class DroppedSpan:
    """A span rejected during validation."""

    index: int
    reason: str


@dataclass
class NormalizationResult:
    """Highlights plus what was dropped or defaulted along the way.

    Attributes:
        highlights: Final ordered highlight list
        dropped: Spans rejected during validation, by input index
        fallback_roles: Input indices whose role fell back to the default category
        overlaps_resolved: Highlights discarded or merged by overlap resolution
        merges: Whitespace-separated same-category pairs that were merged
    """

    highlights: List[Highlight] = field(default_factory=list)
    dropped: List[DroppedSpan] = field(default_factory=list)
    fallback_roles: List[int] = field(default_factory=list)
    overlaps_resolved: int = 0
    merges: int = 0


# ---------------------------------------------------------------------------
# Offset helpers
# ---------------------------------------------------------------------------


def _coerce_offset(value: Any) -> Optional[float]:
    """Number-like value -> finite float, or None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _coerce_confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def context_window(text: str, start: int, end: int, size: int) -> Tuple[str, str]:
    """Left/right context around ``[start, end)``, shrinking at the edges."""
    return text[max(0, start - size):start], text[end:end + size]


def utf16_offset_to_index(text: str, offset: int) -> int:
    """Convert a UTF-16 code-unit offset into a ``str`` index.

    Offsets pointing inside a surrogate pair round up to the next index.
    """
    if offset <= 0:
        return 0
    units = 0
    for index, char in enumerate(text):
        if units >= offset:
            return index
        units += 2 if ord(char) > 0xFFFF else 1
    return len(text)


def build_grapheme_mapper(text: str) -> GraphemeMapper:
    """Build a mapper from string indices to grapheme indices for ``text``.

    Clusters are Unicode extended grapheme clusters, as matched by ``\\X``.
    An index that falls inside a cluster maps to the end of that cluster.
    """
    # clusters_before[i] == number of clusters starting before index i
    clusters_before = [0] * (len(text) + 1)
    for count, match in enumerate(GRAPHEME_CLUSTER.finditer(text), start=1):
        for index in range(match.start(), match.end()):
            clusters_before[index + 1] = count

    def mapper(index: int) -> int:
        return clusters_before[min(max(index, 0), len(text))]

    return mapper


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------


class SpanNormalizer:
    """Validates, categorizes, orders and merges labeled spans.

    Args:
        taxonomy: Default taxonomy when :meth:`normalize` is not given one.
        context_chars: Width of the left/right context windows.
        allow_overlap: Keep overlapping spans of different categories. When
            False (the default) the higher-confidence span wins, then the
            longer one, then the earlier one.
    """

    def __init__(
        self,
        taxonomy: Taxonomy = DEFAULT_TAXONOMY,
        context_chars: int = DEFAULT_CONTEXT_CHARS,
        allow_overlap: bool = False,
    ):
        if context_chars < 0:
            raise ValueError("context_chars must be >= 0")
        self.taxonomy = taxonomy
        self.context_chars = context_chars
        self.allow_overlap = allow_overlap

    def normalize(
        self,
        raw_spans: Optional[Iterable[Any]],
        text: Optional[str],
        taxonomy: Optional[Taxonomy] = None,
        grapheme_mapper: Optional[GraphemeMapper] = None,
    ) -> List[Highlight]:
        """Return the ordered highlight list for ``text``."""
        return self.normalize_report(
            raw_spans, text, taxonomy, grapheme_mapper
        ).highlights

    def normalize_report(
        self,
        raw_spans: Optional[Iterable[Any]],
        text: Optional[str],
        taxonomy: Optional[Taxonomy] = None,
        grapheme_mapper: Optional[GraphemeMapper] = None,
    ) -> NormalizationResult:
        """Normalize and report what was dropped, defaulted and merged."""
        result = NormalizationResult()
        if not raw_spans or not isinstance(text, str) or not text:
            return result
        if isinstance(raw_spans, (str, bytes, Mapping)):
            logger.debug("Spans payload is not a list, ignoring")
            return result

        active_taxonomy = taxonomy or self.taxonomy
        candidates: List[Highlight] = []
        for index, raw in enumerate(raw_spans):
            highlight = self._normalize_one(
                raw, index, text, active_taxonomy, grapheme_mapper, result
            )
            if highlight is not None:
                candidates.append(highlight)

        total = len(candidates) + len(result.dropped)
        candidates.sort(key=lambda h: (h.start, h.end))

        if not self.allow_overlap:
            candidates = self._resolve_overlaps(candidates, text, result)

        result.highlights = self._merge_adjacent(candidates, text, result)

        if result.dropped:
            logger.debug(
                "Dropped %d of %d spans during normalization",
                len(result.dropped),
                total,
            )
        return result

    # ------------------------------------------------------------------
    # Per-span validation
    # ------------------------------------------------------------------

    def _normalize_one(
        self,
        raw: Any,
        index: int,
        text: str,
        taxonomy: Taxonomy,
        grapheme_mapper: Optional[GraphemeMapper],
        result: NormalizationResult,
    ) -> Optional[Highlight]:
        source = HIGHLIGHT_SOURCE
        version = HIGHLIGHT_VERSION
        if isinstance(raw, Highlight):
            lookup_role: Any = raw.category
            role: Any = raw.role
            source, version = raw.source, raw.version
            span = RawSpan(raw.role, raw.start, raw.end, raw.confidence, raw.id)
        elif isinstance(raw, RawSpan):
            span = raw
            lookup_role = role = raw.role
        elif isinstance(raw, Mapping):
            span = RawSpan.from_dict(raw)
            lookup_role = role = span.role
        else:
            return self._drop(result, index, DROP_NOT_A_SPAN)

        category = taxonomy.lookup(lookup_role)
        if category is None:
            category = taxonomy.default_category
            result.fallback_roles.append(index)
            logger.warning(
                "Span %d has unknown role %r, using %r",
                index,
                lookup_role,
                category,
            )

        start_value = _coerce_offset(span.start)
        end_value = _coerce_offset(span.end)
        if start_value is None or end_value is None:
            return self._drop(result, index, DROP_NON_FINITE)
        if end_value <= start_value:
            return self._drop(result, index, DROP_INVALID_RANGE)

        length = len(text)
        start = int(min(max(start_value, 0.0), float(length)))
        end = int(min(max(end_value, 0.0), float(length)))
        if end <= start:
            return self._drop(result, index, DROP_COLLAPSED)

        quote = text[start:end]
        if not quote:
            return self._drop(result, index, DROP_EMPTY_QUOTE)

        left_ctx, right_ctx = context_window(text, start, end, self.context_chars)

        start_grapheme = end_grapheme = None
        if grapheme_mapper is not None:
            start_grapheme = grapheme_mapper(start)
            end_grapheme = grapheme_mapper(end)

        span_id = span.id if isinstance(span.id, str) and span.id else None
        if span_id is None:
            span_id = f"llm_{category}_{index}_{start}_{end}"

        return Highlight(
            id=span_id,
            category=category,
            role=role if isinstance(role, str) and role else category,
            start=start,
            end=end,
            quote=quote,
            left_ctx=left_ctx,
            right_ctx=right_ctx,
            confidence=_coerce_confidence(span.confidence),
            source=source,
            version=version,
            start_grapheme=start_grapheme,
            end_grapheme=end_grapheme,
        )

    @staticmethod
    def _drop(result: NormalizationResult, index: int, reason: str) -> None:
        logger.debug("Dropping span %d: %s", index, reason, extra={"reason": reason})
        result.dropped.append(DroppedSpan(index=index, reason=reason))
        return None

    # ------------------------------------------------------------------
    # Batch passes
    # ------------------------------------------------------------------

    def _join(self, first: Highlight, second: Highlight, text: str) -> Highlight:
        """Extend ``first`` to cover ``second``; ``first`` keeps id and start."""
        tail = second if second.end >= first.end else first
        end = tail.end
        _, right_ctx = context_window(text, first.start, end, self.context_chars)

        confidences = [c for c in (first.confidence, second.confidence) if c is not None]

        return replace(
            first,
            end=end,
            quote=text[first.start:end],
            right_ctx=right_ctx,
            confidence=min(confidences) if confidences else None,
            end_grapheme=tail.end_grapheme,
        )

    @staticmethod
    def _outranks(challenger: Highlight, incumbent: Highlight) -> bool:
        challenger_conf = challenger.confidence if challenger.confidence is not None else -1.0
        incumbent_conf = incumbent.confidence if incumbent.confidence is not None else -1.0
        if challenger_conf != incumbent_conf:
            return challenger_conf > incumbent_conf
        return (challenger.end - challenger.start) > (incumbent.end - incumbent.start)

    def _resolve_overlaps(
        self, highlights: List[Highlight], text: str, result: NormalizationResult
    ) -> List[Highlight]:
        kept: List[Highlight] = []
        for highlight in highlights:
            if kept and highlight.start < kept[-1].end:
                previous = kept[-1]
                result.overlaps_resolved += 1
                if previous.category == highlight.category:
                    kept[-1] = self._join(previous, highlight, text)
                elif self._outranks(highlight, previous):
                    logger.debug("Overlap: %s replaces %s", highlight.id, previous.id)
                    kept[-1] = highlight
                else:
                    logger.debug("Overlap: %s dropped for %s", highlight.id, previous.id)
                continue
            kept.append(highlight)
        return kept

    def _merge_adjacent(
        self, highlights: List[Highlight], text: str, result: NormalizationResult
    ) -> List[Highlight]:
        merged: List[Highlight] = []
        for highlight in highlights:
            if merged:
                previous = merged[-1]
                gap = text[previous.end:highlight.start]
                if previous.category == highlight.category and not gap.strip():
                    merged[-1] = self._join(previous, highlight, text)
                    result.merges += 1
                    continue
            merged.append(highlight)
        return merged


def normalize(
    raw_spans: Optional[Iterable[Any]],
    text: Optional[str],
    taxonomy: Taxonomy = DEFAULT_TAXONOMY,
    grapheme_mapper: Optional[GraphemeMapper] = None,
    *,
    context_chars: int = DEFAULT_CONTEXT_CHARS,
    allow_overlap: bool = False,
) -> List[Highlight]:
    """Normalize ``raw_spans`` against ``text`` with a one-off normalizer."""
    normalizer = SpanNormalizer(
        taxonomy=taxonomy, context_chars=context_chars, allow_overlap=allow_overlap
    )
    return normalizer.normalize(raw_spans, text, grapheme_mapper=grapheme_mapper)


__all__ = [
    "DEFAULT_CONTEXT_CHARS",
    "DEFAULT_MAX_SPANS",
    "DEFAULT_MIN_CONFIDENCE",
    "HIGHLIGHT_SOURCE",
    "HIGHLIGHT_VERSION",
    "GraphemeMapper",
    "RawSpan",
    "Highlight",
    "DroppedSpan",
    "NormalizationResult",
    "SpanNormalizer",
    "normalize",
    "context_window",
    "utf16_offset_to_index",
    "build_grapheme_mapper",
]
