"""
Anchor relocation over a mutable text buffer.

An :class:`Anchor` describes a location by content (a quote and the text
around it) rather than by offsets, because the buffer may have changed since
the anchor was captured. :class:`AnchorResolver` finds the anchor again using
tiers of decreasing confidence and stops at the first tier producing an
unambiguous answer:

1. HINT: the quote sits verbatim at ``prefer_index``.
2. EXACT: the trimmed quote occurs exactly once.
3. CONTEXT: several occurrences; the one whose surroundings best match the
   recorded context wins. Ties go to the occurrence nearest
   ``prefer_index``, then the leftmost.
4. FUZZY: no verbatim occurrence; token windows near surviving context are
   scored by similarity and the best is accepted above a threshold.

When every tier fails the resolver returns None. Callers must treat that as
"do nothing", never as "replace everything" or "insert at 0".
"""

import logging
import re
from dataclasses import dataclass, field, replace
from difflib import SequenceMatcher
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from prompt_anchor.core.spans import DEFAULT_CONTEXT_CHARS, Highlight, context_window

logger = logging.getLogger(__name__)

#: Minimum similarity for a fuzzy window to be accepted
DEFAULT_MIN_SIMILARITY = 0.8

#: Shortest context needle used to seed the fuzzy search
MIN_CONTEXT_NEEDLE = 4

_TOKEN_RE = re.compile(r"\w+")


class MatchTier(str, Enum):
    """Which resolution tier produced a match."""

    HINT = "hint"
    EXACT = "exact"
    CONTEXT = "context"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class Anchor:
    """A quote plus the context that surrounded it when captured.

    Attributes:
        quote: Text the anchor points at
        left_ctx: Text immediately before the quote
        right_ctx: Text immediately after the quote
        prefer_index: Offset the quote started at when captured; only a hint
    """

    quote: str
    left_ctx: str = ""
    right_ctx: str = ""
    prefer_index: Optional[int] = None

    @classmethod
    def capture(
        cls,
        text: str,
        start: int,
        end: int,
        context_chars: int = DEFAULT_CONTEXT_CHARS,
    ) -> "Anchor":
        """Capture an anchor for ``text[start:end]``."""
        if not 0 <= start < end <= len(text):
            raise ValueError(f"Invalid selection [{start}, {end}) for text of length {len(text)}")
        left_ctx, right_ctx = context_window(text, start, end, context_chars)
        return cls(
            quote=text[start:end],
            left_ctx=left_ctx,
            right_ctx=right_ctx,
            prefer_index=start,
        )

    @classmethod
    def from_highlight(cls, highlight: Highlight) -> "Anchor":
        return cls(
            quote=highlight.quote,
            left_ctx=highlight.left_ctx,
            right_ctx=highlight.right_ctx,
            prefer_index=highlight.start,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Anchor":
        prefer_index = data.get("prefer_index")
        return cls(
            quote=str(data.get("quote") or ""),
            left_ctx=str(data.get("left_ctx") or ""),
            right_ctx=str(data.get("right_ctx") or ""),
            prefer_index=prefer_index if isinstance(prefer_index, int) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "quote": self.quote,
            "left_ctx": self.left_ctx,
            "right_ctx": self.right_ctx,
        }
        if self.prefer_index is not None:
            result["prefer_index"] = self.prefer_index
        return result


@dataclass(frozen=True)
class LockedSpan:
    """A phrase the user has locked against automated rewriting.

    Survives edits by being relocated through its anchor.
    """

    id: str
    anchor: Anchor
    category: Optional[str] = None
    source: Optional[str] = None
    confidence: Optional[float] = None

    @classmethod
    def from_highlight(cls, highlight: Highlight) -> "LockedSpan":
        return cls(
            id=highlight.id,
            anchor=Anchor.from_highlight(highlight),
            category=highlight.category,
            source=highlight.source,
            confidence=highlight.confidence,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LockedSpan":
        """Inverse of :meth:`to_dict`; anchor fields sit beside ``id``."""
        confidence = data.get("confidence")
        return cls(
            id=str(data.get("id") or ""),
            anchor=Anchor.from_dict(data),
            category=data.get("category"),
            source=data.get("source"),
            confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id, **self.anchor.to_dict()}
        if self.category is not None:
            result["category"] = self.category
        if self.source is not None:
            result["source"] = self.source
        if self.confidence is not None:
            result["confidence"] = self.confidence
        return result


@dataclass(frozen=True)
class AnchorMatch:
    """Where an anchor was found.

    ``score`` is 1.0 for the HINT and EXACT tiers, the combined context
    overlap (in characters) for CONTEXT and the similarity ratio for FUZZY.
    """

    start: int
    end: int
    tier: MatchTier
    score: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "tier": self.tier.value,
            "score": round(self.score, 4),
        }


@dataclass
class RelocationResult:
    """Outcome of relocating a batch of locked spans.

    Attributes:
        resolved: Locked spans re-captured at their new location, with the match
        missing: Ids of locked spans that could not be relocated
    """

    resolved: List[Tuple[LockedSpan, AnchorMatch]] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------


def common_suffix_length(a: str, b: str) -> int:
    count = 0
    for x, y in zip(reversed(a), reversed(b)):
        if x != y:
            break
        count += 1
    return count


def common_prefix_length(a: str, b: str) -> int:
    count = 0
    for x, y in zip(a, b):
        if x != y:
            break
        count += 1
    return count


def find_all(text: str, needle: str) -> List[int]:
    """Every start offset of ``needle`` in ``text``, overlapping included."""
    positions: List[int] = []
    if not needle:
        return positions
    index = text.find(needle)
    while index != -1:
        positions.append(index)
        index = text.find(needle, index + 1)
    return positions


def _tokenize(text: str) -> List[Tuple[str, int, int]]:
    return [(m.group(0).casefold(), m.start(), m.end()) for m in _TOKEN_RE.finditer(text)]


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class AnchorResolver:
    """Relocates anchors in a possibly mutated buffer.

    Args:
        min_similarity: Fuzzy acceptance threshold in ``[0, 1]``.
        window_slack: Fuzzy windows span ``n - slack .. n + slack`` tokens
            for a quote of ``n`` tokens.
    """

    def __init__(
        self,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        window_slack: int = 1,
    ):
        if not 0.0 < min_similarity <= 1.0:
            raise ValueError("min_similarity must be in (0, 1]")
        if window_slack < 0:
            raise ValueError("window_slack must be >= 0")
        self.min_similarity = min_similarity
        self.window_slack = window_slack

    def resolve(self, text: Optional[str], anchor: Anchor) -> Optional[AnchorMatch]:
        """Locate ``anchor`` in ``text``, or return None when not confident."""
        if not text or not anchor.quote:
            return None
        trimmed = anchor.quote.strip()
        if not trimmed:
            return None

        lead = len(anchor.quote) - len(anchor.quote.lstrip())
        trail = len(anchor.quote) - len(anchor.quote.rstrip())

        match = self._match_hint(text, anchor, trimmed, lead)
        if match is None:
            match = self._match_verbatim(text, anchor, trimmed, lead, trail)
        if match is None:
            match = self._match_fuzzy(text, anchor, trimmed)

        if match is None:
            logger.debug("Anchor not found: %r", trimmed[:40])
        else:
            logger.debug(
                "Anchor %r resolved via %s at [%d, %d)",
                trimmed[:40],
                match.tier.value,
                match.start,
                match.end,
            )
        return match

    # Tier 1 -------------------------------------------------------------

    def _match_hint(
        self, text: str, anchor: Anchor, trimmed: str, lead: int
    ) -> Optional[AnchorMatch]:
        hint = anchor.prefer_index
        if hint is None or isinstance(hint, bool) or not 0 <= hint < len(text):
            return None
        if text.startswith(anchor.quote, hint):
            return AnchorMatch(hint, hint + len(anchor.quote), MatchTier.HINT)
        # Hint recorded against the untrimmed selection, or against the trimmed one
        for offset in (hint + lead, hint):
            if text.startswith(trimmed, offset):
                return AnchorMatch(offset, offset + len(trimmed), MatchTier.HINT)
        return None

    # Tiers 2 and 3 ------------------------------------------------------

    def _match_verbatim(
        self, text: str, anchor: Anchor, trimmed: str, lead: int, trail: int
    ) -> Optional[AnchorMatch]:
        positions = find_all(text, trimmed)
        if not positions:
            return None
        if len(positions) == 1:
            start = positions[0]
            return AnchorMatch(start, start + len(trimmed), MatchTier.EXACT)

        # Whitespace trimmed off the quote belongs to its recorded context
        left_ref = anchor.left_ctx + anchor.quote[:lead]
        right_ref = anchor.quote[len(anchor.quote) - trail:] + anchor.right_ctx

        best_key: Optional[Tuple[int, int, int]] = None
        best_start = positions[0]
        for start in positions:
            end = start + len(trimmed)
            score = 0
            if left_ref:
                score += common_suffix_length(
                    left_ref, text[max(0, start - len(left_ref)):start]
                )
            if right_ref:
                score += common_prefix_length(right_ref, text[end:end + len(right_ref)])
            key = (-score, self._distance(start, anchor.prefer_index), start)
            if best_key is None or key < best_key:
                best_key, best_start = key, start

        score = float(-best_key[0]) if best_key is not None else 0.0
        return AnchorMatch(
            best_start, best_start + len(trimmed), MatchTier.CONTEXT, score
        )

    # Tier 4 -------------------------------------------------------------

    def _match_fuzzy(
        self, text: str, anchor: Anchor, trimmed: str
    ) -> Optional[AnchorMatch]:
        quote_tokens = [token for token, _, _ in _tokenize(trimmed)]
        if not quote_tokens:
            return None
        tokens = _tokenize(text)
        if not tokens:
            return None

        target = " ".join(quote_tokens)
        n = len(quote_tokens)
        sizes = [
            size
            for size in range(n - self.window_slack, n + self.window_slack + 1)
            if 1 <= size <= len(tokens)
        ]

        candidate_starts = self._seeded_token_starts(text, tokens, anchor, len(trimmed))
        if candidate_starts is None:
            candidate_starts = set(range(len(tokens)))

        matcher = SequenceMatcher(autojunk=False)
        matcher.set_seq2(target)

        best: Optional[Tuple[Tuple[float, int, int], int, int, float]] = None
        for first in sorted(candidate_starts):
            for size in sizes:
                last = first + size - 1
                if last >= len(tokens):
                    break
                window = " ".join(token for token, _, _ in tokens[first:last + 1])
                matcher.set_seq1(window)
                if matcher.real_quick_ratio() < self.min_similarity:
                    continue
                if matcher.quick_ratio() < self.min_similarity:
                    continue
                ratio = matcher.ratio()
                if ratio < self.min_similarity:
                    continue
                start, end = tokens[first][1], tokens[last][2]
                key = (-ratio, self._distance(start, anchor.prefer_index), start)
                if best is None or key < best[0]:
                    best = (key, start, end, ratio)

        if best is None:
            return None
        _, start, end, ratio = best
        return AnchorMatch(start, end, MatchTier.FUZZY, ratio)

    def _seeded_token_starts(
        self,
        text: str,
        tokens: List[Tuple[str, int, int]],
        anchor: Anchor,
        quote_length: int,
    ) -> Optional[Set[int]]:
        """Token indices near surviving context, or None if no context survives."""
        seeds: List[int] = []
        for needle in self._context_needles(anchor.left_ctx, from_end=True):
            seeds.extend(pos + len(needle) for pos in find_all(text, needle))
            if seeds:
                break
        right_seeds: List[int] = []
        for needle in self._context_needles(anchor.right_ctx, from_end=False):
            right_seeds.extend(find_all(text, needle))
            if right_seeds:
                break

        if not seeds and not right_seeds:
            return None

        # A seed marks where the quote should begin (left) or end (right)
        radius = max(quote_length, 1) + 2
        starts: Set[int] = set()
        for index, (_, token_start, token_end) in enumerate(tokens):
            for seed in seeds:
                if seed - 2 <= token_start <= seed + radius:
                    starts.add(index)
            for seed in right_seeds:
                if seed - quote_length - radius <= token_start <= seed:
                    starts.add(index)
        return starts or None

    @staticmethod
    def _context_needles(context: str, from_end: bool) -> Iterable[str]:
        """Progressively shorter slices of a context string to search for."""
        stripped = context.strip()
        if len(stripped) < MIN_CONTEXT_NEEDLE:
            return []
        needles = [stripped]
        size = len(stripped) // 2
        while size >= MIN_CONTEXT_NEEDLE:
            needles.append(stripped[-size:] if from_end else stripped[:size])
            size //= 2
        return needles

    @staticmethod
    def _distance(start: int, prefer_index: Optional[int]) -> int:
        if prefer_index is None or isinstance(prefer_index, bool):
            return 0
        return abs(start - prefer_index)


def resolve_anchor(
    text: Optional[str],
    anchor: Anchor,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
) -> Optional[AnchorMatch]:
    """Resolve ``anchor`` in ``text`` with a one-off resolver."""
    return AnchorResolver(min_similarity=min_similarity).resolve(text, anchor)


def relocate_locked_spans(
    text: str,
    locked_spans: Iterable[LockedSpan],
    resolver: Optional[AnchorResolver] = None,
    context_chars: int = DEFAULT_CONTEXT_CHARS,
) -> RelocationResult:
    """Relocate locked spans after an edit, re-capturing their anchors.

    Resolved spans get a fresh anchor (quote, context and hint) taken from
    their new location, so the next relocation starts from current text.
    """
    resolver = resolver or AnchorResolver()
    result = RelocationResult()
    for locked in locked_spans:
        match = resolver.resolve(text, locked.anchor)
        if match is None:
            result.missing.append(locked.id)
            continue
        updated = replace(
            locked, anchor=Anchor.capture(text, match.start, match.end, context_chars)
        )
        result.resolved.append((updated, match))
    if result.missing:
        logger.info("Could not relocate %d locked span(s)", len(result.missing))
    return result


__all__ = [
    "DEFAULT_MIN_SIMILARITY",
    "MatchTier",
    "Anchor",
    "LockedSpan",
    "AnchorMatch",
    "RelocationResult",
    "AnchorResolver",
    "resolve_anchor",
    "relocate_locked_spans",
    "common_prefix_length",
    "common_suffix_length",
    "find_all",
]
