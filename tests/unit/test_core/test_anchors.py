"""Tests for prompt_anchor.core.anchors module."""

import pytest

from prompt_anchor.core.anchors import (
    Anchor,
    AnchorResolver,
    LockedSpan,
    MatchTier,
    common_prefix_length,
    common_suffix_length,
    find_all,
    relocate_locked_spans,
    resolve_anchor,
)
from prompt_anchor.core.spans import normalize

COWBOYS = "An cowboy in a leather jacket meets a cowboy on a horse"


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:
    def test_common_lengths(self):
        assert common_suffix_length("A ", "n ") == 1
        assert common_prefix_length(" in a", " in b") == 4
        assert common_suffix_length("", "abc") == 0

    def test_find_all_includes_overlaps(self):
        assert find_all("aaaa", "aa") == [0, 1, 2]
        assert find_all("abc", "") == []


# =============================================================================
# Anchor construction
# =============================================================================


class TestAnchor:
    def test_capture(self):
        anchor = Anchor.capture("A cowboy rides", 2, 8, context_chars=2)
        assert anchor == Anchor(quote="cowboy", left_ctx="A ", right_ctx=" r", prefer_index=2)

    def test_capture_rejects_invalid_range(self):
        with pytest.raises(ValueError):
            Anchor.capture("abc", 2, 2)

    def test_from_highlight(self):
        highlight = normalize([{"role": "subject", "start": 2, "end": 8}], "A cowboy rides")[0]
        anchor = Anchor.from_highlight(highlight)
        assert anchor.quote == "cowboy"
        assert anchor.prefer_index == 2

    def test_dict_round_trip_omits_missing_hint(self):
        anchor = Anchor.from_dict({"quote": "cowboy", "left_ctx": "A "})
        assert anchor.prefer_index is None
        assert anchor.to_dict() == {"quote": "cowboy", "left_ctx": "A ", "right_ctx": ""}


# =============================================================================
# Tiered resolution
# =============================================================================


class TestResolutionTiers:
    """HINT, EXACT, CONTEXT and FUZZY tiers in order."""

    def test_hint_tier(self):
        text = "a cat and a cat"
        match = resolve_anchor(text, Anchor(quote="cat", prefer_index=12))
        assert (match.start, match.end, match.tier) == (12, 15, MatchTier.HINT)

    def test_hint_with_trimmed_quote(self):
        text = "a cat and a cat"
        match = resolve_anchor(text, Anchor(quote=" cat ", prefer_index=11))
        assert (match.start, match.end, match.tier) == (12, 15, MatchTier.HINT)

    def test_exact_tier_ignores_stale_hint(self):
        match = resolve_anchor("the red barn", Anchor(quote="red", prefer_index=0))
        assert (match.start, match.end, match.tier) == (4, 7, MatchTier.EXACT)

    def test_hint_out_of_range_ignored(self):
        match = resolve_anchor("the red barn", Anchor(quote="red", prefer_index=500))
        assert match.tier is MatchTier.EXACT

    def test_context_tier_after_edit_before_quote(self):
        """Scenario: an edit before the quote leaves context scoring to decide."""
        anchor = Anchor(
            quote="cowboy", left_ctx="A ", right_ctx=" in a leather jacket", prefer_index=2
        )
        match = resolve_anchor(COWBOYS, anchor)

        assert match.tier is MatchTier.CONTEXT
        assert (match.start, match.end) == (3, 9)
        assert COWBOYS[match.start:match.end] == "cowboy"

    def test_context_tier_prefers_matching_right_context(self):
        anchor = Anchor(quote="cowboy", left_ctx="a ", right_ctx=" on a horse")
        match = resolve_anchor(COWBOYS, anchor)
        assert match.tier is MatchTier.CONTEXT
        assert match.start == 38

    def test_context_tie_broken_by_hint_distance(self):
        text = "cat cat cat"
        match = resolve_anchor(text, Anchor(quote="cat", prefer_index=8))
        assert match.tier is MatchTier.HINT
        match = resolve_anchor(text, Anchor(quote="cat", prefer_index=9))
        assert (match.start, match.tier) == (8, MatchTier.CONTEXT)

    def test_fuzzy_tier(self):
        text = "the brave astronaut floats near the station"
        match = resolve_anchor(text, Anchor(quote="brave astronauts floating"))

        assert match.tier is MatchTier.FUZZY
        assert text[match.start:match.end] == "brave astronaut floats"
        assert 0.8 <= match.score < 1.0

    def test_fuzzy_is_case_insensitive(self):
        text = "A Brave Astronaut floats"
        match = resolve_anchor(text, Anchor(quote="brave astronaut"))
        assert match.tier is MatchTier.FUZZY
        assert text[match.start:match.end] == "Brave Astronaut"

    def test_fuzzy_seeded_by_surviving_context(self):
        text = "old text. A tired astronaut floats by the hatch. Another astronaut sleeps."
        anchor = Anchor(quote="tired astronauts", left_ctx="text. A ", right_ctx=" floats by the")
        match = resolve_anchor(text, anchor)
        assert match.tier is MatchTier.FUZZY
        assert text[match.start:match.end] == "tired astronaut"


class TestNotFound:
    """Missing anchors resolve to None rather than a guess."""

    def test_quote_absent(self):
        assert resolve_anchor("A cowboy rides at dawn", Anchor(quote="astronaut")) is None

    @pytest.mark.parametrize("text", ["", None])
    def test_empty_text(self, text):
        assert resolve_anchor(text, Anchor(quote="cowboy")) is None

    @pytest.mark.parametrize("quote", ["", "   "])
    def test_blank_quote(self, quote):
        assert resolve_anchor("A cowboy", Anchor(quote=quote)) is None

    def test_below_threshold(self):
        assert resolve_anchor("a small grey cat", Anchor(quote="large black dog")) is None

    def test_threshold_is_tunable(self):
        text = "a small grey cat"
        anchor = Anchor(quote="small gray kitten")
        assert AnchorResolver(min_similarity=0.95).resolve(text, anchor) is None
        assert AnchorResolver(min_similarity=0.5).resolve(text, anchor) is not None

    def test_invalid_resolver_arguments(self):
        with pytest.raises(ValueError):
            AnchorResolver(min_similarity=0)
        with pytest.raises(ValueError):
            AnchorResolver(window_slack=-1)


# =============================================================================
# Locked spans
# =============================================================================


class TestRelocateLockedSpans:
    """Relocating locked spans after an edit."""

    def test_resolved_spans_recaptured(self):
        original = "A cowboy in a leather jacket"
        highlight = normalize([{"role": "subject", "start": 2, "end": 8}], original)[0]
        locked = LockedSpan.from_highlight(highlight)

        edited = "At dusk, a cowboy in a leather jacket"
        result = relocate_locked_spans(edited, [locked])

        assert result.missing == []
        updated, match = result.resolved[0]
        assert edited[match.start:match.end] == "cowboy"
        assert updated.id == locked.id
        assert updated.anchor.prefer_index == match.start
        assert updated.anchor.left_ctx.endswith("a ")

    def test_missing_spans_reported(self):
        locked = LockedSpan(id="l1", anchor=Anchor(quote="astronaut"))
        result = relocate_locked_spans("A cowboy rides", [locked])
        assert result.resolved == []
        assert result.missing == ["l1"]

    def test_locked_span_dict_round_trip(self):
        locked = LockedSpan(
            id="l1",
            anchor=Anchor(quote="cowboy", left_ctx="A ", prefer_index=2),
            category="subject",
            confidence=0.9,
        )
        assert LockedSpan.from_dict(locked.to_dict()) == locked
