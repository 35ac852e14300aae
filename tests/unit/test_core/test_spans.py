"""Tests for prompt_anchor.core.spans module."""

import logging
import math

import pytest

from prompt_anchor.core.spans import (
    DEFAULT_CONTEXT_CHARS,
    Highlight,
    RawSpan,
    SpanNormalizer,
    build_grapheme_mapper,
    context_window,
    normalize,
    utf16_offset_to_index,
)
from prompt_anchor.core.taxonomy import DEFAULT_TAXONOMY

GOLDEN = "a golden hour glow over the bay"


def span(role, start, end, confidence=None):
    data = {"role": role, "start": start, "end": end}
    if confidence is not None:
        data["confidence"] = confidence
    return data


# =============================================================================
# Categorization
# =============================================================================


class TestCategorization:
    """Roles map onto taxonomy categories."""

    def test_legacy_alias(self):
        """Scenario: a legacy role name is mapped through the alias table."""
        highlights = normalize([span("Wardrobe", 4, 9)], "The quick brown fox")

        assert len(highlights) == 1
        highlight = highlights[0]
        assert highlight.category == "subject.wardrobe"
        assert highlight.role == "Wardrobe"
        assert highlight.quote == "quick"
        assert highlight.source == "llm"
        assert highlight.version == "llm-v1"

    def test_unknown_role_falls_back_to_default(self, caplog):
        normalizer = SpanNormalizer()
        with caplog.at_level(logging.WARNING, logger="prompt_anchor"):
            report = normalizer.normalize_report([span("dragon", 0, 3)], "The end")

        assert report.highlights[0].category == "subject"
        assert report.fallback_roles == [0]
        assert "dragon" in caplog.text

    def test_category_key_accepted(self):
        highlights = normalize([{"category": "camera.lens", "start": 0, "end": 4}], "35mm lens")
        assert highlights[0].category == "camera.lens"

    def test_raw_span_objects_accepted(self):
        highlights = normalize([RawSpan("lighting", 0, 4)], "warm light")
        assert highlights[0].quote == "warm"

    def test_non_string_role_uses_category_as_role(self):
        highlights = normalize([span(None, 0, 4)], "warm light")
        assert highlights[0].category == "subject"
        assert highlights[0].role == "subject"


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    """Malformed spans are dropped individually."""

    @pytest.mark.parametrize(
        "bad, reason",
        [
            (span("subject", math.nan, 3), "non_finite_offset"),
            (span("subject", 0, math.inf), "non_finite_offset"),
            (span("subject", "abc", 3), "non_finite_offset"),
            (span("subject", None, 3), "non_finite_offset"),
            (span("subject", True, 3), "non_finite_offset"),
            (span("subject", 5, 5), "invalid_range"),
            (span("subject", 6, 2), "invalid_range"),
            (span("subject", 40, 60), "collapsed_after_clamp"),
            ("not a span", "not_a_span"),
        ],
    )
    def test_drop_reasons(self, bad, reason):
        report = SpanNormalizer().normalize_report([bad, span("subject", 0, 3)], "The quick fox")

        assert [d.reason for d in report.dropped] == [reason]
        assert report.dropped[0].index == 0
        assert [h.quote for h in report.highlights] == ["The"]

    def test_offsets_clamped_to_text(self):
        highlights = normalize([span("subject", -5, 99)], "fox")
        assert (highlights[0].start, highlights[0].end) == (0, 3)
        assert highlights[0].quote == "fox"

    def test_fractional_and_string_offsets_truncated(self):
        highlights = normalize([span("subject", 4.7, "9.2")], "The quick brown fox")
        assert (highlights[0].start, highlights[0].end) == (4, 9)

    @pytest.mark.parametrize("payload", [None, [], "spans", {"spans": []}])
    def test_non_list_payloads_yield_nothing(self, payload):
        assert normalize(payload, "some text") == []

    @pytest.mark.parametrize("text", ["", None])
    def test_empty_text_yields_nothing(self, text):
        assert normalize([span("subject", 0, 3)], text) == []


# =============================================================================
# Shape of a highlight
# =============================================================================


class TestHighlightShape:
    """Ids, contexts and optional fields."""

    def test_deterministic_id(self):
        highlights = normalize([span("Wardrobe", 4, 9)], "The quick brown fox")
        assert highlights[0].id == "llm_subject.wardrobe_0_4_9"

    def test_supplied_id_kept(self):
        raw = {"id": "span-7", "role": "subject", "start": 0, "end": 3}
        assert normalize([raw], "fox")[0].id == "span-7"

    def test_context_windows(self):
        text = "x" * 30 + "target" + "y" * 30
        highlight = normalize([span("subject", 30, 36)], text)[0]
        assert highlight.left_ctx == "x" * DEFAULT_CONTEXT_CHARS
        assert highlight.right_ctx == "y" * DEFAULT_CONTEXT_CHARS

    def test_context_shrinks_at_edges(self):
        assert context_window("abcdef", 1, 3, 20) == ("a", "def")

    def test_optional_fields_omitted(self):
        data = normalize([span("subject", 0, 3)], "fox")[0].to_dict()
        assert "confidence" not in data
        assert "start_grapheme" not in data
        assert "end_grapheme" not in data

    def test_confidence_kept_when_numeric(self):
        assert normalize([span("subject", 0, 3, 0.75)], "fox")[0].confidence == 0.75
        raw = {"role": "subject", "start": 0, "end": 3, "confidence": "high"}
        assert normalize([raw], "fox")[0].confidence is None


# =============================================================================
# Ordering and merging
# =============================================================================


class TestOrderingAndMerging:
    """Sorting, whitespace merges and overlap resolution."""

    def test_sorted_by_start_then_end(self):
        text = "red barn under blue sky"
        highlights = normalize(
            [span("environment", 15, 23), span("subject", 0, 8)], text
        )
        assert [h.quote for h in highlights] == ["red barn", "blue sky"]

    def test_single_space_gap_merged(self):
        """Scenario: same-category spans separated by one space become one."""
        text = "The scene is lit by amber glow tonight"
        highlights = normalize(
            [span("Lighting", 20, 25), span("Lighting", 26, 30)], text
        )
        assert len(highlights) == 1
        assert highlights[0].quote == "amber glow"
        assert (highlights[0].start, highlights[0].end) == (20, 30)

    def test_touching_spans_merged(self):
        text = "The scene is lit by amber glow tonight"
        highlights = normalize(
            [span("Lighting", 20, 25), span("Lighting", 25, 30)], text
        )
        assert [h.quote for h in highlights] == ["amber glow"]

    def test_multiline_whitespace_gap_merged(self):
        text = "neon\n\t glow"
        highlights = normalize([span("lighting", 0, 4), span("lighting", 7, 11)], text)
        assert [h.quote for h in highlights] == ["neon\n\t glow"]

    def test_punctuation_gap_not_merged(self):
        text = "neon, glow"
        highlights = normalize([span("lighting", 0, 4), span("lighting", 6, 10)], text)
        assert len(highlights) == 2

    def test_different_categories_not_merged(self):
        text = "amber glow"
        highlights = normalize([span("lighting", 0, 5), span("style", 6, 10)], text)
        assert len(highlights) == 2

    def test_merged_confidence_is_minimum(self):
        text = "amber glow"
        highlights = normalize(
            [span("lighting", 0, 5, 0.9), span("lighting", 6, 10, 0.6)], text
        )
        assert highlights[0].confidence == 0.6

    def test_merge_keeps_first_id_and_recomputes_right_context(self):
        text = "amber glow at night"
        report = SpanNormalizer().normalize_report(
            [span("lighting", 0, 5), span("lighting", 6, 10)], text
        )
        assert report.merges == 1
        merged = report.highlights[0]
        assert merged.id == "llm_lighting_0_0_5"
        assert merged.right_ctx == " at night"

    def test_overlap_higher_confidence_wins(self):
        report = SpanNormalizer().normalize_report(
            [
                span("lighting.timeOfDay", 2, 13, 0.9),
                span("style.aesthetic", 9, 18, 0.5),
            ],
            GOLDEN,
        )
        assert [h.quote for h in report.highlights] == ["golden hour"]
        assert report.overlaps_resolved == 1

    def test_overlap_challenger_replaces_weaker(self):
        highlights = normalize(
            [
                span("lighting.timeOfDay", 2, 13, 0.4),
                span("style.aesthetic", 9, 18, 0.8),
            ],
            GOLDEN,
        )
        assert [h.quote for h in highlights] == ["hour glow"]

    def test_overlap_tie_prefers_longer(self):
        highlights = normalize(
            [span("style", 2, 13), span("lighting", 9, 23)], GOLDEN
        )
        assert [h.quote for h in highlights] == ["hour glow over"]

    def test_same_category_overlap_joined(self):
        highlights = normalize([span("lighting", 2, 13), span("lighting", 9, 18)], GOLDEN)
        assert [h.quote for h in highlights] == ["golden hour glow"]

    def test_allow_overlap_keeps_both(self):
        highlights = normalize(
            [span("lighting", 2, 13), span("style", 9, 18)], GOLDEN, allow_overlap=True
        )
        assert [h.quote for h in highlights] == ["golden hour", "hour glow"]

    def test_renormalizing_is_idempotent(self):
        text = "The scene is lit by amber glow tonight, a wide shot"
        first = normalize(
            [
                span("Lighting", 20, 25, 0.8),
                span("Lighting", 26, 30, 0.7),
                span("framing", 42, 51),
                span("dragon", 0, 3),
            ],
            text,
        )
        assert normalize(first, text) == first

    def test_highlight_inputs_keep_role_and_source(self):
        original = Highlight(
            id="h1",
            category="lighting",
            role="Lighting",
            start=0,
            end=5,
            quote="stale",
            left_ctx="",
            right_ctx="",
            source="manual",
            version="v0",
        )
        result = normalize([original], "amber glow")[0]
        assert result.quote == "amber"
        assert result.role == "Lighting"
        assert result.source == "manual"
        assert result.version == "v0"


# =============================================================================
# Offset helpers
# =============================================================================


class TestGraphemes:
    """Grapheme index mapping."""

    def test_combining_mark_joins_base(self):
        text = "e\u0301clair"
        mapper = build_grapheme_mapper(text)
        assert mapper(0) == 0
        assert mapper(2) == 1
        assert mapper(len(text)) == 6

    def test_regional_indicator_pairs(self):
        flags = "\U0001F1FA\U0001F1F8\U0001F1EB\U0001F1F7"
        mapper = build_grapheme_mapper(flags)
        assert mapper(2) == 1
        assert mapper(4) == 2

    def test_zwj_sequence_is_one_cluster(self):
        family = "\U0001F468\u200d\U0001F469\u200d\U0001F467"
        mapper = build_grapheme_mapper(family + "!")
        assert mapper(len(family)) == 1

    def test_crlf_is_one_cluster(self):
        mapper = build_grapheme_mapper("a\r\nb")
        assert mapper(1) == 1
        assert mapper(3) == 2
        assert mapper(4) == 3

    def test_conjoining_jamo_form_one_syllable(self):
        text = "\u1100\u1161\u11a8x"
        mapper = build_grapheme_mapper(text)
        assert mapper(3) == 1
        assert mapper(len(text)) == 2

    def test_index_inside_cluster_maps_to_its_end(self):
        mapper = build_grapheme_mapper("a\r\nb")
        assert mapper(2) == 2

    def test_normalizer_fills_grapheme_offsets(self):
        text = "e\u0301clair au chocolat"
        highlight = normalize(
            [span("subject", 2, 7)], text, grapheme_mapper=build_grapheme_mapper(text)
        )[0]
        assert highlight.quote == "clair"
        assert (highlight.start_grapheme, highlight.end_grapheme) == (1, 6)

    def test_utf16_offsets(self):
        text = "\U0001F600ab"
        assert utf16_offset_to_index(text, 0) == 0
        assert utf16_offset_to_index(text, 2) == 1
        assert utf16_offset_to_index(text, 3) == 2
        assert utf16_offset_to_index(text, 99) == 3


class TestNormalizerOptions:
    def test_custom_context_chars(self):
        highlight = normalize([span("subject", 3, 6)], "abcdefghi", context_chars=2)[0]
        assert (highlight.left_ctx, highlight.right_ctx) == ("bc", "gh")

    def test_negative_context_rejected(self):
        with pytest.raises(ValueError):
            SpanNormalizer(context_chars=-1)

    def test_taxonomy_override(self):
        normalizer = SpanNormalizer()
        assert normalizer.normalize([span("lens", 0, 4)], "35mm", taxonomy=DEFAULT_TAXONOMY)[
            0
        ].category == "camera.lens"
