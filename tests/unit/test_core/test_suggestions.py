"""Tests for prompt_anchor.core.suggestions module."""

import pytest

from prompt_anchor.core.anchors import Anchor, MatchTier
from prompt_anchor.core.suggestions import (
    ApplyStatus,
    apply_suggestion_to_prompt,
    build_suggestion_context,
    merge_suggestions,
    parse_suggestions,
)

PROMPT = "A cowboy in a leather jacket rides at golden hour"


class TestApplySuggestion:
    """Replacing anchored text."""

    def test_applies_at_resolved_location(self):
        anchor = Anchor(quote="leather jacket", left_ctx="in a ", prefer_index=14)
        result = apply_suggestion_to_prompt(
            PROMPT, "denim jacket", anchor, idempotency_key="edit-1"
        )

        assert result.status is ApplyStatus.APPLIED
        assert result.applied is True
        assert result.updated_prompt == "A cowboy in a denim jacket rides at golden hour"
        assert result.replacement_target == "leather jacket"
        assert (result.match_start, result.match_end) == (14, 28)
        assert result.idempotency_key == "edit-1"
        assert result.tier is MatchTier.HINT

    def test_stale_hint_still_lands_on_quote(self):
        edited = "At dusk, " + PROMPT
        result = apply_suggestion_to_prompt(
            edited, "blue hour", Anchor(quote="golden hour", prefer_index=38)
        )
        assert result.updated_prompt == "At dusk, A cowboy in a leather jacket rides at blue hour"

    def test_not_found_leaves_prompt_alone(self):
        """Boundary: a quote that no longer appears is reported, not guessed."""
        original = PROMPT
        result = apply_suggestion_to_prompt(PROMPT, "pilot", Anchor(quote="astronaut"))

        assert result.status is ApplyStatus.NOT_FOUND
        assert result.updated_prompt is None
        assert result.applied is False
        assert PROMPT == original

    def test_identical_suggestion_is_no_op(self):
        result = apply_suggestion_to_prompt(PROMPT, "cowboy", Anchor(quote="cowboy"))
        assert result.status is ApplyStatus.NO_OP
        assert result.updated_prompt is None
        assert result.replacement_target == "cowboy"

    def test_none_prompt_not_found(self):
        result = apply_suggestion_to_prompt(None, "x", Anchor(quote="cowboy"))
        assert result.status is ApplyStatus.NOT_FOUND

    def test_suggestion_must_be_string(self):
        with pytest.raises(TypeError):
            apply_suggestion_to_prompt(PROMPT, None, Anchor(quote="cowboy"))

    def test_to_dict(self):
        result = apply_suggestion_to_prompt(PROMPT, "rancher", Anchor(quote="cowboy"))
        data = result.to_dict()
        assert data["status"] == "applied"
        assert data["tier"] == "exact"
        assert data["match_start"] == 2
        assert "idempotency_key" not in data


class TestSuggestionPayloads:
    """Parsing and merging suggestion lists."""

    def test_parse_strings_and_objects(self):
        payload = {"suggestions": ["denim jacket", {"text": "  wool coat "}, {"text": 3}, ""]}
        assert parse_suggestions(payload) == ["denim jacket", "wool coat"]

    @pytest.mark.parametrize("payload", [None, [], {"suggestions": "x"}, {"other": []}])
    def test_malformed_payloads(self, payload):
        assert parse_suggestions(payload) == []

    def test_merge_dedups_case_insensitively(self):
        merged = merge_suggestions(["Denim jacket", "wool coat"], ["denim JACKET", "trench coat"])
        assert merged == ["Denim jacket", "wool coat", "trench coat"]


class TestSuggestionContext:
    """Locating the highlighted phrase for a suggestion request."""

    def test_found_with_windows(self):
        context = build_suggestion_context(PROMPT, "leather jacket", window=5)
        assert context.found is True
        assert (context.start, context.end) == (14, 28)
        assert context.context_before == "in a "
        assert context.context_after == " ride"

    def test_prefer_index_disambiguates(self):
        prompt = "a cat and a cat"
        context = build_suggestion_context(prompt, "cat", prefer_index=12)
        assert context.start == 12
        assert context.context_before == "a cat and a "

    def test_not_found(self):
        context = build_suggestion_context(PROMPT, "astronaut")
        assert context.found is False
        assert context.start is None
        assert context.context_before == ""
