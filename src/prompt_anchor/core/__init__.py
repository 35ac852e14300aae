"""Core text-anchoring engine for prompt-anchor."""

from prompt_anchor.core.anchors import (
    Anchor,
    AnchorMatch,
    AnchorResolver,
    LockedSpan,
    MatchTier,
    relocate_locked_spans,
    resolve_anchor,
)

from prompt_anchor.core.cache import (
    ResultCache,
    generate_key,
    hash_document,
)

from prompt_anchor.core.concurrency import (
    CancellationError,
    CancellationToken,
    cancellable_sleep,
)

from prompt_anchor.core.lifecycle import (
    RequestLifecycleManager,
    RequestState,
)

from prompt_anchor.core.spans import (
    Highlight,
    RawSpan,
    SpanNormalizer,
    build_grapheme_mapper,
    normalize,
)

from prompt_anchor.core.suggestions import (
    ApplyResult,
    ApplyStatus,
    apply_suggestion_to_prompt,
)

from prompt_anchor.core.taxonomy import (
    DEFAULT_TAXONOMY,
    Taxonomy,
)

__all__ = [
    "Anchor",
    "AnchorMatch",
    "AnchorResolver",
    "LockedSpan",
    "MatchTier",
    "relocate_locked_spans",
    "resolve_anchor",
    "ResultCache",
    "generate_key",
    "hash_document",
    "CancellationError",
    "CancellationToken",
    "cancellable_sleep",
    "RequestLifecycleManager",
    "RequestState",
    "Highlight",
    "RawSpan",
    "SpanNormalizer",
    "build_grapheme_mapper",
    "normalize",
    "ApplyResult",
    "ApplyStatus",
    "apply_suggestion_to_prompt",
    "DEFAULT_TAXONOMY",
    "Taxonomy",
]
