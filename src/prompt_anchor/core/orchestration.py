"""
Orchestration layer tying the scheduler, cache and text engines together.

Two services cover the two request flows an editor drives:

- :class:`SuggestionService` fetches replacement suggestions for a
  highlighted phrase.
- :class:`SpanLabelingService` fetches raw span labels for a prompt and
  normalizes them into highlights.

Both take every collaborator through the constructor. Each service owns one
:class:`~prompt_anchor.core.lifecycle.RequestLifecycleManager` by default, so
a new request supersedes the previous one of the same flow. Cancellation is
reported as a ``CANCELLED`` outcome; transport failures propagate.
"""

import logging
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from prompt_anchor.config import EngineConfig, get_config
from prompt_anchor.core.anchors import AnchorResolver
from prompt_anchor.core.cache import ResultCache, generate_key, hash_document
from prompt_anchor.core.concurrency import CancellationError, CancellationToken
from prompt_anchor.core.lifecycle import (
    RequestLifecycleManager,
    StartCallback,
    smart_debounce_ms,
)
from prompt_anchor.core.spans import (
    DEFAULT_MAX_SPANS,
    DEFAULT_MIN_CONFIDENCE,
    GraphemeMapper,
    Highlight,
    SpanNormalizer,
)
from prompt_anchor.core.suggestions import (
    SuggestionContext,
    build_suggestion_context,
    parse_suggestions,
)
from prompt_anchor.core.taxonomy import Taxonomy

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    """How a service call settled."""

    FETCHED = "fetched"
    CACHED = "cached"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


def _manager_from(config: EngineConfig) -> RequestLifecycleManager:
    return RequestLifecycleManager(
        debounce_ms=config.scheduler.debounce_ms,
        timeout_ms=config.scheduler.timeout_ms,
    )


def _cache_from(config: EngineConfig) -> ResultCache:
    return ResultCache(ttl_ms=config.cache.ttl_ms, max_entries=config.cache.max_entries)


def _debounce_for(immediate: bool, smart_text: Optional[str] = None) -> Optional[float]:
    if immediate:
        return 0.0
    if smart_text is not None:
        return smart_debounce_ms(smart_text)
    return None


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SuggestionRequest:
    """What a suggestion fetcher is asked for."""

    prompt: str
    highlighted_text: str
    context: SuggestionContext
    category: Optional[str] = None
    labeled_spans: Tuple[Dict[str, Any], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "highlighted_text": self.highlighted_text,
            "context_before": self.context.context_before,
            "context_after": self.context.context_after,
            "category": self.category,
            "labeled_spans": [dict(span) for span in self.labeled_spans],
        }


@dataclass(frozen=True)
class SuggestionResult:
    """Parsed suggestion payload, as stored in the cache."""

    suggestions: Tuple[str, ...] = ()
    is_placeholder: bool = False


@dataclass
class SuggestionOutcome:
    """Result of :meth:`SuggestionService.fetch_suggestions`.

    Attributes:
        status: FETCHED, CACHED, SKIPPED or CANCELLED
        suggestions: Suggestions to show; empty unless FETCHED or CACHED
        is_placeholder: Whether the fetcher treated the phrase as a placeholder
        context: Where the highlighted phrase was found in the prompt
        cache_key: Fingerprint the request was deduplicated and cached under
    """

    status: OutcomeStatus
    suggestions: List[str] = field(default_factory=list)
    is_placeholder: bool = False
    context: Optional[SuggestionContext] = None
    cache_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "suggestions": list(self.suggestions),
            "is_placeholder": self.is_placeholder,
            "context": self.context.to_dict() if self.context is not None else None,
            "cache_key": self.cache_key,
        }


SuggestionFetcher = Callable[[SuggestionRequest, CancellationToken], Awaitable[Any]]


def _payload_is_placeholder(payload: Any) -> bool:
    if not isinstance(payload, Mapping):
        return False
    flag = payload.get("is_placeholder", payload.get("isPlaceholder", False))
    return flag is True


def _span_record(span: Any) -> Optional[Dict[str, Any]]:
    if isinstance(span, Highlight):
        return {
            "category": span.category,
            "start": span.start,
            "end": span.end,
            "quote": span.quote,
        }
    if isinstance(span, Mapping):
        return {
            "category": span.get("category", span.get("role")),
            "start": span.get("start"),
            "end": span.get("end"),
            "quote": span.get("quote", span.get("text")),
        }
    return None


def simplify_spans(spans: Optional[Iterable[Any]]) -> Tuple[Dict[str, Any], ...]:
    """Reduce labeled spans (highlights or dicts) to category, range and quote."""
    records = (_span_record(span) for span in spans or ())
    return tuple(record for record in records if record is not None)


def span_fingerprint(spans: Optional[Iterable[Any]]) -> str:
    """Order-independent hash of the labeled spans, or "" when there are none."""
    records = simplify_spans(spans)
    if not records:
        return ""
    lines = sorted(
        f"{r['category']}:{r['start']}:{r['end']}:{r['quote']}" for r in records
    )
    return hash_document("\n".join(lines))


class SuggestionService:
    """Debounced, cached suggestion fetching for a highlighted phrase.

    Args:
        fetcher: ``async (request, token) -> payload`` returning
            ``{"suggestions": [...]}``. It should pass ``token`` to anything
            that waits, such as ``retry_with_backoff``.
        manager: Scheduler for this flow (default: built from config).
        cache: Result cache (default: built from config).
        config: Engine configuration (default: :func:`get_config`).
        resolver: Resolver used to locate the phrase in the prompt.
    """

    def __init__(
        self,
        fetcher: SuggestionFetcher,
        manager: Optional[RequestLifecycleManager] = None,
        cache: Optional[ResultCache] = None,
        config: Optional[EngineConfig] = None,
        resolver: Optional[AnchorResolver] = None,
    ):
        self.config = config or get_config()
        self.fetcher = fetcher
        self.manager = manager if manager is not None else _manager_from(self.config)
        self.cache = cache if cache is not None else _cache_from(self.config)
        self.resolver = resolver or AnchorResolver(
            min_similarity=self.config.resolver.fuzzy_threshold
        )

    def cache_key(
        self,
        prompt: str,
        context: SuggestionContext,
        category: Optional[str] = None,
        spans_hash: str = "",
    ) -> str:
        """Fingerprint a request by phrase, surrounding text, document and category.

        ``spans_hash`` is the :func:`span_fingerprint` of the labeled spans sent
        along, so a relabeled prompt does not reuse suggestions.
        """
        document_hash = hash_document(prompt)
        if spans_hash:
            document_hash = f"{document_hash}#{spans_hash}"
        if category:
            document_hash = f"{document_hash}:{category}"
        return generate_key(
            context.highlighted_text,
            context.context_before,
            context.context_after,
            document_hash,
        )

    async def fetch_suggestions(
        self,
        prompt: str,
        highlight: str,
        prefer_index: Optional[int] = None,
        category: Optional[str] = None,
        bypass_cache: bool = False,
        labeled_spans: Optional[Iterable[Any]] = None,
        immediate: bool = False,
        on_request_start: Optional[StartCallback] = None,
    ) -> SuggestionOutcome:
        """Fetch suggestions for ``highlight`` within ``prompt``.

        Returns SKIPPED for a blank phrase or when an identical request is
        already in flight, CACHED on a cache hit, CANCELLED when a newer
        request supersedes this one, and FETCHED otherwise.

        ``labeled_spans`` are the prompt's current highlights; they are sent
        to the fetcher and fingerprinted into the cache key. ``immediate``
        skips the debounce window. ``on_request_start`` is called once the
        request actually goes out, never for cache hits or superseded calls.

        Raises:
            TransportError: Or whatever the fetcher raises.
        """
        prompt = unicodedata.normalize("NFC", prompt or "")
        highlight = unicodedata.normalize("NFC", highlight or "")
        if not highlight.strip():
            return SuggestionOutcome(status=OutcomeStatus.SKIPPED)

        context = build_suggestion_context(
            prompt,
            highlight,
            prefer_index=prefer_index,
            window=self.config.suggestion_context_chars,
            resolver=self.resolver,
        )
        spans = simplify_spans(labeled_spans)
        key = self.cache_key(prompt, context, category, span_fingerprint(spans))

        if self.manager.is_request_in_flight(key):
            logger.debug("Identical suggestion request already in flight")
            return SuggestionOutcome(
                status=OutcomeStatus.SKIPPED, context=context, cache_key=key
            )

        self.manager.cancel_current_request("Superseded by a newer suggestion request")

        if not bypass_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return SuggestionOutcome(
                    status=OutcomeStatus.CACHED,
                    suggestions=list(cached.suggestions),
                    is_placeholder=cached.is_placeholder,
                    context=context,
                    cache_key=key,
                )

        request = SuggestionRequest(
            prompt=prompt,
            highlighted_text=highlight,
            context=context,
            category=category,
            labeled_spans=spans,
        )

        async def work(token: CancellationToken) -> Any:
            return await self.fetcher(request, token)

        try:
            payload = await self.manager.schedule_request(
                key,
                work,
                debounce_ms=_debounce_for(immediate),
                on_start=on_request_start,
            )
        except CancellationError as exc:
            logger.debug("Suggestion request cancelled: %s", exc.reason)
            return SuggestionOutcome(
                status=OutcomeStatus.CANCELLED, context=context, cache_key=key
            )

        result = SuggestionResult(
            suggestions=tuple(parse_suggestions(payload)),
            is_placeholder=_payload_is_placeholder(payload),
        )
        self.cache.set(key, result)
        logger.info("Fetched %d suggestion(s)", len(result.suggestions))
        return SuggestionOutcome(
            status=OutcomeStatus.FETCHED,
            suggestions=list(result.suggestions),
            is_placeholder=result.is_placeholder,
            context=context,
            cache_key=key,
        )

    def cancel(self, reason: str = "Suggestion request cancelled") -> bool:
        return self.manager.cancel_current_request(reason)

    def dispose(self) -> None:
        self.manager.dispose()


# ---------------------------------------------------------------------------
# Span labeling
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LabelingRequest:
    """What a span labeler is asked for."""

    text: str
    max_spans: int = DEFAULT_MAX_SPANS
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    taxonomy_version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "max_spans": self.max_spans,
            "min_confidence": self.min_confidence,
            "taxonomy_version": self.taxonomy_version,
        }


@dataclass
class LabelingOutcome:
    """Result of :meth:`SpanLabelingService.label`.

    ``source`` is ``"network"``, ``"cache"`` or ``"empty"`` (blank text, no
    request made). It is None when the call was skipped as a duplicate or
    cancelled.
    """

    status: OutcomeStatus
    highlights: List[Highlight] = field(default_factory=list)
    source: Optional[str] = None
    cache_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "source": self.source,
            "highlights": [h.to_dict() for h in self.highlights],
            "cache_key": self.cache_key,
        }


SpanLabeler = Callable[[LabelingRequest, CancellationToken], Awaitable[Any]]


def _extract_spans(payload: Any) -> Tuple[Any, ...]:
    if isinstance(payload, Mapping):
        payload = payload.get("spans")
    if isinstance(payload, list):
        return tuple(payload)
    return ()


class SpanLabelingService:
    """Debounced, cached span labeling for a whole prompt.

    The cache stores the raw spans a labeler returned, so a cache hit is
    normalized against the current taxonomy and grapheme mapper. With smart
    debounce on, the debounce window grows with the text length.

    Args:
        labeler: ``async (request, token) -> payload`` returning
            ``{"spans": [...]}``; ``request`` is a :class:`LabelingRequest`.
        taxonomy: Taxonomy for normalization (default: the normalizer's).
        manager: Scheduler for this flow (default: built from config).
        cache: Result cache (default: built from config).
        config: Engine configuration (default: :func:`get_config`).
        normalizer: Span normalizer (default: built from config).
        max_spans: Span budget sent to the labeler (default: from config).
        min_confidence: Confidence floor sent to the labeler (default: from config).
        smart_debounce: Scale the debounce with text length (default: from config).
    """

    def __init__(
        self,
        labeler: SpanLabeler,
        taxonomy: Optional[Taxonomy] = None,
        manager: Optional[RequestLifecycleManager] = None,
        cache: Optional[ResultCache] = None,
        config: Optional[EngineConfig] = None,
        normalizer: Optional[SpanNormalizer] = None,
        max_spans: Optional[int] = None,
        min_confidence: Optional[float] = None,
        smart_debounce: Optional[bool] = None,
    ):
        self.config = config or get_config()
        self.labeler = labeler
        self.manager = manager if manager is not None else _manager_from(self.config)
        self.cache = cache if cache is not None else _cache_from(self.config)
        if normalizer is None:
            normalizer = SpanNormalizer(
                context_chars=self.config.normalizer.context_chars,
                allow_overlap=self.config.normalizer.allow_overlap,
            )
        self.normalizer = normalizer
        self.taxonomy = taxonomy or normalizer.taxonomy

        labeling = self.config.labeling
        self.max_spans = max_spans if max_spans is not None else labeling.max_spans
        self.min_confidence = (
            min_confidence if min_confidence is not None else labeling.min_confidence
        )
        self.smart_debounce = (
            smart_debounce if smart_debounce is not None else labeling.smart_debounce
        )

    def cache_key(self, text: str) -> str:
        """Fingerprint by request parameters, taxonomy version and document."""
        return generate_key(
            f"spans:{self.max_spans}",
            f"{self.min_confidence}",
            self.taxonomy.version,
            hash_document(text),
        )

    async def label(
        self,
        text: str,
        bypass_cache: bool = False,
        grapheme_mapper: Optional[GraphemeMapper] = None,
        immediate: bool = False,
        on_request_start: Optional[StartCallback] = None,
    ) -> LabelingOutcome:
        """Label ``text`` and return its normalized highlights.

        ``immediate`` skips the debounce window, as for the first labeling
        of a freshly loaded prompt. ``on_request_start`` is called once the
        request actually goes out.

        Raises:
            TransportError: Or whatever the labeler raises.
        """
        if not isinstance(text, str) or not text.strip():
            return LabelingOutcome(status=OutcomeStatus.SKIPPED, source="empty")

        text = unicodedata.normalize("NFC", text)
        key = self.cache_key(text)

        if self.manager.is_request_in_flight(key):
            logger.debug("Identical labeling request already in flight")
            return LabelingOutcome(status=OutcomeStatus.SKIPPED, cache_key=key)

        self.manager.cancel_current_request("Superseded by a newer labeling request")

        if not bypass_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return LabelingOutcome(
                    status=OutcomeStatus.CACHED,
                    highlights=self._normalize(cached, text, grapheme_mapper),
                    source="cache",
                    cache_key=key,
                )

        request = LabelingRequest(
            text=text,
            max_spans=self.max_spans,
            min_confidence=self.min_confidence,
            taxonomy_version=self.taxonomy.version,
        )

        async def work(token: CancellationToken) -> Any:
            return await self.labeler(request, token)

        debounce_ms = _debounce_for(immediate, text if self.smart_debounce else None)
        try:
            payload = await self.manager.schedule_request(
                key, work, debounce_ms=debounce_ms, on_start=on_request_start
            )
        except CancellationError as exc:
            logger.debug("Labeling request cancelled: %s", exc.reason)
            return LabelingOutcome(status=OutcomeStatus.CANCELLED, cache_key=key)

        spans = _extract_spans(payload)
        self.cache.set(key, spans)
        return LabelingOutcome(
            status=OutcomeStatus.FETCHED,
            highlights=self._normalize(spans, text, grapheme_mapper),
            source="network",
            cache_key=key,
        )

    def _normalize(
        self,
        spans: Tuple[Any, ...],
        text: str,
        grapheme_mapper: Optional[GraphemeMapper],
    ) -> List[Highlight]:
        return self.normalizer.normalize(
            list(spans), text, taxonomy=self.taxonomy, grapheme_mapper=grapheme_mapper
        )

    def cancel(self, reason: str = "Labeling request cancelled") -> bool:
        return self.manager.cancel_current_request(reason)

    def dispose(self) -> None:
        self.manager.dispose()


__all__ = [
    "OutcomeStatus",
    "SuggestionRequest",
    "SuggestionResult",
    "SuggestionOutcome",
    "SuggestionFetcher",
    "SuggestionService",
    "simplify_spans",
    "span_fingerprint",
    "LabelingRequest",
    "LabelingOutcome",
    "SpanLabeler",
    "SpanLabelingService",
]
