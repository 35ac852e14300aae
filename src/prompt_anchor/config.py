"""
Engine configuration for prompt-anchor.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (prompt-anchor.toml)
3. Default values (lowest priority)

Environment variables:
- PROMPT_ANCHOR_CONFIG_FILE: Path to TOML config file
- PROMPT_ANCHOR_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- PROMPT_ANCHOR_LOG_FORMAT: "structured" (JSON lines) or "human"
- PROMPT_ANCHOR_DEBOUNCE_MS: Trailing-edge debounce before a request starts
- PROMPT_ANCHOR_REQUEST_TIMEOUT_MS: Per-request budget once in flight (0 disables)
- PROMPT_ANCHOR_CACHE_TTL_MS: Result cache entry lifetime
- PROMPT_ANCHOR_CACHE_MAX_ENTRIES: Result cache capacity
- PROMPT_ANCHOR_CONTEXT_CHARS: Context window captured around highlights
- PROMPT_ANCHOR_ALLOW_OVERLAP: Keep overlapping highlights of different categories
- PROMPT_ANCHOR_FUZZY_THRESHOLD: Minimum similarity for fuzzy anchor matches
- PROMPT_ANCHOR_SUGGESTION_CONTEXT_CHARS: Prompt context sent with suggestion requests
- PROMPT_ANCHOR_MAX_SPANS: Span budget sent with labeling requests
- PROMPT_ANCHOR_MIN_CONFIDENCE: Confidence floor sent with labeling requests
- PROMPT_ANCHOR_SMART_DEBOUNCE: Scale the labeling debounce with text length

Example prompt-anchor.toml:

    [logging]
    level = "DEBUG"
    format = "human"

    [scheduler]
    debounce_ms = 150
    timeout_ms = 5000

    [cache]
    ttl_ms = 300000
    max_entries = 100

    [normalizer]
    context_chars = 20
    allow_overlap = false

    [resolver]
    fuzzy_threshold = 0.8

    [suggestions]
    context_chars = 1000

    [labeling]
    max_spans = 60
    min_confidence = 0.5
    smart_debounce = true
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from prompt_anchor.core.anchors import DEFAULT_MIN_SIMILARITY
from prompt_anchor.core.cache import DEFAULT_MAX_ENTRIES, DEFAULT_TTL_MS
from prompt_anchor.core.lifecycle import DEFAULT_DEBOUNCE_MS
from prompt_anchor.core.logging_config import configure_logging
from prompt_anchor.core.spans import (
    DEFAULT_CONTEXT_CHARS,
    DEFAULT_MAX_SPANS,
    DEFAULT_MIN_CONFIDENCE,
)
from prompt_anchor.core.suggestions import DEFAULT_SUGGESTION_CONTEXT_CHARS

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENV_PREFIX = "PROMPT_ANCHOR_"
DEFAULT_CONFIG_FILES = ("prompt-anchor.toml", ".prompt-anchor.toml")
_VALID_LOG_FORMATS = {"structured", "human"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _coerce(
    name: str,
    value: Any,
    cast: Callable[[Any], T],
    default: T,
    check: Optional[Callable[[T], bool]] = None,
) -> T:
    """Cast a config value, logging and keeping ``default`` when it is invalid."""
    try:
        result = cast(value)
    except (TypeError, ValueError):
        logger.warning("Invalid value for %s: %r. Using %r", name, value, default)
        return default
    if check is not None and not check(result):
        logger.warning("Out-of-range value for %s: %r. Using %r", name, value, default)
        return default
    return result


def _positive(value: float) -> bool:
    return value > 0


def _non_negative(value: float) -> bool:
    return value >= 0


def _unit_interval(value: float) -> bool:
    return 0.0 <= value <= 1.0


@dataclass
class SchedulerConfig:
    """Request lifecycle settings.

    Attributes:
        debounce_ms: Quiet period before the latest request starts
        timeout_ms: Budget for a request once in flight; None disables it
    """

    debounce_ms: float = DEFAULT_DEBOUNCE_MS
    timeout_ms: Optional[float] = None

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "SchedulerConfig":
        """Create config from TOML dict (typically [scheduler] section)."""
        config = cls()
        if "debounce_ms" in data:
            config.debounce_ms = _coerce(
                "scheduler.debounce_ms", data["debounce_ms"], float, config.debounce_ms, _non_negative
            )
        if "timeout_ms" in data:
            config.timeout_ms = _parse_timeout("scheduler.timeout_ms", data["timeout_ms"])
        return config


def _parse_timeout(name: str, value: Any) -> Optional[float]:
    timeout = _coerce(name, value, float, 0.0, _non_negative)
    return timeout if timeout > 0 else None


@dataclass
class CacheConfig:
    """Result cache settings.

    Attributes:
        ttl_ms: Entry lifetime in milliseconds
        max_entries: Capacity before insertion-order eviction
    """

    ttl_ms: float = DEFAULT_TTL_MS
    max_entries: int = DEFAULT_MAX_ENTRIES

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        """Create config from TOML dict (typically [cache] section)."""
        config = cls()
        if "ttl_ms" in data:
            config.ttl_ms = _coerce("cache.ttl_ms", data["ttl_ms"], float, config.ttl_ms, _positive)
        if "max_entries" in data:
            config.max_entries = _coerce(
                "cache.max_entries", data["max_entries"], int, config.max_entries, _positive
            )
        return config


@dataclass
class NormalizerConfig:
    """Span normalization settings."""

    context_chars: int = DEFAULT_CONTEXT_CHARS
    allow_overlap: bool = False

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "NormalizerConfig":
        """Create config from TOML dict (typically [normalizer] section)."""
        config = cls()
        if "context_chars" in data:
            config.context_chars = _coerce(
                "normalizer.context_chars", data["context_chars"], int, config.context_chars, _non_negative
            )
        if "allow_overlap" in data:
            config.allow_overlap = _parse_bool(data["allow_overlap"])
        return config


@dataclass
class ResolverConfig:
    """Anchor resolution settings.

    Attributes:
        fuzzy_threshold: Minimum similarity for a fuzzy match, in (0, 1]
    """

    fuzzy_threshold: float = DEFAULT_MIN_SIMILARITY

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ResolverConfig":
        """Create config from TOML dict (typically [resolver] section)."""
        config = cls()
        if "fuzzy_threshold" in data:
            config.fuzzy_threshold = _coerce(
                "resolver.fuzzy_threshold",
                data["fuzzy_threshold"],
                float,
                config.fuzzy_threshold,
                lambda v: 0.0 < v <= 1.0,
            )
        return config


@dataclass
class LabelingConfig:
    """Span labeling request settings.

    Attributes:
        max_spans: Most spans the labeler is asked to return
        min_confidence: Lowest confidence the labeler should report, in [0, 1]
        smart_debounce: Pick the debounce window from the text length instead
            of the scheduler's fixed window
    """

    max_spans: int = DEFAULT_MAX_SPANS
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    smart_debounce: bool = True

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "LabelingConfig":
        """Create config from TOML dict (typically [labeling] section)."""
        config = cls()
        if "max_spans" in data:
            config.max_spans = _coerce(
                "labeling.max_spans", data["max_spans"], int, config.max_spans, _positive
            )
        if "min_confidence" in data:
            config.min_confidence = _coerce(
                "labeling.min_confidence",
                data["min_confidence"],
                float,
                config.min_confidence,
                _unit_interval,
            )
        if "smart_debounce" in data:
            config.smart_debounce = _parse_bool(data["smart_debounce"])
        return config


@dataclass
class EngineConfig:
    """Engine configuration with support for env vars and TOML overrides."""

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "structured"

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    labeling: LabelingConfig = field(default_factory=LabelingConfig)

    # Prompt text sent on each side of a highlight when fetching suggestions
    suggestion_context_chars: int = DEFAULT_SUGGESTION_CONTEXT_CHARS

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "EngineConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            for default_path in DEFAULT_CONFIG_FILES:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        config._load_env()
        return config

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning("Config file not found: %s", path)
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error("Failed to load config from %s: %s", path, e)
            return

        if "logging" in data:
            log = data["logging"]
            if "level" in log:
                self.log_level = str(log["level"]).upper()
            if "format" in log:
                self.log_format = self._normalize_log_format(log["format"])

        if "scheduler" in data:
            self.scheduler = SchedulerConfig.from_toml_dict(data["scheduler"])
        if "cache" in data:
            self.cache = CacheConfig.from_toml_dict(data["cache"])
        if "normalizer" in data:
            self.normalizer = NormalizerConfig.from_toml_dict(data["normalizer"])
        if "resolver" in data:
            self.resolver = ResolverConfig.from_toml_dict(data["resolver"])
        if "labeling" in data:
            self.labeling = LabelingConfig.from_toml_dict(data["labeling"])
        if "suggestions" in data and "context_chars" in data["suggestions"]:
            self.suggestion_context_chars = _coerce(
                "suggestions.context_chars",
                data["suggestions"]["context_chars"],
                int,
                self.suggestion_context_chars,
                _non_negative,
            )

        logger.debug("Loaded configuration from %s", path)

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        env = os.environ

        if level := env.get(f"{ENV_PREFIX}LOG_LEVEL"):
            self.log_level = level.upper()
        if log_format := env.get(f"{ENV_PREFIX}LOG_FORMAT"):
            self.log_format = self._normalize_log_format(log_format)

        if debounce := env.get(f"{ENV_PREFIX}DEBOUNCE_MS"):
            self.scheduler.debounce_ms = _coerce(
                "DEBOUNCE_MS", debounce, float, self.scheduler.debounce_ms, _non_negative
            )
        if timeout := env.get(f"{ENV_PREFIX}REQUEST_TIMEOUT_MS"):
            self.scheduler.timeout_ms = _parse_timeout("REQUEST_TIMEOUT_MS", timeout)

        if ttl := env.get(f"{ENV_PREFIX}CACHE_TTL_MS"):
            self.cache.ttl_ms = _coerce("CACHE_TTL_MS", ttl, float, self.cache.ttl_ms, _positive)
        if max_entries := env.get(f"{ENV_PREFIX}CACHE_MAX_ENTRIES"):
            self.cache.max_entries = _coerce(
                "CACHE_MAX_ENTRIES", max_entries, int, self.cache.max_entries, _positive
            )

        if context_chars := env.get(f"{ENV_PREFIX}CONTEXT_CHARS"):
            self.normalizer.context_chars = _coerce(
                "CONTEXT_CHARS", context_chars, int, self.normalizer.context_chars, _non_negative
            )
        if allow_overlap := env.get(f"{ENV_PREFIX}ALLOW_OVERLAP"):
            self.normalizer.allow_overlap = _parse_bool(allow_overlap)

        if threshold := env.get(f"{ENV_PREFIX}FUZZY_THRESHOLD"):
            self.resolver.fuzzy_threshold = _coerce(
                "FUZZY_THRESHOLD",
                threshold,
                float,
                self.resolver.fuzzy_threshold,
                lambda v: 0.0 < v <= 1.0,
            )

        if suggestion_chars := env.get(f"{ENV_PREFIX}SUGGESTION_CONTEXT_CHARS"):
            self.suggestion_context_chars = _coerce(
                "SUGGESTION_CONTEXT_CHARS",
                suggestion_chars,
                int,
                self.suggestion_context_chars,
                _non_negative,
            )

        if max_spans := env.get(f"{ENV_PREFIX}MAX_SPANS"):
            self.labeling.max_spans = _coerce(
                "MAX_SPANS", max_spans, int, self.labeling.max_spans, _positive
            )
        if min_confidence := env.get(f"{ENV_PREFIX}MIN_CONFIDENCE"):
            self.labeling.min_confidence = _coerce(
                "MIN_CONFIDENCE",
                min_confidence,
                float,
                self.labeling.min_confidence,
                _unit_interval,
            )
        if smart_debounce := env.get(f"{ENV_PREFIX}SMART_DEBOUNCE"):
            self.labeling.smart_debounce = _parse_bool(smart_debounce)

    @staticmethod
    def _normalize_log_format(value: Any) -> str:
        normalized = str(value).strip().lower()
        if normalized not in _VALID_LOG_FORMATS:
            logger.warning(
                "Invalid log format '%s'. Falling back to 'structured'. Valid options: %s",
                value,
                ", ".join(sorted(_VALID_LOG_FORMATS)),
            )
            return "structured"
        return normalized

    def setup_logging(self) -> logging.Logger:
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level, logging.INFO)
        return configure_logging(level=level, format=self.log_format)


# Global configuration instance
_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get the process-wide default configuration."""
    global _config
    if _config is None:
        _config = EngineConfig.from_env()
    return _config


def set_config(config: Optional[EngineConfig]) -> None:
    """Set (or with None, reset) the process-wide default configuration."""
    global _config
    _config = config
