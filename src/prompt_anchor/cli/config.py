"""CLI configuration.

Resolves the engine configuration and taxonomy a command runs with,
leveraging the shared prompt_anchor.config module.
"""

import json
from pathlib import Path
from typing import Optional

from prompt_anchor.config import EngineConfig, get_config
from prompt_anchor.core.anchors import AnchorResolver
from prompt_anchor.core.cache import ResultCache
from prompt_anchor.core.spans import SpanNormalizer
from prompt_anchor.core.taxonomy import DEFAULT_TAXONOMY, Taxonomy


class CLIContext:
    """CLI execution context with resolved configuration.

    Holds the effective configuration for a CLI command, including
    any overrides from command-line options.
    """

    def __init__(
        self,
        config_file: Optional[str] = None,
        taxonomy_file: Optional[str] = None,
        engine_config: Optional[EngineConfig] = None,
    ):
        """Initialize CLI context.

        Args:
            config_file: Explicit TOML config path from --config.
            taxonomy_file: JSON taxonomy path from --taxonomy-file.
            engine_config: Optional config (uses global if not provided).
        """
        if engine_config is not None:
            self._config = engine_config
        elif config_file:
            self._config = EngineConfig.from_env(config_file)
        else:
            self._config = get_config()
        self._taxonomy_file = taxonomy_file
        self._taxonomy: Optional[Taxonomy] = None

    @property
    def config(self) -> EngineConfig:
        """Get the underlying engine configuration."""
        return self._config

    @property
    def taxonomy(self) -> Taxonomy:
        """Get the taxonomy, loading --taxonomy-file on first use.

        Raises:
            FileNotFoundError: If the taxonomy file does not exist.
            ValueError: If the taxonomy file is not valid taxonomy JSON.
        """
        if self._taxonomy is not None:
            return self._taxonomy
        if not self._taxonomy_file:
            self._taxonomy = DEFAULT_TAXONOMY
            return self._taxonomy

        data = json.loads(Path(self._taxonomy_file).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("Taxonomy file must contain a JSON object")
        self._taxonomy = Taxonomy.from_dict(data)
        return self._taxonomy

    def normalizer(self, allow_overlap: Optional[bool] = None) -> SpanNormalizer:
        settings = self._config.normalizer
        return SpanNormalizer(
            taxonomy=self.taxonomy,
            context_chars=settings.context_chars,
            allow_overlap=settings.allow_overlap if allow_overlap is None else allow_overlap,
        )

    def resolver(self) -> AnchorResolver:
        return AnchorResolver(min_similarity=self._config.resolver.fuzzy_threshold)

    def cache(self) -> ResultCache:
        return ResultCache(
            ttl_ms=self._config.cache.ttl_ms,
            max_entries=self._config.cache.max_entries,
        )


def create_context(
    config_file: Optional[str] = None,
    taxonomy_file: Optional[str] = None,
) -> CLIContext:
    """Create a CLI context with optional overrides."""
    return CLIContext(config_file=config_file, taxonomy_file=taxonomy_file)
