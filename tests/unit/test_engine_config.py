"""Tests for layered engine configuration loading (defaults -> TOML -> env)."""

import logging

import pytest

from prompt_anchor.config import (
    CacheConfig,
    EngineConfig,
    LabelingConfig,
    NormalizerConfig,
    SchedulerConfig,
    get_config,
    set_config,
)


FULL_TOML = """
[logging]
level = "debug"
format = "human"

[scheduler]
debounce_ms = 50
timeout_ms = 2500

[cache]
ttl_ms = 1000
max_entries = 5

[normalizer]
context_chars = 8
allow_overlap = true

[resolver]
fuzzy_threshold = 0.9

[suggestions]
context_chars = 200

[labeling]
max_spans = 25
min_confidence = 0.7
smart_debounce = false
"""


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run from an empty directory so no stray config file is picked up."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestDefaults:
    def test_defaults_without_file_or_env(self, workdir):
        config = EngineConfig.from_env()
        assert config.log_level == "INFO"
        assert config.log_format == "structured"
        assert config.scheduler == SchedulerConfig(debounce_ms=150.0, timeout_ms=None)
        assert config.cache == CacheConfig(ttl_ms=300000, max_entries=100)
        assert config.normalizer == NormalizerConfig(context_chars=20, allow_overlap=False)
        assert config.resolver.fuzzy_threshold == 0.8
        assert config.suggestion_context_chars == 1000
        assert config.labeling == LabelingConfig(max_spans=60, min_confidence=0.5, smart_debounce=True)


class TestTomlLoading:
    """Values from prompt-anchor.toml."""

    def test_explicit_file(self, workdir):
        path = workdir / "custom.toml"
        path.write_text(FULL_TOML)

        config = EngineConfig.from_env(str(path))

        assert config.log_level == "DEBUG"
        assert config.log_format == "human"
        assert config.scheduler.debounce_ms == 50
        assert config.scheduler.timeout_ms == 2500
        assert (config.cache.ttl_ms, config.cache.max_entries) == (1000, 5)
        assert config.normalizer.context_chars == 8
        assert config.normalizer.allow_overlap is True
        assert config.resolver.fuzzy_threshold == 0.9
        assert config.suggestion_context_chars == 200
        assert config.labeling == LabelingConfig(max_spans=25, min_confidence=0.7, smart_debounce=False)

    def test_default_file_discovered_in_cwd(self, workdir):
        (workdir / "prompt-anchor.toml").write_text("[cache]\nmax_entries = 7\n")
        assert EngineConfig.from_env().cache.max_entries == 7

    def test_hidden_default_file(self, workdir):
        (workdir / ".prompt-anchor.toml").write_text("[scheduler]\ndebounce_ms = 10\n")
        assert EngineConfig.from_env().scheduler.debounce_ms == 10

    def test_config_file_env_var(self, workdir, monkeypatch):
        path = workdir / "elsewhere.toml"
        path.write_text("[resolver]\nfuzzy_threshold = 0.7\n")
        monkeypatch.setenv("PROMPT_ANCHOR_CONFIG_FILE", str(path))
        assert EngineConfig.from_env().resolver.fuzzy_threshold == 0.7

    def test_missing_file_keeps_defaults(self, workdir, caplog):
        with caplog.at_level(logging.WARNING, logger="prompt_anchor"):
            config = EngineConfig.from_env(str(workdir / "nope.toml"))
        assert config.cache.max_entries == 100
        assert "Config file not found" in caplog.text

    def test_malformed_toml_keeps_defaults(self, workdir, caplog):
        path = workdir / "broken.toml"
        path.write_text("[cache\nmax_entries = ")
        with caplog.at_level(logging.ERROR, logger="prompt_anchor"):
            config = EngineConfig.from_env(str(path))
        assert config.cache.max_entries == 100
        assert "Failed to load config" in caplog.text

    def test_zero_timeout_disables_budget(self, workdir):
        path = workdir / "t.toml"
        path.write_text("[scheduler]\ntimeout_ms = 0\n")
        assert EngineConfig.from_env(str(path)).scheduler.timeout_ms is None

    @pytest.mark.parametrize(
        "section, body",
        [
            ("cache", "max_entries = 0"),
            ("cache", 'ttl_ms = "soon"'),
            ("normalizer", "context_chars = -3"),
            ("resolver", "fuzzy_threshold = 1.5"),
            ("labeling", "max_spans = 0"),
            ("labeling", "min_confidence = 1.2"),
        ],
    )
    def test_invalid_values_keep_defaults(self, workdir, section, body):
        path = workdir / "bad.toml"
        path.write_text(f"[{section}]\n{body}\n")
        config = EngineConfig.from_env(str(path))
        assert config == EngineConfig()

    def test_unknown_log_format_falls_back(self, workdir):
        path = workdir / "fmt.toml"
        path.write_text('[logging]\nformat = "xml"\n')
        assert EngineConfig.from_env(str(path)).log_format == "structured"


class TestEnvironmentOverrides:
    """PROMPT_ANCHOR_* variables take precedence over the file."""

    def test_env_beats_toml(self, workdir, monkeypatch):
        path = workdir / "custom.toml"
        path.write_text(FULL_TOML)
        monkeypatch.setenv("PROMPT_ANCHOR_LOG_LEVEL", "warning")
        monkeypatch.setenv("PROMPT_ANCHOR_DEBOUNCE_MS", "0")
        monkeypatch.setenv("PROMPT_ANCHOR_CACHE_MAX_ENTRIES", "42")
        monkeypatch.setenv("PROMPT_ANCHOR_ALLOW_OVERLAP", "no")

        config = EngineConfig.from_env(str(path))

        assert config.log_level == "WARNING"
        assert config.log_format == "human"
        assert config.scheduler.debounce_ms == 0
        assert config.cache.max_entries == 42
        assert config.normalizer.allow_overlap is False

    def test_every_variable(self, workdir, monkeypatch):
        env = {
            "PROMPT_ANCHOR_LOG_FORMAT": "human",
            "PROMPT_ANCHOR_REQUEST_TIMEOUT_MS": "1500",
            "PROMPT_ANCHOR_CACHE_TTL_MS": "60000",
            "PROMPT_ANCHOR_CONTEXT_CHARS": "12",
            "PROMPT_ANCHOR_FUZZY_THRESHOLD": "0.85",
            "PROMPT_ANCHOR_SUGGESTION_CONTEXT_CHARS": "300",
            "PROMPT_ANCHOR_MAX_SPANS": "12",
            "PROMPT_ANCHOR_MIN_CONFIDENCE": "0.25",
            "PROMPT_ANCHOR_SMART_DEBOUNCE": "off",
        }
        for name, value in env.items():
            monkeypatch.setenv(name, value)

        config = EngineConfig.from_env()

        assert config.log_format == "human"
        assert config.scheduler.timeout_ms == 1500
        assert config.cache.ttl_ms == 60000
        assert config.normalizer.context_chars == 12
        assert config.resolver.fuzzy_threshold == 0.85
        assert config.suggestion_context_chars == 300
        assert config.labeling == LabelingConfig(max_spans=12, min_confidence=0.25, smart_debounce=False)

    def test_invalid_env_value_logged_and_ignored(self, workdir, monkeypatch, caplog):
        monkeypatch.setenv("PROMPT_ANCHOR_CACHE_TTL_MS", "forever")
        with caplog.at_level(logging.WARNING, logger="prompt_anchor"):
            config = EngineConfig.from_env()
        assert config.cache.ttl_ms == 300000
        assert "CACHE_TTL_MS" in caplog.text


class TestGlobalConfig:
    def test_get_config_is_cached(self, workdir):
        assert get_config() is get_config()

    def test_set_config_overrides_and_resets(self, workdir):
        custom = EngineConfig(log_level="DEBUG")
        set_config(custom)
        assert get_config() is custom
        set_config(None)
        assert get_config() is not custom

    def test_setup_logging_uses_level_and_format(self, workdir):
        logger = EngineConfig(log_level="ERROR", log_format="human").setup_logging()
        assert logger.level == logging.ERROR
        assert len(logger.handlers) == 1
