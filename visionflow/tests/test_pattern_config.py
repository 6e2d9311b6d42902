from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from visionflow.pattern_config import (  # noqa: E402
    DEFAULT_DATA_DIR,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_OPENAI_BASE_URL,
    PatternAnalysisConfig,
)

_ENV_NAMES = (
    "VISIONFLOW_PROVIDER",
    "VISIONFLOW_GEMINI_API_KEY",
    "VISIONFLOW_GEMINI_MODEL",
    "VISIONFLOW_GEMINI_BASE_URL",
    "VISIONFLOW_OPENAI_API_KEY",
    "VISIONFLOW_OPENAI_MODEL",
    "VISIONFLOW_OPENAI_BASE_URL",
    "VISIONFLOW_MODEL_TIMEOUT_SECONDS",
    "VISIONFLOW_MODEL_MAX_RETRIES",
    "VISIONFLOW_RETRY_BASE_DELAY_SECONDS",
    "VISIONFLOW_RETRY_JITTER",
    "VISIONFLOW_PATTERN_MIN_CONFIDENCE",
    "VISIONFLOW_PATTERN_TEMPERATURE",
    "VISIONFLOW_PATTERN_MAX_TOKENS",
    "VISIONFLOW_PATTERN_TOP_K",
    "VISIONFLOW_PATTERN_TOP_P",
    "VISIONFLOW_IMAGE_MAX_DIMENSION",
    "VISIONFLOW_IMAGE_QUALITY",
    "VISIONFLOW_PERSIST_RESULTS",
    "VISIONFLOW_DATA_DIR",
)


def _clear_env(monkeypatch):
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment(monkeypatch):
    _clear_env(monkeypatch)
    config = PatternAnalysisConfig.from_env()

    assert config.provider_route == "gemini"
    assert config.model == DEFAULT_GEMINI_MODEL
    assert config.api_key == ""
    assert config.configured is False
    assert config.timeout_seconds == 30.0
    assert config.max_retries == 3
    assert config.min_confidence == 0.25
    assert config.temperature == 0.25
    assert config.max_output_tokens == 3072
    assert config.top_k == 20
    assert config.top_p == 0.85
    assert config.image_max_dimension == 1024
    assert config.image_quality == 85
    assert config.persist_results is True
    assert config.data_dir == DEFAULT_DATA_DIR


def test_gemini_settings_from_environment(monkeypatch, tmp_path):
    _clear_env(monkeypatch)
    monkeypatch.setenv("VISIONFLOW_GEMINI_API_KEY", " key-123 ")
    monkeypatch.setenv("VISIONFLOW_GEMINI_BASE_URL", "https://proxy.test/v1beta/")
    monkeypatch.setenv("VISIONFLOW_MODEL_MAX_RETRIES", "5")
    monkeypatch.setenv("VISIONFLOW_RETRY_JITTER", "off")
    monkeypatch.setenv("VISIONFLOW_PATTERN_MIN_CONFIDENCE", "0.4")
    monkeypatch.setenv("VISIONFLOW_PERSIST_RESULTS", "no")
    monkeypatch.setenv("VISIONFLOW_DATA_DIR", str(tmp_path))

    config = PatternAnalysisConfig.from_env()

    assert config.api_key == "key-123"
    assert config.base_url == "https://proxy.test/v1beta"
    assert config.configured is True
    assert config.max_retries == 5
    assert config.retry_jitter is False
    assert config.min_confidence == 0.4
    assert config.persist_results is False
    assert config.data_dir == tmp_path


def test_openai_route_reads_openai_variables(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("VISIONFLOW_PROVIDER", "OpenAI")
    monkeypatch.setenv("VISIONFLOW_OPENAI_API_KEY", "sk-1")
    monkeypatch.setenv("VISIONFLOW_OPENAI_MODEL", "gpt-4o-mini")

    config = PatternAnalysisConfig.from_env()

    assert config.provider_route == "openai"
    assert config.model == "gpt-4o-mini"
    assert config.base_url == DEFAULT_OPENAI_BASE_URL
    assert config.configured is True


def test_invalid_values_fall_back_or_clamp(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("VISIONFLOW_PROVIDER", "anthropic")
    monkeypatch.setenv("VISIONFLOW_MODEL_TIMEOUT_SECONDS", "-4")
    monkeypatch.setenv("VISIONFLOW_MODEL_MAX_RETRIES", "99")
    monkeypatch.setenv("VISIONFLOW_PATTERN_MIN_CONFIDENCE", "1.7")
    monkeypatch.setenv("VISIONFLOW_PATTERN_TOP_K", "abc")
    monkeypatch.setenv("VISIONFLOW_RETRY_JITTER", "maybe")

    config = PatternAnalysisConfig.from_env()

    assert config.provider_route == "gemini"
    assert config.timeout_seconds == 30.0
    assert config.max_retries == 10
    assert config.min_confidence == 0.25
    assert config.top_k == 20
    assert config.retry_jitter is True
