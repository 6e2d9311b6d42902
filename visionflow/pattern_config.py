from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash-exp"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"

PROVIDER_ROUTES = ("gemini", "openai")


@dataclass(frozen=True)
class PatternAnalysisConfig:
    provider_route: str = "gemini"
    api_key: str = ""
    model: str = DEFAULT_GEMINI_MODEL
    base_url: str = DEFAULT_GEMINI_BASE_URL
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_jitter: bool = True
    min_confidence: float = 0.25
    temperature: float = 0.25
    max_output_tokens: int = 3072
    top_k: int = 20
    top_p: float = 0.85
    image_max_dimension: int = 1024
    image_quality: int = 85
    persist_results: bool = True
    data_dir: Path = field(default=DEFAULT_DATA_DIR)

    @classmethod
    def from_env(cls) -> "PatternAnalysisConfig":
        route = (os.getenv("VISIONFLOW_PROVIDER") or "gemini").strip().lower()
        if route not in PROVIDER_ROUTES:
            route = "gemini"

        if route == "openai":
            api_key = os.getenv("VISIONFLOW_OPENAI_API_KEY", "")
            model = os.getenv("VISIONFLOW_OPENAI_MODEL", "")
            base_url = os.getenv("VISIONFLOW_OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL)
        else:
            api_key = os.getenv("VISIONFLOW_GEMINI_API_KEY", "")
            model = os.getenv("VISIONFLOW_GEMINI_MODEL", DEFAULT_GEMINI_MODEL)
            base_url = os.getenv("VISIONFLOW_GEMINI_BASE_URL", DEFAULT_GEMINI_BASE_URL)

        data_dir_raw = (os.getenv("VISIONFLOW_DATA_DIR") or "").strip()

        return cls(
            provider_route=route,
            api_key=api_key.strip(),
            model=model.strip(),
            base_url=base_url.strip().rstrip("/"),
            timeout_seconds=_parse_positive_float(
                os.getenv("VISIONFLOW_MODEL_TIMEOUT_SECONDS"),
                fallback=30.0,
            ),
            max_retries=_parse_bounded_int(
                os.getenv("VISIONFLOW_MODEL_MAX_RETRIES"),
                fallback=3,
                minimum=1,
                maximum=10,
            ),
            retry_base_delay_seconds=_parse_positive_float(
                os.getenv("VISIONFLOW_RETRY_BASE_DELAY_SECONDS"),
                fallback=1.0,
            ),
            retry_jitter=_parse_bool_env(os.getenv("VISIONFLOW_RETRY_JITTER"), default=True),
            min_confidence=_parse_unit_float(
                os.getenv("VISIONFLOW_PATTERN_MIN_CONFIDENCE"),
                fallback=0.25,
            ),
            temperature=_parse_unit_float(
                os.getenv("VISIONFLOW_PATTERN_TEMPERATURE"),
                fallback=0.25,
                maximum=2.0,
            ),
            max_output_tokens=_parse_bounded_int(
                os.getenv("VISIONFLOW_PATTERN_MAX_TOKENS"),
                fallback=3072,
                minimum=256,
                maximum=65536,
            ),
            top_k=_parse_bounded_int(
                os.getenv("VISIONFLOW_PATTERN_TOP_K"),
                fallback=20,
                minimum=1,
                maximum=200,
            ),
            top_p=_parse_unit_float(os.getenv("VISIONFLOW_PATTERN_TOP_P"), fallback=0.85),
            image_max_dimension=_parse_bounded_int(
                os.getenv("VISIONFLOW_IMAGE_MAX_DIMENSION"),
                fallback=1024,
                minimum=128,
                maximum=4096,
            ),
            image_quality=_parse_bounded_int(
                os.getenv("VISIONFLOW_IMAGE_QUALITY"),
                fallback=85,
                minimum=10,
                maximum=100,
            ),
            persist_results=_parse_bool_env(os.getenv("VISIONFLOW_PERSIST_RESULTS"), default=True),
            data_dir=Path(data_dir_raw) if data_dir_raw else DEFAULT_DATA_DIR,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.model)


def _parse_positive_float(raw_value: str | None, *, fallback: float) -> float:
    if raw_value is None:
        return fallback
    try:
        parsed = float(raw_value)
    except Exception:
        return fallback
    if parsed <= 0:
        return fallback
    return parsed


def _parse_unit_float(raw_value: str | None, *, fallback: float, maximum: float = 1.0) -> float:
    if raw_value is None:
        return fallback
    try:
        parsed = float(raw_value)
    except Exception:
        return fallback
    if parsed < 0 or parsed > maximum:
        return fallback
    return parsed


def _parse_bounded_int(raw_value: str | None, *, fallback: int, minimum: int, maximum: int) -> int:
    if raw_value is None:
        return fallback
    try:
        parsed = int(raw_value)
    except Exception:
        return fallback
    return max(minimum, min(maximum, parsed))


def _parse_bool_env(raw_value: str | None, *, default: bool) -> bool:
    if raw_value is None:
        return default
    value = raw_value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default
