"""Bounded retry with exponential backoff around a single model call.

Only transient provider failures are retried. Authentication and
configuration problems surface at once as ``ConfigurationError``; running out
of attempts surfaces ``ModelUnavailableError`` chained from the last failure.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable

from .pattern_config import PatternAnalysisConfig
from .pattern_errors import ConfigurationError, ModelUnavailableError
from .pattern_providers import (
    ProviderAuthError,
    ProviderResult,
    ProviderServiceError,
    ProviderTimeoutError,
    VisionProviderError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter: bool = True

    @classmethod
    def from_config(cls, config: PatternAnalysisConfig) -> "RetryConfig":
        return cls(
            max_attempts=max(1, config.max_retries),
            base_delay_seconds=config.retry_base_delay_seconds,
            jitter=config.retry_jitter,
        )

    def delay_for_attempt(self, attempt: int, *, rng: Callable[[], float] = random.random) -> float:
        """Delay to wait after 0-indexed ``attempt`` failed: ``base * 2**attempt``."""
        delay = min(self.base_delay_seconds * (2 ** attempt), self.max_delay_seconds)
        if self.jitter:
            delay = delay * (0.5 + rng())
        return delay


@dataclass(frozen=True)
class ModelRequest:
    system_prompt: str
    user_prompt: str
    image_bytes: bytes
    schema_hint: dict[str, Any] | None = None
    image_media_type: str = "image/jpeg"


class RetryingInvoker:
    def __init__(
        self,
        provider: Any,
        *,
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep

    def invoke(self, request: ModelRequest) -> ProviderResult:
        max_attempts = max(1, self.retry_config.max_attempts)
        last_error: Exception | None = None

        for attempt in range(max_attempts):
            try:
                return self.provider.invoke(
                    system_prompt=request.system_prompt,
                    user_prompt=request.user_prompt,
                    image_bytes=request.image_bytes,
                    schema_hint=request.schema_hint,
                    image_media_type=request.image_media_type,
                )
            except ProviderAuthError as exc:
                logger.error("Model call rejected credentials, not retrying: %s", exc)
                raise ConfigurationError(str(exc)) from exc
            except (ProviderTimeoutError, ProviderServiceError) as exc:
                last_error = exc
                if isinstance(exc, ProviderServiceError) and not exc.retryable:
                    logger.error("Model call failed with a non-transient error: %s", exc)
                    raise ModelUnavailableError(
                        f"Model request failed: {exc}",
                        attempts=attempt + 1,
                        last_error=exc,
                    ) from exc
                if attempt == max_attempts - 1:
                    break
                delay = self.retry_config.delay_for_attempt(attempt)
                logger.warning(
                    "Model call attempt %s/%s failed (%s: %s); retrying in %.2fs",
                    attempt + 1,
                    max_attempts,
                    type(exc).__name__,
                    exc,
                    delay,
                )
                self._sleep(delay)
            except VisionProviderError as exc:
                raise ModelUnavailableError(
                    f"Model request could not be sent: {exc}",
                    attempts=attempt + 1,
                    last_error=exc,
                ) from exc

        logger.error("All %s model call attempts failed: %s", max_attempts, last_error)
        raise ModelUnavailableError(
            f"Model unavailable after {max_attempts} attempts: {last_error}",
            attempts=max_attempts,
            last_error=last_error,
        ) from last_error
