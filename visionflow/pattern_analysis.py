from __future__ import annotations

import logging
import time
from typing import Any, Callable

from .pattern_config import PatternAnalysisConfig
from .pattern_images import PillowImagePrep, PreparedImage
from .pattern_invoker import ModelRequest, RetryConfig, RetryingInvoker
from .pattern_models import (
    AnalysisMetadata,
    AnalysisResult,
    PatternDomain,
    PatternType,
)
from .pattern_parsing import parse_model_response, require_analysis_shape
from .pattern_providers import build_provider
from .pattern_quality import QualityGate
from .pattern_validation import (
    VALID_COMPLEXITIES,
    VALID_DOMAINS,
    VALID_SCALES,
    validate_content_area,
    validate_insights,
    validate_pattern_record,
)

logger = logging.getLogger(__name__)

PATTERN_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "contentArea": {
            "type": "OBJECT",
            "properties": {
                "topLeftX": {"type": "NUMBER"},
                "topLeftY": {"type": "NUMBER"},
                "bottomRightX": {"type": "NUMBER"},
                "bottomRightY": {"type": "NUMBER"},
                "confidence": {"type": "NUMBER"},
                "detectedArtifacts": {"type": "ARRAY", "items": {"type": "STRING"}},
            },
            "required": ["topLeftX", "topLeftY", "bottomRightX", "bottomRightY", "confidence", "detectedArtifacts"],
        },
        "patterns": {
            "type": "ARRAY",
            "description": "1-3 most prominent patterns detected",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "type": {"type": "STRING", "enum": [member.value for member in PatternType]},
                    "subtype": {"type": "STRING"},
                    "name": {"type": "STRING"},
                    "confidence": {"type": "NUMBER"},
                    "anchors": {
                        "type": "ARRAY",
                        "items": {
                            "type": "OBJECT",
                            "properties": {"x": {"type": "NUMBER"}, "y": {"type": "NUMBER"}},
                            "required": ["x", "y"],
                        },
                    },
                    "measurements": {
                        "type": "OBJECT",
                        "properties": {
                            "goldenRatio": {"type": "NUMBER"},
                            "angles": {"type": "ARRAY", "items": {"type": "NUMBER"}},
                            "fibonacciRatios": {"type": "ARRAY", "items": {"type": "NUMBER"}},
                            "symmetryAxes": {"type": "NUMBER"},
                            "nodeCount": {"type": "NUMBER"},
                            "aspectRatio": {"type": "NUMBER"},
                            "waveCount": {"type": "NUMBER"},
                            "retracement": {"type": "NUMBER"},
                            "fractalDimension": {"type": "NUMBER"},
                            "petalCount": {"type": "NUMBER"},
                            "vanishingPoints": {"type": "NUMBER"},
                        },
                    },
                    "overlaySteps": {"type": "ARRAY", "items": {"type": "STRING"}},
                    "domain": {"type": "STRING", "enum": sorted(VALID_DOMAINS)},
                    "scale": {"type": "STRING", "enum": sorted(VALID_SCALES)},
                    "orientation": {"type": "NUMBER"},
                },
                "required": [
                    "type",
                    "name",
                    "confidence",
                    "anchors",
                    "measurements",
                    "overlaySteps",
                    "domain",
                    "scale",
                    "orientation",
                ],
            },
        },
        "insights": {
            "type": "OBJECT",
            "properties": {
                "explanation": {"type": "STRING"},
                "secretMessage": {"type": "STRING"},
                "shareCaption": {"type": "STRING"},
                "mathematicalContext": {"type": "STRING"},
                "culturalContext": {"type": "STRING"},
                "primaryDomain": {"type": "STRING", "enum": sorted(VALID_DOMAINS)},
                "patternComplexity": {"type": "STRING", "enum": sorted(VALID_COMPLEXITIES)},
                "suggestedActions": {"type": "ARRAY", "items": {"type": "STRING"}},
            },
            "required": ["explanation", "secretMessage", "shareCaption", "primaryDomain", "patternComplexity"],
        },
    },
    "required": ["contentArea", "patterns", "insights"],
}


def build_pattern_system_prompt() -> str:
    type_values = ", ".join(member.value for member in PatternType)
    domain_values = "|".join(sorted(VALID_DOMAINS))
    return (
        "You are a multi-domain visual pattern analyst covering financial charts, "
        "sacred and mathematical geometry, natural forms, artistic composition and architecture.\n\n"
        "Step 1 - content area. Find the region that holds the real content and ignore UI chrome: "
        "borders, browser toolbars, watermarks, status bars and screenshot artifacts. "
        "Report it as percentages (0-100) of the full image in contentArea, list what you excluded in "
        "detectedArtifacts, and give a 0-1 confidence. If unsure, use (0, 0) to (100, 100) with confidence 0.5.\n\n"
        "Step 2 - patterns. Inside the content area, look at macro, meso and micro scale and report the "
        "1-3 most prominent patterns.\n"
        f"- type must be exactly one of: {type_values}. Put the specific variant "
        "(e.g. impulse_wave, logarithmic_spiral, radial_symmetry) in subtype.\n"
        f"- domain: {domain_values}; scale: micro|meso|macro|multi-scale; orientation in degrees 0-360.\n"
        "- anchors are percentages (0-100) of the CONTENT AREA, not the full image: at least 2, "
        "ideally 3-8, never more than 20.\n"
        "- measurements hold numeric values only (ratios, angles, counts).\n"
        "- overlaySteps: 3-5 short instructions that progressively draw the pattern.\n"
        "- confidence: 0.75-1.0 clear and precise, 0.5-0.74 present but noisy, 0.25-0.49 weak; "
        "do not report patterns below 0.25 unless nothing else is found.\n\n"
        "Step 3 - insights. Explain the findings in 2-3 sentences, add a creative secretMessage and an "
        "engaging shareCaption, the primaryDomain, patternComplexity "
        "(simple|moderate|complex|highly_complex) and 0-3 suggestedActions.\n\n"
        "Return ONLY a JSON object with contentArea, patterns and insights. No markdown."
    )


def build_pattern_user_prompt() -> str:
    return (
        "Analyze this image for hidden geometric patterns across finance, nature, art, geometry "
        "and architecture. Detect the content area first, then report patterns with anchors, "
        "measurements, 3-5 overlay steps, domain, scale and orientation, and finish with insights. "
        "Use realistic confidence scores."
    )


def run_validation_pipeline(
    payload: Any,
    *,
    quality_gate: QualityGate,
    model_version: str,
    processing_time_ms: int = 0,
) -> AnalysisResult:
    """Turn one parsed model payload into a fully validated ``AnalysisResult``.

    Only a wrong top-level shape raises (``InvalidStructureError``); every
    field-level deviation is repaired by the stage that owns it.
    """
    shaped = require_analysis_shape(payload)
    content_area = validate_content_area(shaped.get("contentArea"))
    records = [validate_pattern_record(raw_pattern) for raw_pattern in shaped["patterns"]]
    patterns, quality = quality_gate.gate(records)
    insights = validate_insights(
        shaped.get("insights"),
        fallback_domain=patterns[0].domain if patterns else PatternDomain.OTHER,
        pattern_count=len(patterns),
    )
    metadata = AnalysisMetadata(
        processing_time_ms=max(0, int(processing_time_ms)),
        model_version=model_version,
        analysis_quality=quality,
    )
    return AnalysisResult(
        content_area=content_area,
        patterns=patterns,
        insights=insights,
        metadata=metadata,
    )


class PatternAnalysisService:
    def __init__(
        self,
        *,
        config: PatternAnalysisConfig,
        provider: Any | None = None,
        image_prep: Any | None = None,
        invoker: RetryingInvoker | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.config = config
        self.provider = provider or build_provider(config)
        self.image_prep = image_prep or PillowImagePrep(
            max_dimension=config.image_max_dimension,
            quality=config.image_quality,
        )
        self.invoker = invoker or RetryingInvoker(
            self.provider,
            retry_config=RetryConfig.from_config(config),
        )
        self.quality_gate = QualityGate(min_confidence=config.min_confidence)
        self._clock = clock

    def list_providers(self) -> dict[str, Any]:
        return {
            "providers": [self.provider.availability()],
            "default_provider": getattr(self.provider, "route_id", self.config.provider_route),
        }

    def analyze_pattern(self, image_bytes: bytes) -> AnalysisResult:
        started = self._clock()
        prepared: PreparedImage = self.image_prep.prepare(image_bytes)
        logger.info("Prepared %sx%s image for pattern analysis", prepared.width, prepared.height)

        request = ModelRequest(
            system_prompt=build_pattern_system_prompt(),
            user_prompt=build_pattern_user_prompt(),
            image_bytes=prepared.image_bytes,
            schema_hint=PATTERN_RESPONSE_SCHEMA,
            image_media_type=prepared.media_type,
        )
        provider_result = self.invoker.invoke(request)
        payload = parse_model_response(provider_result.text)

        result = run_validation_pipeline(
            payload,
            quality_gate=self.quality_gate,
            model_version=provider_result.model_used or self.config.model,
            processing_time_ms=int(round((self._clock() - started) * 1000)),
        )
        _log_result_summary(result)
        return result


def _log_result_summary(result: AnalysisResult) -> None:
    area = result.content_area
    logger.info(
        "Pattern analysis complete: content area (%.1f, %.1f) -> (%.1f, %.1f), %s patterns, quality %s",
        area.top_left_x,
        area.top_left_y,
        area.bottom_right_x,
        area.bottom_right_y,
        len(result.patterns),
        result.metadata.analysis_quality.value,
    )
    if area.detected_artifacts:
        logger.info("Artifacts excluded: %s", ", ".join(area.detected_artifacts))
    for index, pattern in enumerate(result.patterns, start=1):
        logger.debug(
            "%s. %s (%s) confidence=%.2f domain=%s scale=%s anchors=%s steps=%s",
            index,
            pattern.name,
            pattern.type.value,
            pattern.confidence,
            pattern.domain.value,
            pattern.scale.value,
            len(pattern.anchors),
            len(pattern.overlay_steps),
        )
