from __future__ import annotations

import logging
import math
from typing import Any

from .pattern_models import (
    PATTERN_TYPE_LABELS,
    Anchor,
    ContentArea,
    Insights,
    PatternComplexity,
    PatternDomain,
    PatternRecord,
    PatternScale,
    PatternType,
)
from .pattern_taxonomy import normalize_pattern_type

logger = logging.getLogger(__name__)

MIN_ANCHORS = 2
MAX_ANCHORS = 20
MIN_OVERLAY_STEPS = 3
MAX_OVERLAY_STEPS = 5
DEFAULT_CONFIDENCE = 0.5
DEFAULT_ANCHORS = (Anchor(x=25.0, y=25.0), Anchor(x=75.0, y=75.0))
OVERLAY_PAD_STEP = "Continue pattern development"

VALID_DOMAINS = {member.value for member in PatternDomain}
VALID_SCALES = {member.value for member in PatternScale}
VALID_COMPLEXITIES = {member.value for member in PatternComplexity}

OVERLAY_STEP_TEMPLATES: dict[PatternType, tuple[str, ...]] = {
    PatternType.FIBONACCI: (
        "Mark Fibonacci spiral center point",
        "Draw logarithmic spiral curve with φ=1.618 growth",
        "Add golden ratio rectangles",
        "Highlight quarter-arc segments",
    ),
    PatternType.GEOMETRIC: (
        "Plot primary vertices and intersections",
        "Connect edges of the repeating unit",
        "Extend the grid across the content area",
        "Highlight repeated shapes",
    ),
    PatternType.SYMMETRY: (
        "Mark symmetry axis/center",
        "Plot mirrored/rotated anchor points",
        "Connect symmetrical elements",
        "Emphasize balanced structure",
    ),
}
GENERIC_OVERLAY_STEPS = (
    "Mark key anchor points",
    "Connect primary pattern structure",
    "Add secondary details and measurements",
    "Complete pattern overlay visualization",
)

DEFAULT_EXPLANATION = "Pattern analysis completed."
DEFAULT_SECRET_MESSAGE = "Hidden patterns revealed."
DEFAULT_SHARE_CAPTION = "Discover the patterns within."


# ---------------------------------------------------------------------------
# Content area
# ---------------------------------------------------------------------------


def validate_content_area(raw_area: Any) -> ContentArea:
    """Return the model's region of interest, or the full image when it is unusable.

    Bounds are never clamped one by one: a rectangle with any bad edge is
    replaced as a whole.
    """
    if raw_area is None:
        logger.warning("Missing contentArea, assuming full image")
        return ContentArea.full_image()
    if not isinstance(raw_area, dict):
        logger.warning("contentArea is not an object, assuming full image")
        return ContentArea.full_image()

    bounds = [
        _as_number(raw_area.get(key))
        for key in ("topLeftX", "topLeftY", "bottomRightX", "bottomRightY")
    ]
    if any(value is None for value in bounds):
        logger.warning("contentArea is missing bounds, resetting to full image")
        return ContentArea.full_image()

    top_left_x, top_left_y, bottom_right_x, bottom_right_y = bounds
    in_range = all(_in_range(value, 0.0, 100.0) for value in bounds)
    if not in_range or top_left_x >= bottom_right_x or top_left_y >= bottom_right_y:
        logger.warning(
            "Invalid content area (%s, %s) -> (%s, %s), resetting to full image",
            top_left_x,
            top_left_y,
            bottom_right_x,
            bottom_right_y,
        )
        return ContentArea.full_image()

    raw_confidence = raw_area.get("confidence", raw_area.get("detectionConfidence"))
    confidence = _as_number(raw_confidence)
    if confidence is None or not _in_range(confidence, 0.0, 1.0):
        confidence = DEFAULT_CONFIDENCE

    return ContentArea(
        top_left_x=top_left_x,
        top_left_y=top_left_y,
        bottom_right_x=bottom_right_x,
        bottom_right_y=bottom_right_y,
        confidence=confidence,
        detected_artifacts=_clean_string_list(raw_area.get("detectedArtifacts")),
    )


# ---------------------------------------------------------------------------
# Pattern records
# ---------------------------------------------------------------------------


def validate_pattern_record(raw_pattern: Any) -> PatternRecord:
    if not isinstance(raw_pattern, dict):
        logger.warning("Pattern entry is not an object (%s), building a placeholder record", type(raw_pattern).__name__)
        raw_pattern = {}

    raw_type = raw_pattern.get("type")
    subtype = _clean_str(raw_pattern.get("subtype")) or ""
    raw_name = _clean_str(raw_pattern.get("name"))
    pattern_type = normalize_pattern_type(raw_type, subtype, raw_name)
    name = raw_name or PATTERN_TYPE_LABELS[pattern_type]
    if isinstance(raw_type, str) and raw_type.strip().lower() != pattern_type.value:
        logger.info("Normalized pattern type %r -> %s for %r", raw_type, pattern_type.value, name)

    confidence = _as_number(raw_pattern.get("confidence"))
    if confidence is None or not _in_range(confidence, 0.0, 1.0):
        logger.warning("Invalid confidence %r for %r, setting to %s", raw_pattern.get("confidence"), name, DEFAULT_CONFIDENCE)
        confidence = DEFAULT_CONFIDENCE

    domain_raw = _clean_str(raw_pattern.get("domain"))
    domain_value = domain_raw.lower() if domain_raw else ""
    domain = PatternDomain(domain_value) if domain_value in VALID_DOMAINS else PatternDomain.OTHER

    scale_raw = _clean_str(raw_pattern.get("scale"))
    scale_value = scale_raw.lower() if scale_raw else ""
    scale = PatternScale(scale_value) if scale_value in VALID_SCALES else PatternScale.MACRO

    orientation = _as_number(raw_pattern.get("orientation"))
    if orientation is None or not _in_range(orientation, 0.0, 360.0):
        orientation = 0.0

    return PatternRecord(
        type=pattern_type,
        subtype=subtype,
        name=name,
        confidence=confidence,
        anchors=_validate_anchors(raw_pattern.get("anchors"), name=name),
        measurements=_validate_measurements(raw_pattern.get("measurements")),
        overlay_steps=_validate_overlay_steps(raw_pattern.get("overlaySteps"), pattern_type=pattern_type, name=name),
        domain=domain,
        scale=scale,
        orientation=orientation,
    )


def default_overlay_steps(pattern_type: PatternType) -> tuple[str, ...]:
    return OVERLAY_STEP_TEMPLATES.get(pattern_type, GENERIC_OVERLAY_STEPS)


def _validate_anchors(raw_anchors: Any, *, name: str) -> tuple[Anchor, ...]:
    if not isinstance(raw_anchors, list):
        logger.warning("Pattern %r missing anchors, using defaults", name)
        return DEFAULT_ANCHORS

    valid: list[Anchor] = []
    for raw_anchor in raw_anchors:
        if not isinstance(raw_anchor, dict):
            continue
        x = _as_number(raw_anchor.get("x"))
        y = _as_number(raw_anchor.get("y"))
        if x is None or y is None or not _in_range(x, 0.0, 100.0) or not _in_range(y, 0.0, 100.0):
            logger.warning("Invalid anchor (%r, %r) removed from %r", raw_anchor.get("x"), raw_anchor.get("y"), name)
            continue
        valid.append(Anchor(x=x, y=y))

    if len(valid) < MIN_ANCHORS:
        logger.warning("Pattern %r has %s valid anchors, using defaults", name, len(valid))
        return DEFAULT_ANCHORS
    return tuple(valid[:MAX_ANCHORS])


def _validate_overlay_steps(raw_steps: Any, *, pattern_type: PatternType, name: str) -> tuple[str, ...]:
    steps = list(_clean_string_list(raw_steps))
    if not steps:
        logger.warning("Pattern %r missing overlaySteps, generating defaults", name)
        return default_overlay_steps(pattern_type)
    if len(steps) < MIN_OVERLAY_STEPS:
        logger.warning("Pattern %r has only %s overlay steps, padding to %s", name, len(steps), MIN_OVERLAY_STEPS)
        steps.extend([OVERLAY_PAD_STEP] * (MIN_OVERLAY_STEPS - len(steps)))
    if len(steps) > MAX_OVERLAY_STEPS:
        logger.warning("Pattern %r has %s overlay steps, truncating to %s", name, len(steps), MAX_OVERLAY_STEPS)
        steps = steps[:MAX_OVERLAY_STEPS]
    return tuple(steps)


def _validate_measurements(raw_measurements: Any) -> dict[str, Any]:
    if not isinstance(raw_measurements, dict):
        return {}
    measurements: dict[str, Any] = {}
    for key, value in raw_measurements.items():
        if not isinstance(key, str) or not key.strip():
            continue
        number = _as_number(value)
        if number is not None:
            measurements[key] = number
            continue
        if isinstance(value, (list, tuple)):
            numbers = [_as_number(item) for item in value]
            if numbers and all(item is not None for item in numbers):
                measurements[key] = tuple(numbers)
    return measurements


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------


def validate_insights(
    raw_insights: Any,
    *,
    fallback_domain: PatternDomain | str | None = None,
    pattern_count: int = 0,
) -> Insights:
    if not isinstance(raw_insights, dict):
        logger.warning("Missing insights block, using canned narrative")
        raw_insights = {}

    domain_value = _clean_str(raw_insights.get("primaryDomain"))
    domain_value = domain_value.lower() if domain_value else ""
    if domain_value in VALID_DOMAINS:
        primary_domain = PatternDomain(domain_value)
    else:
        primary_domain = _coerce_domain(fallback_domain)

    complexity_value = _clean_str(raw_insights.get("patternComplexity"))
    complexity_value = complexity_value.lower() if complexity_value else ""
    if complexity_value in VALID_COMPLEXITIES:
        complexity = PatternComplexity(complexity_value)
    else:
        complexity = complexity_for_count(pattern_count)

    return Insights(
        explanation=_clean_str(raw_insights.get("explanation")) or DEFAULT_EXPLANATION,
        secret_message=_clean_str(raw_insights.get("secretMessage")) or DEFAULT_SECRET_MESSAGE,
        share_caption=_clean_str(raw_insights.get("shareCaption")) or DEFAULT_SHARE_CAPTION,
        primary_domain=primary_domain,
        pattern_complexity=complexity,
        suggested_actions=_clean_string_list(raw_insights.get("suggestedActions")),
        mathematical_context=_clean_str(raw_insights.get("mathematicalContext")),
        cultural_context=_clean_str(raw_insights.get("culturalContext")),
    )


def complexity_for_count(pattern_count: int) -> PatternComplexity:
    if pattern_count >= 3:
        return PatternComplexity.COMPLEX
    if pattern_count == 2:
        return PatternComplexity.MODERATE
    return PatternComplexity.SIMPLE


def _coerce_domain(value: PatternDomain | str | None) -> PatternDomain:
    if isinstance(value, PatternDomain):
        return value
    if isinstance(value, str) and value.strip().lower() in VALID_DOMAINS:
        return PatternDomain(value.strip().lower())
    return PatternDomain.OTHER


# ---------------------------------------------------------------------------
# Shared coercion helpers
# ---------------------------------------------------------------------------


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


def _in_range(value: float, lower: float, upper: float) -> bool:
    return lower <= value <= upper


def _clean_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def _clean_string_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item.strip() for item in value if isinstance(item, str) and item.strip())
