from __future__ import annotations

import logging
from typing import Iterable

from .pattern_models import (
    AnalysisQuality,
    Anchor,
    PatternDomain,
    PatternRecord,
    PatternScale,
    PatternType,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.25
PLACEHOLDER_CONFIDENCE = 0.3


def placeholder_pattern() -> PatternRecord:
    return PatternRecord(
        type=PatternType.CUSTOM,
        subtype="unidentified",
        name="No Clear Structure Detected",
        confidence=PLACEHOLDER_CONFIDENCE,
        anchors=(Anchor(x=50.0, y=50.0), Anchor(x=50.0, y=50.0)),
        measurements={},
        overlay_steps=("No clear geometric pattern found in this image",),
        domain=PatternDomain.OTHER,
        scale=PatternScale.MACRO,
        orientation=0.0,
    )


def classify_quality(patterns: Iterable[PatternRecord]) -> AnalysisQuality:
    confidences = [pattern.confidence for pattern in patterns]
    if not confidences:
        return AnalysisQuality.LOW
    average = sum(confidences) / len(confidences)
    if average > 0.7:
        return AnalysisQuality.HIGH
    if average > 0.5:
        return AnalysisQuality.MEDIUM
    return AnalysisQuality.LOW


class QualityGate:
    def __init__(self, *, min_confidence: float = DEFAULT_MIN_CONFIDENCE) -> None:
        self.min_confidence = min_confidence

    def gate(self, patterns: Iterable[PatternRecord]) -> tuple[tuple[PatternRecord, ...], AnalysisQuality]:
        candidates = list(patterns)
        kept = [pattern for pattern in candidates if pattern.confidence >= self.min_confidence]
        dropped = len(candidates) - len(kept)
        if dropped:
            logger.info(
                "Filtered %s low-confidence patterns (below %s)",
                dropped,
                self.min_confidence,
            )
        if not kept:
            logger.warning("No patterns survived the quality gate, adding placeholder")
            kept = [placeholder_pattern()]
        return tuple(kept), classify_quality(kept)
