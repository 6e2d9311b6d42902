from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PatternType(str, Enum):
    FIBONACCI = "fibonacci"
    GEOMETRIC = "geometric"
    SYMMETRY = "symmetry"
    CUSTOM = "custom"


class PatternDomain(str, Enum):
    FINANCE = "finance"
    NATURE = "nature"
    ART = "art"
    GEOMETRY = "geometry"
    ARCHITECTURE = "architecture"
    OTHER = "other"


class PatternScale(str, Enum):
    MICRO = "micro"
    MESO = "meso"
    MACRO = "macro"
    MULTI_SCALE = "multi-scale"


class PatternComplexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    HIGHLY_COMPLEX = "highly_complex"


class AnalysisQuality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


PATTERN_TYPE_LABELS = {
    PatternType.FIBONACCI: "Fibonacci",
    PatternType.GEOMETRIC: "Geometric",
    PatternType.SYMMETRY: "Symmetry",
    PatternType.CUSTOM: "Custom",
}


@dataclass(frozen=True)
class Anchor:
    x: float
    y: float

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class ContentArea:
    top_left_x: float = 0.0
    top_left_y: float = 0.0
    bottom_right_x: float = 100.0
    bottom_right_y: float = 100.0
    confidence: float = 0.5
    detected_artifacts: tuple[str, ...] = ()

    @classmethod
    def full_image(cls) -> "ContentArea":
        return cls()

    def to_dict(self) -> dict[str, Any]:
        return {
            "topLeftX": self.top_left_x,
            "topLeftY": self.top_left_y,
            "bottomRightX": self.bottom_right_x,
            "bottomRightY": self.bottom_right_y,
            "confidence": self.confidence,
            "detectedArtifacts": list(self.detected_artifacts),
        }


@dataclass(frozen=True)
class PatternRecord:
    type: PatternType
    subtype: str
    name: str
    confidence: float
    anchors: tuple[Anchor, ...]
    measurements: dict[str, Any] = field(default_factory=dict, hash=False)
    overlay_steps: tuple[str, ...] = ()
    domain: PatternDomain = PatternDomain.OTHER
    scale: PatternScale = PatternScale.MACRO
    orientation: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "subtype": self.subtype,
            "name": self.name,
            "confidence": self.confidence,
            "anchors": [anchor.to_dict() for anchor in self.anchors],
            "measurements": {
                key: list(value) if isinstance(value, tuple) else value
                for key, value in self.measurements.items()
            },
            "overlaySteps": list(self.overlay_steps),
            "domain": self.domain.value,
            "scale": self.scale.value,
            "orientation": self.orientation,
        }


@dataclass(frozen=True)
class Insights:
    explanation: str
    secret_message: str
    share_caption: str
    primary_domain: PatternDomain
    pattern_complexity: PatternComplexity
    suggested_actions: tuple[str, ...] = ()
    mathematical_context: str | None = None
    cultural_context: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "explanation": self.explanation,
            "secretMessage": self.secret_message,
            "shareCaption": self.share_caption,
            "primaryDomain": self.primary_domain.value,
            "patternComplexity": self.pattern_complexity.value,
            "suggestedActions": list(self.suggested_actions),
            "mathematicalContext": self.mathematical_context,
            "culturalContext": self.cultural_context,
        }


@dataclass(frozen=True)
class AnalysisMetadata:
    processing_time_ms: int
    model_version: str
    analysis_quality: AnalysisQuality
    # Reserved in the persisted shape; this service never applies edge highlighting,
    # so only records loaded from older history can carry True.
    edge_detection_applied: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "processingTimeMs": self.processing_time_ms,
            "modelVersion": self.model_version,
            "analysisQuality": self.analysis_quality.value,
            "edgeDetectionApplied": self.edge_detection_applied,
        }


@dataclass(frozen=True)
class AnalysisResult:
    content_area: ContentArea
    patterns: tuple[PatternRecord, ...]
    insights: Insights
    metadata: AnalysisMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "contentArea": self.content_area.to_dict(),
            "patterns": [pattern.to_dict() for pattern in self.patterns],
            "insights": self.insights.to_dict(),
            "metadata": self.metadata.to_dict(),
        }
