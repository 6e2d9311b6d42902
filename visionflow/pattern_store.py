from __future__ import annotations

import json
import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .pattern_errors import PatternAnalysisError
from .pattern_models import AnalysisMetadata, AnalysisQuality, AnalysisResult
from .pattern_quality import classify_quality, placeholder_pattern
from .pattern_validation import (
    validate_content_area,
    validate_insights,
    validate_pattern_record,
)

logger = logging.getLogger(__name__)


class PatternStoreError(PatternAnalysisError):
    code = "store_error"
    user_message = "Saved pattern analyses could not be accessed."


class PatternResultNotFoundError(PatternStoreError):
    code = "analysis_not_found"
    user_message = "Pattern analysis not found."


_ANALYSIS_ID_RE = re.compile(r"^pattern_rpt_\d{8}_\d{3}$")


class PatternAnalysisStore:
    def __init__(self, *, root: Path) -> None:
        self.root = root

    def save_result(self, result: AnalysisResult) -> str:
        analysis_id, result_dir = self._claim_result_dir()

        record = {
            "analysisId": analysis_id,
            "createdAt": self._now_iso(),
            "result": result.to_dict(),
        }
        try:
            (result_dir / "result.json").write_text(
                json.dumps(record, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as exc:
            raise PatternStoreError(f"Failed to persist pattern analysis: {exc}") from exc
        return analysis_id

    def get_result(self, analysis_id: str) -> dict[str, Any]:
        record = self._read_record(analysis_id)
        result = load_result(record.get("result"))
        return {
            "analysisId": analysis_id,
            "createdAt": record.get("createdAt"),
            **result.to_dict(),
        }

    def list_results(self) -> list[dict[str, Any]]:
        analyses_root = self._analyses_root()
        if not analyses_root.exists():
            return []

        summaries: list[dict[str, Any]] = []
        for entry in sorted(analyses_root.iterdir(), reverse=True):
            if not entry.is_dir() or not _ANALYSIS_ID_RE.match(entry.name):
                continue
            try:
                record = self._read_record(entry.name)
                result = load_result(record.get("result"))
            except PatternStoreError as exc:
                logger.warning("Skipping unreadable pattern analysis %s: %s", entry.name, exc)
                continue
            summaries.append(
                {
                    "analysisId": entry.name,
                    "createdAt": record.get("createdAt"),
                    "patternCount": len(result.patterns),
                    "patternTypes": [pattern.type.value for pattern in result.patterns],
                    "primaryDomain": result.insights.primary_domain.value,
                    "analysisQuality": result.metadata.analysis_quality.value,
                }
            )
        return summaries

    def delete_result(self, analysis_id: str) -> None:
        result_dir = self._result_dir(analysis_id)
        if not result_dir.exists():
            raise PatternResultNotFoundError("Pattern analysis not found.")
        try:
            shutil.rmtree(result_dir)
        except OSError as exc:
            raise PatternStoreError(f"Failed to delete pattern analysis: {exc}") from exc

    def _read_record(self, analysis_id: str) -> dict[str, Any]:
        result_path = self._result_dir(analysis_id) / "result.json"
        if not result_path.exists():
            raise PatternResultNotFoundError("Pattern analysis not found.")
        try:
            payload = json.loads(result_path.read_text(encoding="utf-8"))
        except Exception as exc:
            raise PatternStoreError(f"Failed to read pattern analysis: {exc}") from exc
        if not isinstance(payload, dict):
            raise PatternStoreError("Pattern analysis payload has invalid format.")
        return payload

    def _claim_result_dir(self) -> tuple[str, Path]:
        # mkdir without exist_ok claims the id atomically across threads.
        analysis_id = self._next_analysis_id()
        while True:
            result_dir = self._result_dir(analysis_id)
            try:
                result_dir.mkdir()
            except FileExistsError:
                analysis_id = _increment_analysis_id(analysis_id)
                continue
            except OSError as exc:
                raise PatternStoreError(f"Failed to create pattern analysis directory: {exc}") from exc
            return analysis_id, result_dir

    def _next_analysis_id(self) -> str:
        utc_now = datetime.now(timezone.utc)
        date_token = utc_now.strftime("%Y%m%d")
        prefix = f"pattern_rpt_{date_token}_"

        root = self._analyses_root()
        root.mkdir(parents=True, exist_ok=True)

        pattern = re.compile(rf"^{re.escape(prefix)}(\d{{3}})$")
        latest = 0
        for entry in root.iterdir():
            if not entry.is_dir():
                continue
            match = pattern.match(entry.name)
            if not match:
                continue
            latest = max(latest, int(match.group(1)))
        return f"{prefix}{latest + 1:03d}"

    def _analyses_root(self) -> Path:
        return self.root / "pattern_analyses"

    def _result_dir(self, analysis_id: str) -> Path:
        if not _ANALYSIS_ID_RE.match(str(analysis_id or "")):
            raise PatternResultNotFoundError("Pattern analysis not found.")
        return self._analyses_root() / analysis_id

    def _now_iso(self) -> str:
        return (
            datetime.now(timezone.utc)
            .replace(microsecond=0)
            .isoformat()
            .replace("+00:00", "Z")
        )


def load_result(payload: Any) -> AnalysisResult:
    """Rebuild a persisted result through the validators.

    Records written under the older, broader taxonomy come back with one of
    the four current pattern types; the stored quality gate outcome is kept.
    """
    if not isinstance(payload, dict):
        raise PatternStoreError("Stored pattern analysis has no result payload.")
    raw_patterns = payload.get("patterns")
    if not isinstance(raw_patterns, list) or not raw_patterns:
        raise PatternStoreError("Stored pattern analysis has no patterns.")

    placeholder = placeholder_pattern()
    placeholder_payload = placeholder.to_dict()
    patterns = tuple(
        placeholder if raw_pattern == placeholder_payload else validate_pattern_record(raw_pattern)
        for raw_pattern in raw_patterns
    )
    insights = validate_insights(
        payload.get("insights"),
        fallback_domain=patterns[0].domain,
        pattern_count=len(patterns),
    )

    raw_metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
    quality_value = raw_metadata.get("analysisQuality")
    quality = (
        AnalysisQuality(quality_value)
        if isinstance(quality_value, str) and quality_value in {member.value for member in AnalysisQuality}
        else classify_quality(patterns)
    )
    processing_time = _safe_int(raw_metadata.get("processingTimeMs", raw_metadata.get("processingTime")))
    model_version = raw_metadata.get("modelVersion")

    return AnalysisResult(
        content_area=validate_content_area(payload.get("contentArea")),
        patterns=patterns,
        insights=insights,
        metadata=AnalysisMetadata(
            processing_time_ms=processing_time,
            model_version=model_version if isinstance(model_version, str) else "",
            analysis_quality=quality,
            edge_detection_applied=raw_metadata.get("edgeDetectionApplied") is True,
        ),
    )


def _increment_analysis_id(analysis_id: str) -> str:
    prefix, _, counter = analysis_id.rpartition("_")
    return f"{prefix}_{int(counter) + 1:03d}"


def _safe_int(value: Any) -> int:
    try:
        if isinstance(value, bool):
            return 0
        return max(0, int(value))
    except Exception:
        return 0
