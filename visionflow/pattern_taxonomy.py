"""Collapse open-vocabulary pattern labels into the four persisted types.

The model is asked for one of ``fibonacci``, ``geometric``, ``symmetry`` or
``custom`` but drifts into labels such as ``geometric_repetition``,
``elliott_wave`` or ``radial_symmetry``. ``TAXONOMY_RULES`` is an ordered
table of ``(predicate, PatternType)`` pairs evaluated top to bottom over the
lower-cased type, subtype and name; the first matching rule wins and
``custom`` is the fallback. Order is the tie-break for keywords shared across
buckets: fibonacci before symmetry before geometric.
"""
from __future__ import annotations

import re
from typing import Any, Callable

from .pattern_models import PatternType

FIBONACCI_KEYWORDS = (
    "fibonacci",
    "golden",
    "spiral",
    "elliott_wave",
    "golden ratio",
    "1.618",
    "logarithmic spiral",
    "fibonacci sequence",
)
FIBONACCI_WORDS = ("phi",)

SYMMETRY_KEYWORDS = (
    "symmetry",
    "symmetric",
    "bilateral",
    "radial",
    "mirror",
    "reflection",
    "rotational",
    "balanced",
)
SYMMETRY_WORDS = ("axis",)

GEOMETRIC_KEYWORDS = (
    "geometric",
    "repetition",
    "repeating",
    "pattern",
    "grid",
    "tile",
    "tessellation",
    "fractal",
    "polygon",
    "triangle",
    "square",
    "circle",
    "rectangle",
    "hexagon",
    "head_shoulders",
    "wedge",
    "flag",
    "pennant",
    "channel",
    "pitchfork",
)

LabelPredicate = Callable[[str], bool]


def _contains_any(keywords: tuple[str, ...]) -> LabelPredicate:
    def predicate(label: str) -> bool:
        return any(keyword in label for keyword in keywords)

    return predicate


def _contains_word(words: tuple[str, ...]) -> LabelPredicate:
    # Short fragments only count as standalone words ("phi" but not "graphic").
    pattern = re.compile(r"(?<![a-z])(?:" + "|".join(re.escape(word) for word in words) + r")(?![a-z])")

    def predicate(label: str) -> bool:
        return bool(pattern.search(label))

    return predicate


def _either(*predicates: LabelPredicate) -> LabelPredicate:
    def predicate(label: str) -> bool:
        return any(check(label) for check in predicates)

    return predicate


TAXONOMY_RULES: tuple[tuple[LabelPredicate, PatternType], ...] = (
    (_either(_contains_any(FIBONACCI_KEYWORDS), _contains_word(FIBONACCI_WORDS)), PatternType.FIBONACCI),
    (_either(_contains_any(SYMMETRY_KEYWORDS), _contains_word(SYMMETRY_WORDS)), PatternType.SYMMETRY),
    (_contains_any(GEOMETRIC_KEYWORDS), PatternType.GEOMETRIC),
)


def build_label(raw_type: Any, raw_subtype: Any, raw_name: Any) -> str:
    parts = [value.strip().lower() for value in (raw_type, raw_subtype, raw_name) if isinstance(value, str)]
    return " ".join(part for part in parts if part)


def normalize_pattern_type(raw_type: Any, raw_subtype: Any = "", raw_name: Any = "") -> PatternType:
    label = build_label(raw_type, raw_subtype, raw_name)
    for predicate, pattern_type in TAXONOMY_RULES:
        if predicate(label):
            return pattern_type
    return PatternType.CUSTOM


def is_pattern_type(value: Any) -> bool:
    return isinstance(value, str) and value in {member.value for member in PatternType}
