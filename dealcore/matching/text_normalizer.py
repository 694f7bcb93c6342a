"""
Text normalization for facility names and financial line-item labels.

Pure functions, no state. Two flavours:
- Names ("Sunrise Healthcare Center, LLC" -> "sunrise"): generic corporate and
  care-type words are stripped so the distinctive part of the name drives
  similarity.
- Labels ("Medicaid Room & Board Revenue" -> "medicaid_room_board_revenue"):
  underscore-joined keys used by the chart-of-accounts tables.
"""
import re
from typing import Optional

# Generic words carrying no identity. Multi-word phrases first so
# "skilled nursing" is removed as a unit.
GENERIC_NAME_SUFFIXES = [
    "skilled nursing facility",
    "skilled nursing",
    "nursing and rehabilitation",
    "nursing home",
    "nursing facility",
    "health care",
    "care center",
    "post acute",
    "rehabilitation",
    "corporation",
    "healthcare",
    "facility",
    "center",
    "centre",
    "rehab",
    "corp",
    "llc",
    "inc",
    "ltd",
    "snf",
    "lp",
    "the",
]

_SUFFIX_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(s) for s in GENERIC_NAME_SUFFIXES) + r")\b"
)
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

_LABEL_STRIPS = [
    (re.compile(r"^total_"), ""),
    (re.compile(r"_total$"), ""),
    (re.compile(r"_expenses?$"), ""),
    (re.compile(r"_(revenue|income)$"), ""),
]


def normalize_text(text: Optional[str]) -> str:
    """Lower-case, drop punctuation, collapse whitespace."""
    if not text:
        return ""
    cleaned = _NON_ALNUM.sub("", text.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


def normalize_name(name: Optional[str]) -> str:
    """
    Canonicalize a facility or provider name for comparison.

    Suffix stripping runs to a fixpoint: removing one generic word can bring
    two others together ("skilled llc nursing"), so a single pass would not
    be idempotent.
    """
    current = normalize_text(name)
    while True:
        stripped = _WHITESPACE.sub(" ", _SUFFIX_PATTERN.sub(" ", current)).strip()
        if stripped == current:
            return stripped
        current = stripped


def normalize_label(label: Optional[str]) -> str:
    """Normalize a line-item label into an underscore-joined key."""
    return normalize_text(label).replace(" ", "_")


def generate_label_variations(label: Optional[str]) -> list[str]:
    """
    Variations of a label used to probe learned mappings.

    The normalized label comes first, followed by the label with total /
    expense / revenue affixes removed and a naive singular form.
    """
    normalized = normalize_label(label)
    if not normalized:
        return []

    variations = [normalized]

    fully_stripped = normalized
    for pattern, replacement in _LABEL_STRIPS:
        variant = pattern.sub(replacement, normalized)
        if variant and variant != normalized:
            variations.append(variant)
        fully_stripped = pattern.sub(replacement, fully_stripped) or fully_stripped
    if fully_stripped != normalized:
        variations.append(fully_stripped)

    if normalized.endswith("s") and len(normalized) > 3:
        variations.append(normalized[:-1])

    # dict preserves insertion order
    return list(dict.fromkeys(variations))
