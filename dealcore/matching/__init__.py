"""
Matching primitives - text normalization and string similarity

Used by both paths of the engine:
- Facility -> CMS provider entity resolution
- Line item -> chart-of-accounts classification
"""

from dealcore.matching.similarity import similarity, word_overlap
from dealcore.matching.text_normalizer import (
    generate_label_variations,
    normalize_label,
    normalize_name,
    normalize_text,
)

__all__ = [
    'similarity',
    'word_overlap',
    'generate_label_variations',
    'normalize_label',
    'normalize_name',
    'normalize_text',
]
