# api/services/field_normalizer.py
"""
Field name -> GHL custom field key normalization.

normalize_field_name() produces the canonical key used when a field is created.
Custom fields created over time (by hand, by older integrations, by GHL itself)
do not always follow that rule, so matching also tries the candidate keys
produced by VARIANT_STRATEGIES. Each strategy is a pure function returning zero
or more candidates; generate_field_key_variations() applies them in order and
drops empty and duplicate results.
"""

import re
from typing import Callable, List

# Characters turned into underscores before stripping everything else
SEPARATOR_CHARS = [' ', '"', '/', '(', ')', '-', '?', ':']

_NON_KEY_CHARS = re.compile(r'[^a-z0-9_]')
_UNDERSCORE_RUNS = re.compile(r'_+')
_WHITESPACE_RUNS = re.compile(r'\s+')
_PARENTHESIZED = re.compile(r'\([^)]*\)')


def normalize_field_name(field_name: str) -> str:
    """
    Canonical GHL key for a field name.

    "Rep First name" -> "rep_first_name", "Revenue ($)" -> "revenue"
    """
    key = field_name.lower()
    for char in SEPARATOR_CHARS:
        key = key.replace(char, '_')
    key = _NON_KEY_CHARS.sub('', key)
    key = _UNDERSCORE_RUNS.sub('_', key)
    return key.strip('_')


def _underscore_words(value: str) -> str:
    return _WHITESPACE_RUNS.sub('_', value.strip())


# ============================================
# VARIANT STRATEGIES
# ============================================

def canonical_variant(field_name: str) -> List[str]:
    return [normalize_field_name(field_name)]


def alphanumeric_words_variant(field_name: str) -> List[str]:
    """Drop punctuation, keep words, join them with underscores"""
    clean = re.sub(r'[^a-zA-Z0-9\s]', '', field_name).lower()
    return [_underscore_words(clean)]


def alphanumeric_compact_variant(field_name: str) -> List[str]:
    """Letters and digits only, no separators at all"""
    return [re.sub(r'[^a-zA-Z0-9]', '', field_name).lower()]


def slash_free_variant(field_name: str) -> List[str]:
    if '/' not in field_name:
        return []
    lowered = field_name.lower()
    return [
        _underscore_words(lowered.replace('/', '')),
        re.sub(r'[^a-zA-Z0-9]', '', lowered),
    ]


def without_parentheses_variant(field_name: str) -> List[str]:
    if '(' not in field_name:
        return []
    return [normalize_field_name(_PARENTHESIZED.sub('', field_name).strip())]


def drilldown_variant(field_name: str) -> List[str]:
    if 'Drill-Down' not in field_name:
        return []
    return [normalize_field_name(field_name.replace('Drill-Down', 'drilldown'))]


def colon_free_variant(field_name: str) -> List[str]:
    if ':' not in field_name:
        return []
    return [normalize_field_name(field_name.replace(':', ''))]


def generic_cleanup_variants(field_name: str) -> List[str]:
    """Slash removal, non-word removal and non-alphanumeric removal, each tidied up"""
    lowered = field_name.lower()
    patterns = [
        lowered.replace('/', '').replace('\\', ''),
        re.sub(r'[^\w\s]', '', lowered, flags=re.ASCII),
        re.sub(r'[^a-z0-9]', '', lowered),
    ]
    variants = []
    for pattern in patterns:
        normalized = _underscore_words(pattern).strip('_')
        variants.append(_UNDERSCORE_RUNS.sub('_', normalized))
    return variants


VARIANT_STRATEGIES: List[Callable[[str], List[str]]] = [
    canonical_variant,
    alphanumeric_words_variant,
    alphanumeric_compact_variant,
    slash_free_variant,
    without_parentheses_variant,
    drilldown_variant,
    colon_free_variant,
    generic_cleanup_variants,
]


def generate_field_key_variations(field_name: str) -> List[str]:
    """All distinct, non-empty candidate keys for a field name, canonical first"""
    variations: List[str] = []
    for strategy in VARIANT_STRATEGIES:
        for candidate in strategy(field_name):
            if candidate and candidate not in variations:
                variations.append(candidate)
    return variations
