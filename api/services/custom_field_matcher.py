# api/services/custom_field_matcher.py
"""
Custom Field Reconciliation
===========================
Decides which webhook payload keys are custom fields and which of those have no
counterpart yet in a location's GHL custom field schema.

Payload keys arrive as free-form form labels ("Business Email", "Revenue ($)").
A key is custom unless it is one of DEFAULT_GHL_FIELDS. A custom key is matched
when any of its candidate keys (see field_normalizer) equals an existing
fieldKey with the "contact." prefix removed.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Iterable

from api.services.field_normalizer import normalize_field_name, generate_field_key_variations

logger = logging.getLogger(__name__)

CONTACT_PREFIX = "contact."

# Keys GHL sends with every workflow webhook; never treated as custom fields
DEFAULT_GHL_FIELDS = frozenset([
    'contact_id',
    'first_name',
    'last_name',
    'full_name',
    'email',
    'phone',
    'tags',
    'address1',
    'city',
    'state',
    'postal_code',
    'country',
    'timezone',
    'date_created',
    'contact_source',
    'full_address',
    'contact_type',
    'location',
    'triggerData',
    'contact',
    'attributionSource',
    'Card authorization',
    'workflow',
])


def strip_contact_prefix(field_key: str) -> str:
    if field_key.startswith(CONTACT_PREFIX):
        return field_key[len(CONTACT_PREFIX):]
    return field_key


@dataclass
class ReconciliationResult:
    """Outcome of matching one payload against one location schema"""
    custom_field_names: List[str] = field(default_factory=list)
    mapped_payload: Dict[str, str] = field(default_factory=dict)  # field name -> canonical key
    existing_fields: Dict[str, Any] = field(default_factory=dict)  # raw {"customFields": [...]}
    existing_field_keys: List[str] = field(default_factory=list)
    matched_keys: Dict[str, str] = field(default_factory=dict)  # field name -> existing key it matched
    unmatched_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "custom_field_names": self.custom_field_names,
            "mapped_payload": self.mapped_payload,
            "matched_count": len(self.matched_keys),
            "unmatched_fields": self.unmatched_fields,
        }


def get_custom_field_names(payload: Dict[str, Any], core_fields: Iterable[str] = DEFAULT_GHL_FIELDS) -> List[str]:
    """Payload keys that are not core GHL fields, in payload order (exact, case-sensitive match)"""
    core = core_fields if isinstance(core_fields, (set, frozenset)) else set(core_fields)
    return [name for name in payload.keys() if name not in core]


def create_field_mappings(field_names: Iterable[str]) -> Dict[str, str]:
    """field name -> canonical key"""
    return {name: normalize_field_name(name) for name in field_names}


def extract_existing_field_keys(all_custom_fields: Optional[Dict[str, Any]]) -> List[str]:
    """Existing fieldKeys without their "contact." prefix"""
    existing_field_keys = []
    custom_fields = (all_custom_fields or {}).get("customFields")
    if not isinstance(custom_fields, list):
        return existing_field_keys

    for custom_field in custom_fields:
        field_key = custom_field.get("fieldKey") if isinstance(custom_field, dict) else None
        if field_key:
            existing_field_keys.append(strip_contact_prefix(field_key))
    return existing_field_keys


def find_matching_key(field_name: str, existing_keys: Iterable[str]) -> Optional[str]:
    """First candidate key of field_name present in existing_keys, or None"""
    keys = existing_keys if isinstance(existing_keys, (set, frozenset)) else set(existing_keys)
    for candidate in generate_field_key_variations(field_name):
        if candidate in keys:
            return candidate
    return None


class CustomFieldMatcher:
    """Field Reconciliation Engine"""

    def __init__(self, core_fields: Iterable[str] = DEFAULT_GHL_FIELDS):
        self.core_fields = frozenset(core_fields)

    def reconcile(self, payload: Dict[str, Any], all_custom_fields: Optional[Dict[str, Any]]) -> ReconciliationResult:
        """
        Match every custom payload field against the location schema.

        Args:
            payload: Inbound webhook payload
            all_custom_fields: GHL schema dump ({"customFields": [...]})

        Returns:
            ReconciliationResult with the canonical mapping for every custom
            field and the unmatched field names in payload order
        """
        custom_field_names = get_custom_field_names(payload, self.core_fields)
        result = ReconciliationResult(
            custom_field_names=custom_field_names,
            existing_fields=all_custom_fields or {},
        )
        if not custom_field_names:
            return result

        logger.info(f"🔍 Processing {len(custom_field_names)} custom fields")

        result.mapped_payload = create_field_mappings(custom_field_names)
        result.existing_field_keys = extract_existing_field_keys(all_custom_fields)
        existing_keys = set(result.existing_field_keys)

        for field_name in custom_field_names:
            matched_key = find_matching_key(field_name, existing_keys)
            if matched_key is not None:
                result.matched_keys[field_name] = matched_key
            elif field_name not in result.unmatched_fields:
                result.unmatched_fields.append(field_name)

        logger.info(
            f"📊 Field matching completed: {len(result.existing_field_keys)} existing, "
            f"{len(result.matched_keys)} matched, {len(result.unmatched_fields)} unmatched"
        )
        if result.unmatched_fields:
            logger.info(f"   Unmatched (first 5): {result.unmatched_fields[:5]}")

        return result
