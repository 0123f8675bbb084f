# api/services/contact_assembler.py
"""
Builds the /contacts/upsert body from a webhook payload.

Standard contact attributes come from CONTACT_ATTRIBUTE_SOURCES: the first
payload key in each chain holding a non-empty value wins, otherwise the
attribute is "". Custom fields are emitted as {"key", "field_value"} pairs,
newly created fields first, then fields that already existed in the location.
A GHL key is emitted at most once.
"""

import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from api.services.custom_field_matcher import ReconciliationResult, strip_contact_prefix
from api.services.custom_field_creator import FieldCreationReport

logger = logging.getLogger(__name__)

# GHL contact attribute -> payload keys, highest priority first
CONTACT_ATTRIBUTE_SOURCES: List[Tuple[str, List[str]]] = [
    ("firstName", ["first_name", "Rep First name"]),
    ("lastName", ["last_name", "Rep Last name"]),
    ("email", ["email", "Business Email", "Representative Email"]),
    ("phone", ["phone", "Business Phone Number", "Representative Phone Number"]),
    ("address1", ["address1", "Business Address"]),
    ("city", ["Business City"]),
    ("state", ["Business State"]),
    ("country", ["country", "Business Country"]),
    ("postalCode", ["Business Postal Code"]),
    ("timezone", ["timezone"]),
    ("companyName", ["Gym Name", "Legal Business Name "]),
    ("website", ["Business website"]),
]


def format_field_value(value: Any) -> str:
    """
    Stringify a payload value; lists become a comma-separated string.

    Scalars go through str(): True -> "True", False -> "False", 1.0 -> "1.0".
    The previous PHP service cast these to "1", "" and "1".
    """
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(format_field_value(item) for item in value)
    return str(value)


def first_non_empty(payload: Dict[str, Any], sources: List[str]) -> str:
    for source in sources:
        value = format_field_value(payload.get(source))
        if value != "":
            return value
    return ""


def build_core_attributes(payload: Dict[str, Any]) -> Dict[str, str]:
    return {attribute: first_non_empty(payload, sources) for attribute, sources in CONTACT_ATTRIBUTE_SOURCES}


class ContactAssembler:
    """Contact Assembler"""

    def prepare_contact_data(self, payload: Dict[str, Any], reconciliation: ReconciliationResult,
                             creation_report: Optional[FieldCreationReport] = None) -> Dict[str, Any]:
        created_fields = creation_report.created if creation_report else {}

        contact_data: Dict[str, Any] = build_core_attributes(payload)
        contact_data["customFields"] = []
        emitted_keys: Set[str] = set()

        # Newly created fields
        for field_name, custom_field in created_fields.items():
            field_key = (custom_field.get("customField") or {}).get("fieldKey")
            if not field_key or field_name not in payload:
                continue
            self._append(contact_data, emitted_keys, strip_contact_prefix(field_key), payload[field_name], field_name)

        # Fields that already existed in the location
        self._add_existing_custom_fields(contact_data, emitted_keys, payload, reconciliation, created_fields)

        logger.info(
            f"📝 Contact data prepared for {contact_data['email'] or 'unknown email'}: "
            f"{len(contact_data['customFields'])} custom fields ({len(created_fields)} newly created)"
        )
        return contact_data

    def _add_existing_custom_fields(self, contact_data: Dict[str, Any], emitted_keys: Set[str],
                                    payload: Dict[str, Any], reconciliation: ReconciliationResult,
                                    created_fields: Dict[str, Dict[str, Any]]):
        existing_keys = set(reconciliation.existing_field_keys)
        if not existing_keys:
            return

        for field_name, canonical_key in reconciliation.mapped_payload.items():
            if field_name in created_fields or field_name not in payload:
                continue

            if canonical_key in existing_keys:
                field_key = canonical_key
            else:
                # Matched through a fallback variant
                field_key = reconciliation.matched_keys.get(field_name)

            if field_key:
                self._append(contact_data, emitted_keys, field_key, payload[field_name], field_name)

    @staticmethod
    def _append(contact_data: Dict[str, Any], emitted_keys: Set[str], field_key: str, value: Any, field_name: str):
        if field_key in emitted_keys:
            logger.debug(f"Skipping '{field_name}': key '{field_key}' already set by another payload field")
            return
        emitted_keys.add(field_key)
        contact_data["customFields"].append({
            "key": field_key,
            "field_value": format_field_value(value)
        })
