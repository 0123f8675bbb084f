# api/services/contact_sync_service.py
"""
Webhook -> GHL contact pipeline.

    payload -> company token -> location id -> location token
            -> custom field reconciliation -> batch creation of missing fields
            -> contact assembly -> /contacts/upsert

Token, location and schema failures abort before anything is written to GHL.
Individual custom field creation failures do not.
"""

import logging
import time
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

from config import AppConfig
from database.token_store import CompanyTokenStore
from api.services.ghl_api import GoHighLevelAPI
from api.services.token_service import TokenService
from api.services.custom_field_cache import (
    CustomFieldCache, TTLCustomFieldCache, NullCustomFieldCache, custom_fields_cache_key
)
from api.services.custom_field_matcher import CustomFieldMatcher, ReconciliationResult, get_custom_field_names
from api.services.custom_field_creator import CustomFieldBatchCreator, FieldCreationReport
from api.services.contact_assembler import ContactAssembler
from api.services.errors import (
    MissingRequiredField, LocationNotFound, LocationTokenFailed,
    RemoteSchemaFetchFailed, ContactUpsertFailed
)

logger = logging.getLogger(__name__)

BUSINESS_EMAIL_FIELD = "Business Email"


class ContactSyncService:
    def __init__(self, token_service: TokenService, ghl_api: GoHighLevelAPI,
                 field_cache: CustomFieldCache, matcher: Optional[CustomFieldMatcher] = None,
                 creator: Optional[CustomFieldBatchCreator] = None,
                 assembler: Optional[ContactAssembler] = None):
        self.token_service = token_service
        self.ghl_api = ghl_api
        self.field_cache = field_cache
        self.matcher = matcher or CustomFieldMatcher()
        self.creator = creator or CustomFieldBatchCreator(ghl_api)
        self.assembler = assembler or ContactAssembler()

    def get_valid_tokens(self, payload: Dict[str, Any]) -> Tuple[str, str, str]:
        """
        Resolve (company_id, location_id, location_access_token) for a payload.

        Raises NoActiveCredential, TokenRefreshFailed, MissingRequiredField,
        LocationNotFound or LocationTokenFailed.
        """
        company_id = self.token_service.get_active_company_id()
        company_access_token = self.token_service.get_valid_access_token(company_id)

        business_email = payload.get(BUSINESS_EMAIL_FIELD)
        if not business_email:
            logger.error("❌ No business email found in webhook payload")
            raise MissingRequiredField("Business email required")

        location_id = self.ghl_api.fetch_location_id(company_access_token, business_email)
        if not location_id:
            logger.error(f"❌ Failed to fetch location ID for business email: {business_email}")
            raise LocationNotFound("Location not found for business email", business_email=business_email)

        location_access_token = self.ghl_api.get_location_access_token(company_id, location_id, company_access_token)
        if not location_access_token:
            logger.error(f"❌ Failed to get location access token (company={company_id}, location={location_id})")
            raise LocationTokenFailed(
                "Failed to get location access token", company_id=company_id, location_id=location_id
            )

        logger.info(f"🔑 Tokens obtained successfully for location {location_id}")
        return company_id, location_id, location_access_token

    def get_custom_fields(self, location_access_token: str, location_id: str) -> Dict[str, Any]:
        all_custom_fields = self.field_cache.remember(
            custom_fields_cache_key(location_id),
            lambda: self.ghl_api.get_all_custom_fields(location_access_token, location_id)
        )
        if all_custom_fields is None:
            raise RemoteSchemaFetchFailed(
                "Failed to fetch custom fields for location", location_id=location_id
            )
        return all_custom_fields

    def process_custom_fields(self, payload: Dict[str, Any], location_access_token: str,
                              location_id: str) -> Tuple[ReconciliationResult, FieldCreationReport]:
        if not get_custom_field_names(payload, self.matcher.core_fields):
            return ReconciliationResult(), FieldCreationReport()

        all_custom_fields = self.get_custom_fields(location_access_token, location_id)
        reconciliation = self.matcher.reconcile(payload, all_custom_fields)

        report = self.creator.create_custom_fields(
            reconciliation.unmatched_fields, location_access_token, location_id
        )
        if report.created:
            self.field_cache.invalidate(custom_fields_cache_key(location_id))

        return reconciliation, report

    def upsert_contact(self, location_id: str, location_access_token: str,
                       contact_data: Dict[str, Any]) -> Dict[str, Any]:
        contact_result = self.ghl_api.upsert_contact(location_id, location_access_token, contact_data)
        if not contact_result:
            logger.error(f"❌ Failed to upsert contact {contact_data.get('email')} in location {location_id}")
            raise ContactUpsertFailed("Contact upsert failed", location_id=location_id)
        return contact_result

    def process_webhook(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Run the whole pipeline; returns the response `data` block"""
        start_time = time.time()

        _, location_id, location_access_token = self.get_valid_tokens(payload)
        reconciliation, report = self.process_custom_fields(payload, location_access_token, location_id)

        contact_data = self.assembler.prepare_contact_data(payload, reconciliation, report)
        contact_result = self.upsert_contact(location_id, location_access_token, contact_data)

        contact_id = (contact_result.get("contact") or {}).get("id")
        logger.info(
            f"✅ Webhook processed in {time.time() - start_time:.2f}s: contact={contact_id}, "
            f"email={contact_data.get('email')}, custom_fields_created={report.created_count}"
        )
        return {
            "contact_id": contact_id,
            "custom_fields_created": report.created_count,
            "location_id": location_id
        }


def build_field_cache() -> CustomFieldCache:
    if AppConfig.CUSTOM_FIELD_CACHE_TTL <= 0:
        return NullCustomFieldCache()
    return TTLCustomFieldCache(ttl=AppConfig.CUSTOM_FIELD_CACHE_TTL)


@lru_cache(maxsize=1)
def get_token_service() -> TokenService:
    return TokenService(CompanyTokenStore(), GoHighLevelAPI())


@lru_cache(maxsize=1)
def get_contact_sync_service() -> ContactSyncService:
    """Process-wide service instance; the custom field cache lives as long as it does"""
    token_service = get_token_service()
    return ContactSyncService(token_service, token_service.ghl_api, build_field_cache())
