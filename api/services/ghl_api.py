# api/services/ghl_api.py

import requests
import logging
from typing import Dict, Optional, Any

from config import AppConfig

logger = logging.getLogger(__name__)


class GoHighLevelAPI:
    """
    Stateless GHL v2 API client.

    Every call fails closed: a non-2xx status or a transport exception is logged
    and turned into None (or {} for the code exchange). Nothing raises past
    this class.
    """

    def __init__(self, base_url: Optional[str] = None, api_version: Optional[str] = None,
                 timeout: Optional[int] = None):
        self.base_url = (base_url or AppConfig.GHL_API_BASE_URL).rstrip("/")
        self.api_version = api_version or AppConfig.GHL_API_VERSION
        self.timeout = timeout or AppConfig.GHL_REQUEST_TIMEOUT

    def _headers(self, access_token: str, json_body: bool = False) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {access_token}",
            "Version": self.api_version
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    @staticmethod
    def _ok(response: requests.Response) -> bool:
        return 200 <= response.status_code < 300

    # ============================================
    # LOCATION OPERATIONS
    # ============================================

    def fetch_location_id(self, access_token: str, email: str) -> Optional[str]:
        """Find the sub-account (location) registered with the given business email"""
        try:
            response = requests.get(
                f"{self.base_url}/locations/search",
                headers=self._headers(access_token),
                params={"email": email},
                timeout=self.timeout
            )
            if not self._ok(response):
                logger.error(f"❌ Location search failed: {response.status_code} - {response.text}")
                return None

            locations = (response.json() or {}).get("locations") or []
            location_id = locations[0].get("id") if locations else None
            logger.info(f"📍 Location lookup for {email}: {location_id}")
            return location_id
        except Exception as e:
            logger.error(f"❌ Exception while retrieving location ID for {email}: {e}")
            return None

    def get_location_access_token(self, company_id: str, location_id: str, access_token: str) -> Optional[str]:
        """Exchange a company-level token for a location-scoped token"""
        try:
            response = requests.post(
                f"{self.base_url}/oauth/locationToken",
                headers=self._headers(access_token),
                data={"companyId": company_id, "locationId": location_id},
                timeout=self.timeout
            )
            if not self._ok(response):
                logger.error(
                    f"❌ Failed to retrieve location access token (company={company_id}, "
                    f"location={location_id}): {response.status_code} - {response.text}"
                )
                return None

            location_token = (response.json() or {}).get("access_token")
            logger.info(f"🔑 Location access token issued for location {location_id}")
            return location_token
        except Exception as e:
            logger.error(
                f"❌ Exception while fetching location access token (company={company_id}, "
                f"location={location_id}): {e}"
            )
            return None

    # ============================================
    # CUSTOM FIELD OPERATIONS
    # ============================================

    def get_all_custom_fields(self, location_access_token: str, location_id: str) -> Optional[Dict[str, Any]]:
        """Return the raw {"customFields": [...]} schema dump for a location"""
        try:
            response = requests.get(
                f"{self.base_url}/locations/{location_id}/customFields",
                headers=self._headers(location_access_token),
                timeout=self.timeout
            )
            if not self._ok(response):
                logger.error(
                    f"❌ Failed to get custom fields for location {location_id}: "
                    f"{response.status_code} - {response.text}"
                )
                return None

            custom_fields = response.json() or {}
            logger.info(
                f"📋 Retrieved {len(custom_fields.get('customFields') or [])} custom fields "
                f"for location {location_id}"
            )
            return custom_fields
        except Exception as e:
            logger.error(f"❌ Exception while retrieving custom fields for location {location_id}: {e}")
            return None

    def create_custom_field(self, location_access_token: str, location_id: str,
                            field_name: str = "Custom Field", data_type: str = "TEXT") -> Optional[Dict[str, Any]]:
        """
        Create one contact custom field.

        Returns {"customField": {...}} on success, {"error": <body>, "status_code": n}
        when GHL rejects the request, or None on a transport error.
        """
        payload = {
            "name": field_name,
            "dataType": data_type,
            "placeholder": "Placeholder Text",
            "acceptedFormat": [".pdf", ".docx", ".jpeg"],
            "isMultipleFile": False,
            "maxNumberOfFiles": 2,
            "textBoxListOptions": [
                {"label": "First", "prefillValue": ""}
            ],
            "position": 0,
            "model": "contact"
        }
        try:
            response = requests.post(
                f"{self.base_url}/locations/{location_id}/customFields",
                headers=self._headers(location_access_token, json_body=True),
                json=payload,
                timeout=self.timeout
            )
            if not self._ok(response):
                if "already exists" in response.text.lower():
                    logger.debug(f"Custom field '{field_name}' already exists in location {location_id}")
                else:
                    logger.error(
                        f"❌ Failed to create custom field '{field_name}' in location {location_id}: "
                        f"{response.status_code} - {response.text}"
                    )
                return {"error": response.text, "status_code": response.status_code}

            created_field = response.json() or {}
            logger.debug(
                f"✅ Custom field '{field_name}' created: "
                f"{(created_field.get('customField') or {}).get('fieldKey')}"
            )
            return created_field
        except Exception as e:
            logger.error(f"❌ Exception while creating custom field '{field_name}' in location {location_id}: {e}")
            return None

    # ============================================
    # CONTACT OPERATIONS
    # ============================================

    def upsert_contact(self, location_id: str, location_access_token: str,
                       contact_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Create or update a contact inside a location.

        Args:
            location_id: The location (sub-account) ID, required by the API
            location_access_token: Token returned by /oauth/locationToken
            contact_data: Contact attributes plus the customFields list

        Returns:
            The response body ({"contact": {...}, ...}) or None on error
        """
        if not location_access_token:
            logger.warning("upsert_contact called without an access token")
            return None

        payload = {"locationId": location_id, **contact_data}
        payload["locationId"] = location_id

        logger.info(
            f"📤 Upserting contact in location {location_id}: keys={list(payload.keys())}, "
            f"custom_fields={len(payload.get('customFields') or [])}"
        )
        try:
            response = requests.post(
                f"{self.base_url}/contacts/upsert",
                headers=self._headers(location_access_token, json_body=True),
                json=payload,
                timeout=self.timeout
            )
            if not self._ok(response):
                logger.error(
                    f"❌ Failed to upsert contact in location {location_id}: "
                    f"{response.status_code} - {response.text}"
                )
                return None

            body = response.json() or {}
            logger.info(f"✅ Contact upserted: {(body.get('contact') or {}).get('id')} (location {location_id})")
            return body
        except Exception as e:
            logger.error(f"❌ Exception while upserting contact in location {location_id}: {e}")
            return None

    # ============================================
    # OAUTH OPERATIONS
    # ============================================

    def exchange_code_for_token(self, code: str) -> Dict[str, Any]:
        """Trade an authorization code for a company token record ({} on failure)"""
        oauth = AppConfig.get_oauth_config()
        try:
            response = requests.post(
                f"{self.base_url}/oauth/token",
                data={
                    "client_id": oauth["client_id"],
                    "client_secret": oauth["client_secret"],
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": oauth["redirect_uri"],
                },
                headers={"Accept": "application/json"},
                timeout=self.timeout
            )
            if not self._ok(response):
                logger.error(f"❌ OAuth token exchange failed: {response.status_code} - {response.text}")
                return {}
            return response.json() or {}
        except Exception as e:
            logger.error(f"❌ OAuth token exchange error: {e}")
            return {}

    def refresh_access_token(self, refresh_token: str) -> Optional[Dict[str, Any]]:
        """Run the refresh_token grant; returns the token response or None"""
        oauth = AppConfig.get_oauth_config()
        try:
            response = requests.post(
                f"{self.base_url}/oauth/token",
                data={
                    "client_id": oauth["client_id"],
                    "client_secret": oauth["client_secret"],
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "user_type": "Company",
                    "redirect_uri": oauth["redirect_uri"],
                },
                headers={"Accept": "application/json"},
                timeout=self.timeout
            )
            if not self._ok(response):
                logger.error(f"❌ Token refresh failed: {response.status_code} - {response.text}")
                return None
            data = response.json() or {}
            if not data.get("access_token"):
                logger.error("❌ Token refresh response did not include an access_token")
                return None
            return data
        except Exception as e:
            logger.error(f"❌ Exception while refreshing token: {e}")
            return None
