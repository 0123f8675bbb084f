# api/services/token_service.py
"""
Company token lifecycle: validity check, refresh, install/uninstall toggles and
persistence of the OAuth callback response.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from cachetools import TTLCache

from config import AppConfig
from database.models import CompanyToken
from database.token_store import CompanyTokenStore
from api.services.ghl_api import GoHighLevelAPI
from api.services.errors import NoTokenFound, RefreshFailed, NoActiveCredential

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600  # seconds, used when GHL omits expires_in
REFRESH_LOCK_TTL = 3600  # seconds a per-company refresh lock is kept after its last use


class TokenService:
    """Returns usable company access tokens, refreshing them when close to expiry"""

    # Idle locks expire; every lookup re-inserts the entry and restarts its TTL
    _refresh_locks: TTLCache = TTLCache(maxsize=1024, ttl=REFRESH_LOCK_TTL)
    _locks_guard = threading.Lock()

    def __init__(self, token_store: CompanyTokenStore, ghl_api: GoHighLevelAPI,
                 clock: Callable[[], datetime] = datetime.utcnow,
                 expiry_buffer_minutes: Optional[int] = None):
        self.token_store = token_store
        self.ghl_api = ghl_api
        self.clock = clock
        buffer = AppConfig.TOKEN_EXPIRY_BUFFER_MINUTES if expiry_buffer_minutes is None else expiry_buffer_minutes
        self.expiry_buffer = timedelta(minutes=buffer)

    @classmethod
    def _lock_for(cls, company_id: str) -> threading.Lock:
        with cls._locks_guard:
            lock = cls._refresh_locks.get(company_id) or threading.Lock()
            cls._refresh_locks[company_id] = lock
            return lock

    def get_active_company_id(self) -> str:
        """Company id of the single active credential"""
        token = self.token_store.get_active()
        if token is None:
            logger.error("❌ No active company token found")
            raise NoActiveCredential("No active company token found")
        return token.company_id

    def is_token_expired(self, token: CompanyToken) -> bool:
        """
        A token without expires_at never expires. Otherwise it counts as expired
        from expires_at minus the safety buffer onwards.
        """
        if token.expires_at is None:
            return False
        return self.clock() >= token.expires_at - self.expiry_buffer

    def get_valid_access_token(self, company_id: str) -> str:
        """
        Return a usable access token for the company.

        Raises:
            NoTokenFound: no credential row for company_id
            RefreshFailed: the token was expired and could not be refreshed
        """
        token = self.token_store.get_by_company_id(company_id)
        if token is None:
            logger.error(f"❌ No token found for company: {company_id}")
            raise NoTokenFound(f"No token found for company: {company_id}", company_id=company_id)

        if not self.is_token_expired(token):
            return token.access_token

        logger.info(f"🔄 Token expired, attempting refresh for company: {company_id}")
        refreshed = self.refresh_token(company_id)
        if refreshed:
            return refreshed

        logger.error(f"❌ Failed to refresh expired token for company: {company_id}")
        raise RefreshFailed("Failed to get valid access token", company_id=company_id)

    def refresh_token(self, company_id: str) -> Optional[str]:
        """
        Refresh the company's OAuth token and overwrite the stored row.

        Returns the new access token, or None when there is no refresh token, GHL
        rejects the refresh or the new token cannot be stored. Stored state is
        left untouched on failure.
        """
        with self._lock_for(company_id):
            token = self.token_store.get_by_company_id(company_id)
            if token is None or not token.refresh_token:
                logger.error(f"❌ No refresh token found for company: {company_id}")
                return None

            # Another request may have refreshed while we waited for the lock
            if not self.is_token_expired(token):
                return token.access_token

            data = self.ghl_api.refresh_access_token(token.refresh_token)
            if not data:
                logger.error(f"❌ Failed to refresh token for company: {company_id}")
                return None

            try:
                self.token_store.update_token(
                    company_id,
                    access_token=data["access_token"],
                    refresh_token=data.get("refresh_token") or token.refresh_token,
                    expires_at=self.clock() + timedelta(seconds=int(data.get("expires_in") or DEFAULT_EXPIRES_IN)),
                    token_type=data.get("token_type") or "Bearer",
                )
            except Exception as e:
                logger.error(f"❌ Failed to store refreshed token for company {company_id}: {e}")
                return None

            logger.info(f"✅ Token refreshed successfully for company: {company_id}")
            return data["access_token"]

    def store_oauth_response(self, response: Dict[str, Any]) -> CompanyToken:
        """Persist the token record produced by the authorization-code exchange"""
        company_id = response.get("companyId") or "default"
        return self.token_store.save_token(
            company_id,
            access_token=response["access_token"],
            refresh_token=response.get("refresh_token"),
            expires_at=self.clock() + timedelta(seconds=int(response.get("expires_in") or DEFAULT_EXPIRES_IN)),
            token_type=response.get("token_type") or "Bearer",
        )

    def activate_company(self, company_id: str) -> bool:
        activated = self.token_store.set_active_status(company_id, True)
        if activated:
            logger.info(f"✅ Token activated for company: {company_id}")
        return activated

    def deactivate_company(self, company_id: str) -> bool:
        deactivated = self.token_store.set_active_status(company_id, False)
        if deactivated:
            logger.info(f"🛑 Token deactivated for company: {company_id}")
        return deactivated
