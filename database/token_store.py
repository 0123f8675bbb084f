# database/token_store.py
"""
Repository for GHL company credentials (company_tokens table).

Rows are keyed by company_id and are never hard-deleted; install/uninstall only
toggle active_status. Activating a company deactivates every other row so that
get_active() always has at most one candidate.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from database.models import CompanyToken
from database.simple_connection import get_db_session

logger = logging.getLogger(__name__)


class CompanyTokenStore:
    """Credential repository scoped by company id"""

    def __init__(self, session_factory: Callable[[], Session] = get_db_session):
        self.session_factory = session_factory

    def get_by_company_id(self, company_id: str) -> Optional[CompanyToken]:
        session = self.session_factory()
        try:
            return session.query(CompanyToken).filter(CompanyToken.company_id == company_id).first()
        finally:
            session.close()

    def get_active(self) -> Optional[CompanyToken]:
        """Return the single active credential, or None"""
        session = self.session_factory()
        try:
            rows = (
                session.query(CompanyToken)
                .filter(CompanyToken.active_status.is_(True))
                .order_by(CompanyToken.updated_at.desc())
                .all()
            )
            if len(rows) > 1:
                logger.warning(
                    f"⚠️ {len(rows)} active company tokens found, using most recent: {rows[0].company_id}"
                )
            return rows[0] if rows else None
        finally:
            session.close()

    def save_token(
        self,
        company_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
        token_type: str = "Bearer",
    ) -> CompanyToken:
        """Create or replace the credential for a company and mark it active"""
        session = self.session_factory()
        try:
            token = session.query(CompanyToken).filter(CompanyToken.company_id == company_id).first()
            if token is None:
                token = CompanyToken(company_id=company_id)
                session.add(token)
            token.access_token = access_token
            token.refresh_token = refresh_token
            token.expires_at = expires_at
            token.token_type = token_type
            token.active_status = True
            self._deactivate_others(session, company_id)
            session.commit()
            session.refresh(token)
            logger.info(f"💾 Token saved for company: {company_id}")
            return token
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def update_token(
        self,
        company_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
        token_type: str = "Bearer",
    ) -> Optional[CompanyToken]:
        """Overwrite an existing credential in place after a refresh"""
        session = self.session_factory()
        try:
            token = session.query(CompanyToken).filter(CompanyToken.company_id == company_id).first()
            if token is None:
                return None
            token.access_token = access_token
            token.refresh_token = refresh_token
            token.expires_at = expires_at
            token.token_type = token_type
            token.active_status = True
            self._deactivate_others(session, company_id)
            session.commit()
            session.refresh(token)
            return token
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def set_active_status(self, company_id: str, active: bool) -> bool:
        """Toggle active_status; returns False when the company has no credential"""
        session = self.session_factory()
        try:
            token = session.query(CompanyToken).filter(CompanyToken.company_id == company_id).first()
            if token is None:
                logger.warning(f"No token found for company: {company_id}")
                return False
            token.active_status = active
            if active:
                self._deactivate_others(session, company_id)
            session.commit()
            return True
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _deactivate_others(session: Session, company_id: str):
        session.query(CompanyToken).filter(
            CompanyToken.company_id != company_id,
            CompanyToken.active_status.is_(True),
        ).update({CompanyToken.active_status: False}, synchronize_session=False)
