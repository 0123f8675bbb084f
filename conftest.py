# conftest.py - shared fixtures for the contact sync tests

from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.models import Base
from database.token_store import CompanyTokenStore


class FakeClock:
    """Settable replacement for datetime.utcnow"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeGHL:
    """In-memory stand-in for GoHighLevelAPI that records every call"""

    def __init__(self):
        self.calls: List[tuple] = []
        self.location_id: Optional[str] = "loc_123"
        self.location_token: Optional[str] = "loc_token"
        self.custom_fields: Optional[Dict[str, Any]] = {"customFields": []}
        self.refresh_response: Optional[Dict[str, Any]] = None
        self.exchange_response: Dict[str, Any] = {}
        self.create_errors: Dict[str, Exception] = {}
        self.upsert_response: Optional[Dict[str, Any]] = {"contact": {"id": "contact_1"}}
        self.upserted: List[Dict[str, Any]] = []

    def fetch_location_id(self, access_token, email):
        self.calls.append(("fetch_location_id", access_token, email))
        return self.location_id

    def get_location_access_token(self, company_id, location_id, access_token):
        self.calls.append(("get_location_access_token", company_id, location_id, access_token))
        return self.location_token

    def get_all_custom_fields(self, location_access_token, location_id):
        self.calls.append(("get_all_custom_fields", location_id))
        return self.custom_fields

    def create_custom_field(self, location_access_token, location_id, field_name="Custom Field", data_type="TEXT"):
        self.calls.append(("create_custom_field", field_name))
        if field_name in self.create_errors:
            raise self.create_errors[field_name]
        key = field_name.lower().replace(" ", "_")
        return {"customField": {"id": f"id_{key}", "name": field_name, "fieldKey": f"contact.{key}"}}

    def upsert_contact(self, location_id, location_access_token, contact_data):
        self.calls.append(("upsert_contact", location_id))
        self.upserted.append(contact_data)
        return self.upsert_response

    def refresh_access_token(self, refresh_token):
        self.calls.append(("refresh_access_token", refresh_token))
        return self.refresh_response

    def exchange_code_for_token(self, code):
        self.calls.append(("exchange_code_for_token", code))
        return self.exchange_response

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def token_store(session_factory):
    return CompanyTokenStore(session_factory=session_factory)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 12, 0, 0))


@pytest.fixture
def fake_ghl():
    return FakeGHL()
