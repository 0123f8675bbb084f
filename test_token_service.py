#!/usr/bin/env python3
"""
Tests for the company token lifecycle and the credential store.
"""

import threading
import time
from datetime import timedelta

import pytest
from cachetools import TTLCache
from sqlalchemy.exc import OperationalError

from api.services.token_service import TokenService, DEFAULT_EXPIRES_IN
from api.services.errors import NoActiveCredential, NoTokenFound, RefreshFailed, TokenRefreshFailed
from conftest import FakeGHL


@pytest.fixture
def service(token_store, fake_ghl, clock):
    return TokenService(token_store, fake_ghl, clock=clock, expiry_buffer_minutes=5)


def save(token_store, clock, company_id="comp_1", expires_in=timedelta(hours=1), refresh_token="refresh_1"):
    return token_store.save_token(
        company_id,
        access_token=f"access_{company_id}",
        refresh_token=refresh_token,
        expires_at=None if expires_in is None else clock.now + expires_in,
    )


def test_error_aliases():
    assert NoTokenFound is NoActiveCredential
    assert RefreshFailed is TokenRefreshFailed
    assert NoTokenFound("x").status_code == 404
    assert RefreshFailed("x").status_code == 401


def test_valid_token_is_returned_without_refresh(service, token_store, clock, fake_ghl):
    save(token_store, clock)
    assert service.get_valid_access_token("comp_1") == "access_comp_1"
    assert fake_ghl.count("refresh_access_token") == 0


def test_token_without_expiry_never_expires(service, token_store, clock, fake_ghl):
    save(token_store, clock, expires_in=None)
    clock.now += timedelta(days=3650)
    assert service.get_valid_access_token("comp_1") == "access_comp_1"
    assert fake_ghl.count("refresh_access_token") == 0


def test_expiry_buffer(service, token_store, clock):
    token = save(token_store, clock, expires_in=timedelta(minutes=6))
    assert not service.is_token_expired(token)

    clock.now += timedelta(minutes=1)
    assert service.is_token_expired(token)


def test_unknown_company_raises_no_token_found(service):
    with pytest.raises(NoTokenFound):
        service.get_valid_access_token("missing")


def test_expired_token_is_refreshed(service, token_store, clock, fake_ghl):
    save(token_store, clock, expires_in=timedelta(minutes=-1))
    fake_ghl.refresh_response = {"access_token": "new_access", "refresh_token": "new_refresh", "expires_in": 86399}

    assert service.get_valid_access_token("comp_1") == "new_access"

    stored = token_store.get_by_company_id("comp_1")
    assert stored.access_token == "new_access"
    assert stored.refresh_token == "new_refresh"
    assert stored.expires_at == clock.now + timedelta(seconds=86399)
    assert stored.expires_at > clock.now
    assert stored.active_status is True
    assert fake_ghl.calls == [("refresh_access_token", "refresh_1")]


def test_refresh_keeps_old_refresh_token_and_defaults_expiry(service, token_store, clock, fake_ghl):
    save(token_store, clock, expires_in=timedelta(minutes=-1))
    fake_ghl.refresh_response = {"access_token": "new_access"}

    service.get_valid_access_token("comp_1")

    stored = token_store.get_by_company_id("comp_1")
    assert stored.refresh_token == "refresh_1"
    assert stored.expires_at == clock.now + timedelta(seconds=DEFAULT_EXPIRES_IN)
    assert stored.token_type == "Bearer"


def test_missing_refresh_token_raises_refresh_failed(service, token_store, clock, fake_ghl):
    save(token_store, clock, expires_in=timedelta(minutes=-1), refresh_token=None)

    with pytest.raises(RefreshFailed):
        service.get_valid_access_token("comp_1")
    assert fake_ghl.count("refresh_access_token") == 0


def test_failed_refresh_leaves_stored_token_untouched(service, token_store, clock, fake_ghl):
    original = save(token_store, clock, expires_in=timedelta(minutes=-1))
    fake_ghl.refresh_response = None

    with pytest.raises(RefreshFailed):
        service.get_valid_access_token("comp_1")

    stored = token_store.get_by_company_id("comp_1")
    assert stored.access_token == "access_comp_1"
    assert stored.refresh_token == "refresh_1"
    assert stored.expires_at == original.expires_at


def test_active_company(service, token_store, clock):
    with pytest.raises(NoActiveCredential):
        service.get_active_company_id()

    save(token_store, clock, company_id="comp_1")
    save(token_store, clock, company_id="comp_2")

    # Saving a credential deactivates every other one
    assert service.get_active_company_id() == "comp_2"
    assert token_store.get_by_company_id("comp_1").active_status is False


def test_install_and_uninstall_toggle_active_flag(service, token_store, clock):
    save(token_store, clock, company_id="comp_1")
    save(token_store, clock, company_id="comp_2")

    assert service.activate_company("comp_1") is True
    assert service.get_active_company_id() == "comp_1"
    assert token_store.get_by_company_id("comp_2").active_status is False

    assert service.deactivate_company("comp_1") is True
    with pytest.raises(NoActiveCredential):
        service.get_active_company_id()

    # Rows are kept after uninstall
    assert token_store.get_by_company_id("comp_1") is not None
    assert service.activate_company("unknown") is False


def test_store_oauth_response(service, token_store, clock):
    token = service.store_oauth_response({"access_token": "a", "refresh_token": "r", "expires_in": 100,
                                          "companyId": "comp_9", "token_type": "bearer"})
    assert token.company_id == "comp_9"
    assert token.token_type == "bearer"
    assert token.expires_at == clock.now + timedelta(seconds=100)

    fallback = service.store_oauth_response({"access_token": "b"})
    assert fallback.company_id == "default"
    assert fallback.token_type == "Bearer"
    assert fallback.refresh_token is None
    assert fallback.expires_at == clock.now + timedelta(seconds=DEFAULT_EXPIRES_IN)
    assert service.get_active_company_id() == "default"


def test_update_token_for_missing_company(token_store, clock):
    assert token_store.update_token("nobody", "a", None, clock.now) is None


class MemoryToken:
    def __init__(self, **fields):
        self.__dict__.update(fields)


class MemoryTokenStore:
    """Thread-safe in-memory store for the refresh race test"""

    def __init__(self, token):
        self.token = token
        self.updates = 0

    def get_by_company_id(self, company_id):
        return MemoryToken(**self.token.__dict__) if company_id == self.token.company_id else None

    def update_token(self, company_id, access_token, refresh_token, expires_at, token_type="Bearer"):
        self.updates += 1
        self.token = MemoryToken(company_id=company_id, access_token=access_token,
                                 refresh_token=refresh_token, expires_at=expires_at, token_type=token_type)
        return self.token


class SlowRefreshGHL(FakeGHL):
    def refresh_access_token(self, refresh_token):
        time.sleep(0.05)
        return super().refresh_access_token(refresh_token)


def test_concurrent_refreshes_for_one_company_are_single_flight(clock):
    store = MemoryTokenStore(MemoryToken(company_id="race_co", access_token="old", refresh_token="r",
                                         expires_at=clock.now - timedelta(minutes=1), token_type="Bearer"))
    ghl = SlowRefreshGHL()
    ghl.refresh_response = {"access_token": "fresh", "expires_in": 3600}
    service = TokenService(store, ghl, clock=clock, expiry_buffer_minutes=5)

    results = []
    threads = [threading.Thread(target=lambda: results.append(service.get_valid_access_token("race_co")))
               for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == ["fresh"] * 4
    assert ghl.count("refresh_access_token") == 1
    assert store.updates == 1


def test_store_failure_after_refresh_raises_refresh_failed(service, token_store, clock, fake_ghl, monkeypatch):
    save(token_store, clock, expires_in=timedelta(minutes=-1))
    fake_ghl.refresh_response = {"access_token": "new_access", "expires_in": 3600}

    def locked(*args, **kwargs):
        raise OperationalError("UPDATE company_tokens", {}, Exception("database is locked"))

    monkeypatch.setattr(token_store, "update_token", locked)

    with pytest.raises(RefreshFailed):
        service.get_valid_access_token("comp_1")
    assert token_store.get_by_company_id("comp_1").access_token == "access_comp_1"


def test_refresh_locks_are_per_company_and_bounded():
    assert TokenService._lock_for("lock_co_a") is TokenService._lock_for("lock_co_a")
    assert TokenService._lock_for("lock_co_a") is not TokenService._lock_for("lock_co_b")
    assert isinstance(TokenService._refresh_locks, TTLCache)
    assert TokenService._refresh_locks.maxsize == 1024
