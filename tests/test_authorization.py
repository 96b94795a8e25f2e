"""Tests for fail-closed room resolution."""

from datetime import timedelta

import pytest

from castproxy.responder.authorization import AuthorizationResolver, authorized_room
from tests.helpers import NOW, UNREADABLE, FakePairingStore, pairing


class TestAuthorizedRoom:
    def test_active_pairing(self):
        assert authorized_room(pairing("10.0.20.5", "101"), NOW) == "101"

    def test_absent(self):
        assert authorized_room(None, NOW) is None

    def test_expired(self):
        assert authorized_room(pairing("10.0.20.5", "101", expires_in=-1), NOW) is None

    def test_expiry_boundary_is_expired(self):
        assert authorized_room(pairing("10.0.20.5", "101", expires_in=0), NOW) is None

    def test_one_microsecond_before_expiry(self):
        record = pairing("10.0.20.5", "101", expires_in=0)
        assert authorized_room(record, NOW - timedelta(microseconds=1)) == "101"


class TestAuthorizationResolver:
    @pytest.mark.asyncio
    async def test_resolves_paired_guest(self):
        store = FakePairingStore(pairing("10.0.20.5", "101"))
        assert await AuthorizationResolver(store).resolve("10.0.20.5", NOW) == "101"

    @pytest.mark.asyncio
    async def test_exact_address_only(self):
        store = FakePairingStore(pairing("10.0.20.5", "101"))
        resolver = AuthorizationResolver(store)
        assert await resolver.resolve("10.0.20.50", NOW) is None
        assert await resolver.resolve("10.0.20.0", NOW) is None
        assert store.lookups == ["10.0.20.50", "10.0.20.0"]

    @pytest.mark.asyncio
    async def test_reads_store_on_every_query(self):
        store = FakePairingStore(pairing("10.0.20.5", "101"))
        resolver = AuthorizationResolver(store)
        assert await resolver.resolve("10.0.20.5", NOW) == "101"
        del store.records["10.0.20.5"]
        assert await resolver.resolve("10.0.20.5", NOW) is None

    @pytest.mark.asyncio
    async def test_expired_pairing_denied(self):
        store = FakePairingStore(pairing("10.0.20.5", "101", expires_in=-1))
        assert await AuthorizationResolver(store).resolve("10.0.20.5", NOW) is None

    @pytest.mark.asyncio
    async def test_unreadable_store_denied(self):
        store = FakePairingStore(error=UNREADABLE)
        assert await AuthorizationResolver(store).resolve("10.0.20.5", NOW) is None

    @pytest.mark.asyncio
    async def test_unexpected_store_error_denied(self):
        store = FakePairingStore(error=RuntimeError("boom"))
        assert await AuthorizationResolver(store).resolve("10.0.20.5", NOW) is None

    @pytest.mark.asyncio
    async def test_slow_store_denied(self):
        store = FakePairingStore(pairing("10.0.20.5", "101"), delay=0.3)
        resolver = AuthorizationResolver(store, timeout=0.05)
        assert await resolver.resolve("10.0.20.5", NOW) is None
