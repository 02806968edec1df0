"""Tests for session bootstrap and expired-session recovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from eventvault.access import SessionGrantStore
from eventvault.backends import MemoryIdentityProvider
from eventvault.errors import TransientNetwork, VaultError
from eventvault.models import AnonymousActor, AuthenticatedActor, AuthEvent, Identity
from eventvault.session import SessionManager, is_expired_session, load_guest_actor


class _BrokenProvider(MemoryIdentityProvider):
    async def get_session(self):
        raise TransientNetwork("auth service down")


class TestBootstrap:
    """Tests for initial identity resolution."""

    @pytest.mark.asyncio
    async def test_signed_in(self, session) -> None:
        identity = await session.bootstrap()
        assert identity.user_id == "alice"
        assert session.actor == AuthenticatedActor(user_id="alice")

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_guest(self, grants, guest) -> None:
        """A provider that never answers leaves the session anonymous."""
        slow = MemoryIdentityProvider(Identity(user_id="alice"), delay=5.0)
        session = SessionManager(slow, grants, guest=guest, timeout=0.01)

        assert await session.bootstrap() is None
        assert isinstance(session.actor, AnonymousActor)
        assert session.actor.guest_id == "guest-test"

    @pytest.mark.asyncio
    async def test_provider_error_falls_back_to_guest(self, grants) -> None:
        session = SessionManager(_BrokenProvider(), grants, timeout=0.2)
        assert await session.bootstrap() is None
        assert isinstance(session.actor, AnonymousActor)


class TestAuthEvents:
    """Tests for following provider state changes."""

    @pytest.mark.asyncio
    async def test_sign_out_clears_grants(self, session, provider, grants) -> None:
        await session.bootstrap()
        grants.grant("v1")
        provider.emit(AuthEvent.SIGNED_OUT, None)

        assert session.identity is None
        assert not grants.has_grant("v1")

    @pytest.mark.asyncio
    async def test_sign_in_event(self, grants) -> None:
        provider = MemoryIdentityProvider()
        session = SessionManager(provider, grants, timeout=0.2)
        await session.bootstrap()
        provider.sign_in(Identity(user_id="bob"))
        assert session.actor == AuthenticatedActor(user_id="bob")

    @pytest.mark.asyncio
    async def test_close_stops_following(self, session, provider) -> None:
        await session.bootstrap()
        session.close()
        provider.emit(AuthEvent.SIGNED_OUT, None)
        assert session.identity is not None


class TestMiddleware:
    """Tests for the expired-session middleware."""

    def test_registered_once(self, session, store) -> None:
        session.register_middleware(store)
        with pytest.raises(RuntimeError):
            session.register_middleware(store)

    def test_teardown_on_close(self, session, store) -> None:
        middleware = session.register_middleware(store)
        assert middleware.installed
        session.close()
        assert not middleware.installed
        assert session.middleware is None
        session.register_middleware(store)

    @pytest.mark.asyncio
    async def test_expired_token_signs_out(self, session, store, grants) -> None:
        await session.bootstrap()
        middleware = session.register_middleware(store)
        grants.grant("v1")
        store.faults.add("get_vault", VaultError("Invalid refresh token", status=400))

        with pytest.raises(VaultError):
            await store.get_vault("v1")

        assert middleware.recoveries == 1
        assert session.identity is None
        assert not grants.has_grant("v1")

    @pytest.mark.asyncio
    async def test_other_errors_ignored(self, session, store) -> None:
        await session.bootstrap()
        middleware = session.register_middleware(store)
        store.faults.add("get_vault", VaultError("Invalid refresh token", status=500))
        store.faults.add("list_vaults", TransientNetwork("timeout"))

        with pytest.raises(VaultError):
            await store.get_vault("v1")
        with pytest.raises(TransientNetwork):
            await store.list_vaults("alice")

        assert middleware.recoveries == 0
        assert session.identity is not None


class TestHelpers:
    """Tests for module-level helpers."""

    def test_is_expired_session(self) -> None:
        assert is_expired_session(VaultError("Refresh Token Not Found", status=401))
        assert not is_expired_session(VaultError("Refresh Token Not Found"))
        assert not is_expired_session(ValueError("Invalid refresh token"))

    def test_guest_actor_persisted(self, tmp_path: Path) -> None:
        path = tmp_path / "session" / "guest.json"
        first = load_guest_actor(path)
        second = load_guest_actor(path)
        assert first.guest_id == second.guest_id
        assert first.guest_id.startswith("guest-")

    def test_guest_actor_corrupt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "guest.json"
        path.write_text("garbage")
        assert load_guest_actor(path).guest_id.startswith("guest-")

    def test_grants_are_session_scoped(self) -> None:
        grants = SessionGrantStore()
        session = SessionManager(MemoryIdentityProvider(), grants)
        assert session.grants is grants
