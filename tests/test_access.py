"""Tests for access resolution and the passkey join protocol."""

from __future__ import annotations

import itertools
from pathlib import Path

import pytest

from conftest import make_vault, seed_member, seed_vault
from eventvault.access import (
    JOIN_FAILED_MESSAGE,
    AccessResolver,
    SessionGrantStore,
    derive_permissions,
    passkey_matches,
)
from eventvault.errors import Conflict, TransientNetwork
from eventvault.models import AnonymousActor, AuthenticatedActor, Member, MemberRole


ROLES = [None, MemberRole.VIEWER, MemberRole.ADMIN, MemberRole.OWNER]


# ---------------------------------------------------------------------------
# Pure derivation
# ---------------------------------------------------------------------------


class TestDerivePermissions:
    """The priority order, checked over every combination of signals."""

    def test_vault_owner_has_everything(self) -> None:
        """The owner gets full access whatever the flags say."""
        vault = make_vault(owner_id="alice", allow_uploads=False, allow_downloads=False)
        perms = derive_permissions(AuthenticatedActor(user_id="alice"), vault, None, False)
        assert perms.can_view and perms.can_upload and perms.can_download
        assert perms.is_owner and perms.is_admin

    @pytest.mark.parametrize(
        "role,is_public,has_grant",
        list(itertools.product(ROLES, [False, True], [False, True])),
    )
    def test_non_owner_grid(self, role, is_public, has_grant) -> None:
        """Every membership/public/grant combination for a non-owner."""
        vault = make_vault(is_public=is_public, allow_uploads=True, allow_downloads=False)
        membership = Member(vault_id="v1", user_id="bob", role=role) if role else None

        perms = derive_permissions(AuthenticatedActor(user_id="bob"), vault, membership, has_grant)

        if role in (MemberRole.OWNER, MemberRole.ADMIN):
            assert perms.can_view and perms.can_upload and perms.can_download
            assert perms.is_admin
            assert perms.is_owner == (role == MemberRole.OWNER)
        else:
            expected_view = role is not None or is_public or has_grant
            assert perms.can_view == expected_view
            assert perms.can_upload == expected_view
            assert perms.can_download is False
            assert not perms.is_admin and not perms.is_owner

    @pytest.mark.parametrize("is_public,has_grant", list(itertools.product([False, True], [False, True])))
    def test_anonymous_grid(self, is_public, has_grant) -> None:
        """Anonymous actors rely on the public flag or a session grant."""
        vault = make_vault(is_public=is_public, allow_uploads=False, allow_downloads=True)
        perms = derive_permissions(AnonymousActor(), vault, None, has_grant)
        assert perms.can_view == (is_public or has_grant)
        assert perms.can_download == (is_public or has_grant)
        assert perms.can_upload is False

    def test_no_actor_private_vault(self) -> None:
        perms = derive_permissions(None, make_vault(), None, False)
        assert not perms.can_view


class TestPasskeyMatches:
    """Tests for passkey comparison."""

    def test_exact_match(self) -> None:
        assert passkey_matches("1234", "1234")

    def test_whitespace_trimmed(self) -> None:
        """Surrounding whitespace in the candidate is ignored."""
        assert passkey_matches("  1234\n", "1234")

    def test_case_sensitive(self) -> None:
        assert not passkey_matches("abcd", "ABCD")

    def test_no_passkey_never_matches(self) -> None:
        """A vault without a passkey rejects everything, even empty input."""
        assert not passkey_matches("", None)
        assert not passkey_matches("anything", None)

    def test_empty_passkey_is_no_passkey(self) -> None:
        """An empty stored passkey is normalized to None."""
        assert make_vault(passkey="").passkey is None


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class TestResolve:
    """Tests for AccessResolver.resolve."""

    @pytest.mark.asyncio
    async def test_public_vault_adds_viewer_membership(self, store, grants, alice) -> None:
        """A signed-in visitor of a public vault becomes a viewer."""
        vault = seed_vault(store, is_public=True)
        perms = await AccessResolver(store, grants).resolve(alice, vault)

        assert perms.can_view
        member = store.members[("v1", "alice")]
        assert member.role == MemberRole.VIEWER

    @pytest.mark.asyncio
    async def test_public_vault_anonymous_no_membership(self, store, grants, guest) -> None:
        """Public, downloads off, anonymous: view only and no row written."""
        vault = seed_vault(store, is_public=True, allow_downloads=False, allow_uploads=True)
        perms = await AccessResolver(store, grants).resolve(guest, vault)

        assert perms.can_view
        assert perms.can_download is False
        assert perms.can_upload is True
        assert store.members == {}

    @pytest.mark.asyncio
    async def test_public_join_conflict_swallowed(self, store, grants, alice) -> None:
        """A concurrent membership insert is not an error."""
        vault = seed_vault(store, is_public=True)
        store.faults.add("insert_membership", Conflict("duplicate key"))

        perms = await AccessResolver(store, grants).resolve(alice, vault)
        assert perms.can_view

    @pytest.mark.asyncio
    async def test_owner_gets_no_membership_row(self, store, grants) -> None:
        vault = seed_vault(store, is_public=True, owner_id="alice")
        perms = await AccessResolver(store, grants).resolve(AuthenticatedActor(user_id="alice"), vault)
        assert perms.is_owner
        assert store.members == {}

    @pytest.mark.asyncio
    async def test_membership_lookup_failure_treated_as_none(self, store, grants, alice) -> None:
        """A failed lookup degrades to 'no membership', never to an exception."""
        vault = seed_vault(store)
        seed_member(store, "v1", "alice", MemberRole.VIEWER)
        store.faults.add("get_membership", TransientNetwork("timeout"))

        perms = await AccessResolver(store, grants).resolve(alice, vault)
        assert not perms.can_view

    @pytest.mark.asyncio
    async def test_admin_member_can_upload_when_uploads_off(self, store, grants, alice) -> None:
        vault = seed_vault(store, allow_uploads=False)
        seed_member(store, "v1", "alice", MemberRole.ADMIN)

        perms = await AccessResolver(store, grants).resolve(alice, vault)
        assert perms.can_upload and perms.is_admin and not perms.is_owner

    @pytest.mark.asyncio
    async def test_flags_rederived_every_call(self, store, grants, alice) -> None:
        """No caching: a flag change shows up on the next resolve."""
        vault = seed_vault(store, is_public=True, allow_uploads=False)
        resolver = AccessResolver(store, grants)
        assert not (await resolver.resolve(alice, vault)).can_upload

        changed = vault.model_copy(update={"allow_uploads": True})
        assert (await resolver.resolve(alice, changed)).can_upload


class TestRequestJoin:
    """Tests for the passkey join protocol."""

    @pytest.mark.asyncio
    async def test_private_vault_scenario(self, store, grants, alice) -> None:
        """Private vault, passkey 1234: denied, join, then view."""
        vault = seed_vault(store, passkey="1234", allow_uploads=False)
        resolver = AccessResolver(store, grants)

        assert not (await resolver.resolve(alice, vault)).can_view

        result = await resolver.request_join(alice, vault, "1234")
        assert result.success
        assert store.members[("v1", "alice")].role == MemberRole.VIEWER

        perms = await resolver.resolve(alice, vault)
        assert perms.can_view
        assert perms.can_upload == vault.allow_uploads

    @pytest.mark.asyncio
    async def test_wrong_passkey(self, store, grants, alice) -> None:
        vault = seed_vault(store, passkey="1234")
        result = await AccessResolver(store, grants).request_join(alice, vault, "4321")

        assert not result.success
        assert result.message == JOIN_FAILED_MESSAGE
        assert not grants.has_grant("v1")
        assert store.members == {}

    @pytest.mark.asyncio
    async def test_vault_without_passkey_same_message(self, store, grants, alice) -> None:
        """No passkey and wrong passkey are indistinguishable to the caller."""
        vault = seed_vault(store, passkey=None)
        result = await AccessResolver(store, grants).request_join(alice, vault, "")
        assert not result.success
        assert result.message == JOIN_FAILED_MESSAGE

    @pytest.mark.asyncio
    async def test_anonymous_join_grants_session_only(self, store, grants, guest) -> None:
        vault = seed_vault(store, passkey="1234")
        resolver = AccessResolver(store, grants)

        result = await resolver.request_join(guest, vault, " 1234 ")
        assert result.success
        assert grants.has_grant("v1")
        assert store.members == {}
        assert (await resolver.resolve(guest, vault)).can_view

    @pytest.mark.asyncio
    async def test_existing_member_join_keeps_role(self, store, grants, alice) -> None:
        vault = seed_vault(store, passkey="1234")
        seed_member(store, "v1", "alice", MemberRole.ADMIN)

        await AccessResolver(store, grants).request_join(alice, vault, "1234")
        assert store.members[("v1", "alice")].role == MemberRole.ADMIN


class TestSessionGrantStore:
    """Tests for session-local grants."""

    def test_grant_and_revoke(self) -> None:
        grants = SessionGrantStore()
        grants.grant("v1")
        assert grants.has_grant("v1")
        assert len(grants) == 1
        grants.revoke("v1")
        assert not grants.has_grant("v1")

    def test_persisted_between_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "session" / "grants.json"
        SessionGrantStore(path).grant("v1")
        assert SessionGrantStore(path).has_grant("v1")

    def test_clear_persists(self, tmp_path: Path) -> None:
        path = tmp_path / "grants.json"
        grants = SessionGrantStore(path)
        grants.grant("v1")
        grants.clear()
        assert len(SessionGrantStore(path)) == 0

    def test_corrupt_file_starts_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "grants.json"
        path.write_text("{not json")
        assert len(SessionGrantStore(path)) == 0
