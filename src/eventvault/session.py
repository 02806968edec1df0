"""
Session bootstrap and expired-session recovery.

SessionManager asks the identity provider for the current identity
with a safety timeout: a slow or failing provider leaves the session
anonymous instead of hanging. Auth state events keep the identity
current afterwards.

SessionRecoveryMiddleware watches store failures for the expired
refresh-token signature and signs the session out when it sees one.
It is registered explicitly, at most once per session, and has an
explicit teardown.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Union

from .access import SessionGrantStore
from .interfaces import IdentityProvider, RelationalStore, Unsubscribe
from .models import AnonymousActor, AuthEvent, AuthenticatedActor, Identity, actor_for

logger = logging.getLogger("eventvault.session")

EXPIRED_SESSION_STATUSES = {400, 401}
EXPIRED_SESSION_MARKERS = ("Invalid refresh token", "Refresh Token Not Found")


def is_expired_session(exc: Exception) -> bool:
    """Whether a store failure means the refresh token is gone."""
    status = getattr(exc, "status", None)
    if status not in EXPIRED_SESSION_STATUSES:
        return False
    message = str(exc)
    return any(marker in message for marker in EXPIRED_SESSION_MARKERS)


def load_guest_actor(path: Path) -> AnonymousActor:
    """Load the persisted guest actor, creating it on first use."""
    if path.exists():
        try:
            return AnonymousActor.model_validate_json(path.read_text(encoding="utf-8"))
        except (ValueError, OSError) as exc:
            logger.warning("Guest id unreadable, issuing a new one: %s", exc)
    guest = AnonymousActor()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(guest.model_dump(mode="json"), indent=2), encoding="utf-8")
    return guest


class SessionManager:
    """Tracks the current identity for one client session.

    Args:
        provider: Identity provider.
        grants: Session-local passkey grants, cleared on sign-out.
        guest: Actor used while no identity is present.
        timeout: Seconds to wait for the provider during bootstrap.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        grants: SessionGrantStore,
        guest: Optional[AnonymousActor] = None,
        timeout: float = 3.0,
    ) -> None:
        self._provider = provider
        self._grants = grants
        self._guest = guest or AnonymousActor()
        self._timeout = timeout
        self._identity: Optional[Identity] = None
        self._unsubscribe_auth: Optional[Unsubscribe] = None
        self._middleware: Optional[SessionRecoveryMiddleware] = None

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def actor(self) -> Union[AuthenticatedActor, AnonymousActor]:
        return actor_for(self._identity, self._guest)

    @property
    def grants(self) -> SessionGrantStore:
        return self._grants

    @property
    def middleware(self) -> Optional["SessionRecoveryMiddleware"]:
        return self._middleware

    async def bootstrap(self) -> Optional[Identity]:
        """Resolve the initial identity and start following auth events."""
        if self._unsubscribe_auth is None:
            self._unsubscribe_auth = self._provider.on_auth_state_change(self._on_auth_event)

        try:
            self._identity = await asyncio.wait_for(
                self._provider.get_session(), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Identity check exceeded %.1fs, continuing unauthenticated", self._timeout
            )
            self._identity = None
        except Exception as exc:
            logger.error("Identity check failed, continuing unauthenticated: %s", exc)
            self._identity = None

        return self._identity

    def register_middleware(self, store: RelationalStore) -> "SessionRecoveryMiddleware":
        """Install the expired-session middleware on a store.

        Raises:
            RuntimeError: If a middleware is already registered.
        """
        if self._middleware is not None:
            raise RuntimeError("Session recovery middleware already registered")
        middleware = SessionRecoveryMiddleware(self, store)
        middleware.install()
        self._middleware = middleware
        return middleware

    async def sign_out(self) -> None:
        """End the session at the provider and forget local state."""
        try:
            await self._provider.sign_out()
        except Exception as exc:
            logger.warning("Provider sign-out failed, clearing local session anyway: %s", exc)
        self._forget()

    def close(self) -> None:
        """Stop following auth events and tear the middleware down."""
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        if self._middleware is not None:
            self._middleware.teardown()
            self._middleware = None

    def _on_auth_event(self, event: AuthEvent, identity: Optional[Identity]) -> None:
        if event in (AuthEvent.SIGNED_OUT, AuthEvent.USER_DELETED):
            self._forget()
        elif event in (AuthEvent.SIGNED_IN, AuthEvent.TOKEN_REFRESHED):
            self._identity = identity
        logger.debug("Auth event %s", event.value)

    def _forget(self) -> None:
        self._identity = None
        self._grants.clear()


class SessionRecoveryMiddleware:
    """Signs the session out when a store reports an expired session.

    Args:
        session: Session to sign out.
        store: Store whose failures are observed.
    """

    def __init__(self, session: SessionManager, store: RelationalStore) -> None:
        self._session = session
        self._store = store
        self._installed = False
        self.recoveries = 0

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        if self._installed:
            return
        self._store.add_error_hook(self.on_error)
        self._installed = True

    def teardown(self) -> None:
        if not self._installed:
            return
        self._store.remove_error_hook(self.on_error)
        self._installed = False

    async def on_error(self, exc: Exception) -> None:
        if not is_expired_session(exc):
            return
        logger.warning("Session conflict detected, signing out: %s", exc)
        self.recoveries += 1
        await self._session.sign_out()
