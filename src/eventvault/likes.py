"""
Likes on media assets, keyed by actor (signed-in user or guest).
"""

from __future__ import annotations

import logging
from typing import Union

from .errors import Conflict
from .interfaces import RelationalStore
from .models import AnonymousActor, AuthenticatedActor, LikeRecord

logger = logging.getLogger("eventvault.likes")


class LikeService:
    """Sets and toggles likes.

    ``set_liked`` is idempotent: liking twice leaves one like, and a
    duplicate insert from a concurrent request is treated as success.
    """

    def __init__(self, store: RelationalStore) -> None:
        self._store = store

    async def is_liked(self, asset_id: str, actor: Union[AuthenticatedActor, AnonymousActor]) -> bool:
        return await self._store.has_like(asset_id, actor.actor_id)

    async def set_liked(
        self,
        asset_id: str,
        actor: Union[AuthenticatedActor, AnonymousActor],
        liked: bool,
    ) -> bool:
        """Bring the like to the requested state. Returns the new state."""
        if liked:
            try:
                await self._store.insert_like(LikeRecord(asset_id=asset_id, actor_id=actor.actor_id))
            except Conflict:
                logger.debug("Like by %s on %s already present", actor.actor_id, asset_id)
            return True
        await self._store.delete_like(asset_id, actor.actor_id)
        return False

    async def toggle(self, asset_id: str, actor: Union[AuthenticatedActor, AnonymousActor]) -> bool:
        liked = await self.is_liked(asset_id, actor)
        return await self.set_liked(asset_id, actor, not liked)
