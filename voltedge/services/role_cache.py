"""
Role-fact cache.

Read-through cache of RoleFacts keyed by user id. One instance is built per
process in the application lifespan and injected where needed.

Every write path that changes org/team membership or role must commit and
then invalidate each affected user before returning to its caller.
"""

from __future__ import annotations

import abc
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from uuid import UUID

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError, WatchError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from voltedge.core.config import Settings
from voltedge.core.security import role_facts_redis_key, role_facts_version_redis_key
from voltedge.schemas.auth import RoleFacts
from voltedge.services.session_resolver import SessionResolver

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class RoleFactCache(abc.ABC):
    """Interface shared by the cache backends."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds

    async def load(self, user_id: UUID) -> RoleFacts:
        """Resolve fresh facts on a dedicated session (committed state only)."""
        async with self.session_factory() as session:
            return await SessionResolver(session).resolve_role_facts(user_id)

    @abc.abstractmethod
    async def get(self, user_id: UUID) -> RoleFacts: ...

    @abc.abstractmethod
    async def invalidate(self, user_id: UUID) -> None: ...

    async def invalidate_many(self, user_ids: Iterable[UUID]) -> None:
        for user_id in set(user_ids):
            await self.invalidate(user_id)


@dataclass
class _Entry:
    facts: RoleFacts
    expires_at: float


class MemoryRoleFactCache(RoleFactCache):
    """
    Per-process cache.

    Best effort across instances: another process may serve facts up to
    ttl_seconds old. Use RedisRoleFactCache when that is not acceptable.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(session_factory, ttl_seconds)
        self.clock = clock
        self._entries: dict[UUID, _Entry] = {}
        self._generations: dict[UUID, int] = {}

    async def get(self, user_id: UUID) -> RoleFacts:
        entry = self._entries.get(user_id)
        if entry is not None and self.clock() < entry.expires_at:
            return entry.facts

        generation = self._generations.get(user_id, 0)
        facts = await self.load(user_id)
        # An invalidation during load means facts may predate the change
        if self._generations.get(user_id, 0) != generation:
            logger.debug("Role facts for %s invalidated during refill; not cached", user_id)
            return facts

        self._entries[user_id] = _Entry(facts=facts, expires_at=self.clock() + self.ttl_seconds)
        logger.debug("Role facts refilled for %s", user_id)
        return facts

    async def invalidate(self, user_id: UUID) -> None:
        self._generations[user_id] = self._generations.get(user_id, 0) + 1
        self._entries.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._entries)


class RedisRoleFactCache(RoleFactCache):
    """
    Cache shared by every instance through Redis (SETEX with the TTL).

    invalidate() bumps a per-user version key before deleting the entry. A
    refill stores its result only if the version it read before loading is
    still current, checked under WATCH so a concurrent bump aborts the write.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        super().__init__(session_factory, ttl_seconds)
        self.redis = redis

    async def get(self, user_id: UUID) -> RoleFacts:
        key = role_facts_redis_key(str(user_id))
        version_key = role_facts_version_redis_key(str(user_id))
        try:
            raw, version = await self.redis.mget(key, version_key)
        except RedisError:
            logger.warning("Role-fact cache read failed for %s; resolving from database", user_id)
            return await self.load(user_id)

        if raw is not None:
            try:
                return RoleFacts.model_validate_json(raw)
            except ValidationError:
                logger.warning("Discarding unreadable role-fact entry for %s", user_id)

        facts = await self.load(user_id)
        try:
            stored = await self._store(key, version_key, version, facts)
        except WatchError:
            stored = False
        except RedisError:
            logger.warning("Role-fact cache write failed for %s", user_id)
            return facts

        if not stored:
            logger.debug("Role facts for %s invalidated during refill; not cached", user_id)
        return facts

    async def _store(self, key: str, version_key: str, version, facts: RoleFacts) -> bool:
        async with self.redis.pipeline(transaction=True) as pipe:
            await pipe.watch(version_key)
            if await pipe.get(version_key) != version:
                return False
            pipe.multi()
            pipe.setex(key, self.ttl_seconds, facts.model_dump_json())
            await pipe.execute()
        return True

    async def invalidate(self, user_id: UUID) -> None:
        # Failures propagate: a silent miss would leave stale facts for a full TTL.
        await self.redis.incr(role_facts_version_redis_key(str(user_id)))
        await self.redis.delete(role_facts_redis_key(str(user_id)))


def build_role_cache(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    redis: aioredis.Redis | None = None,
) -> RoleFactCache:
    """Pick the cache backend configured for this deployment."""
    if settings.ROLE_CACHE_BACKEND == "redis":
        if redis is None:
            redis = aioredis.from_url(
                str(settings.REDIS_URL), encoding="utf-8", decode_responses=True
            )
        return RedisRoleFactCache(redis, session_factory, settings.ROLE_CACHE_TTL_SECONDS)
    return MemoryRoleFactCache(session_factory, settings.ROLE_CACHE_TTL_SECONDS)
