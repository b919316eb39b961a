"""
Permission resolution for the authorization check.

A user's permission set is the union of ``path:METHOD`` keys over all of their
roles. Sets are cached per user for a fixed TTL. Edits to roles or grants are NOT
pushed into the cache: a user already cached keeps the old set until the entry
expires or is invalidated explicitly.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from erp.cache import ExpiringCache
from erp.db.record import ActiveRecord
from erp.errors import NotFound, Unauthenticated
from erp.models.security import User

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600.0
DEFAULT_CLEANUP_SECONDS = 1800.0


def permission_key(path: str, method: str) -> str:
    return f"{path.lower()}:{method.upper()}"


@dataclass(frozen=True)
class PermissionSet:
    keys: frozenset[str]
    is_super: bool = False

    def allows(self, path: str, method: str) -> bool:
        return self.is_super or permission_key(path, method) in self.keys


class PermissionCache:
    """Thread-safe ``user_id -> PermissionSet`` mapping with expiry."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        cleanup_seconds: float = DEFAULT_CLEANUP_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: ExpiringCache[PermissionSet] = ExpiringCache(ttl_seconds, cleanup_seconds, clock=clock)

    @staticmethod
    def _key(user_id: int) -> str:
        return f"permissions:{user_id}"

    def get(self, user_id: int) -> PermissionSet | None:
        value, found = self._cache.get(self._key(user_id))
        if not found:
            return None
        if not isinstance(value, PermissionSet):
            # Foreign value under our key; drop it and recompute.
            self._cache.delete(self._key(user_id))
            return None
        return value

    def set(self, user_id: int, permissions: PermissionSet) -> None:
        self._cache.set(self._key(user_id), permissions)

    def invalidate(self, user_id: int) -> None:
        self._cache.delete(self._key(user_id))

    def clear(self) -> None:
        self._cache.clear()


class PermissionResolver:
    def __init__(self, users: ActiveRecord[User], cache: PermissionCache, super_account: str) -> None:
        self._users = users
        self._cache = cache
        self._super_account = super_account

    def resolve(self, user_id: int) -> PermissionSet:
        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        permissions = self._load(user_id)
        self._cache.set(user_id, permissions)
        return permissions

    def _load(self, user_id: int) -> PermissionSet:
        try:
            user = self._users.preload("roles.permissions").where(User.id == user_id).one()
        except NotFound:
            logger.info("Permission lookup for unknown user user_id=%s", user_id)
            raise Unauthenticated("user not found") from None

        if self._super_account and user.username == self._super_account:
            logger.debug("Super account resolved user_id=%s", user_id)
            return PermissionSet(keys=frozenset(), is_super=True)

        keys = {
            permission_key(permission.path, permission.method)
            for role in user.roles
            for permission in role.permissions
        }
        logger.debug("Permissions resolved user_id=%s count=%s", user_id, len(keys))
        return PermissionSet(keys=frozenset(keys))
