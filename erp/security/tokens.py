"""
Session tokens: HS256-signed JWTs plus a server-side allow-list.

A token is accepted only if it is present in the allow-list AND its signature and
expiry check out. ``logout`` drops the token from the allow-list, which is the only
way to end a session before ``exp``.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import jwt

from erp.cache import ExpiringCache
from erp.db.record import ActiveRecord
from erp.errors import NotFound, TokenRevoked, Unauthenticated
from erp.models.security import User
from erp.settings import JWTSettings

logger = logging.getLogger(__name__)

DEFAULT_ALLOW_LIST_CLEANUP_SECONDS = 600.0


@dataclass(frozen=True)
class TokenClaims:
    """Validated claims of a session token."""

    user_id: int
    username: str
    expires_at: int

    def to_dict(self) -> dict[str, object]:
        return {"user_id": self.user_id, "username": self.username, "exp": self.expires_at}


def _extract_claims(payload: dict[str, Any]) -> TokenClaims:
    user_id = payload.get("user_id")
    if isinstance(user_id, bool) or not isinstance(user_id, (int, float)):
        raise Unauthenticated("invalid token")
    return TokenClaims(
        user_id=int(user_id),
        username=str(payload.get("username") or ""),
        expires_at=int(payload["exp"]),
    )


class TokenService:
    def __init__(
        self,
        users: ActiveRecord[User],
        settings: JWTSettings,
        allow_list: ExpiringCache[bool] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._users = users
        self._settings = settings
        self._ttl = settings.expiry_hours * 3600
        if allow_list is None:
            allow_list = ExpiringCache(default_ttl=self._ttl, cleanup_interval=DEFAULT_ALLOW_LIST_CLEANUP_SECONDS)
        self._allow_list = allow_list
        self._clock = clock

    def login(self, username: str, password: str) -> str:
        """
        Check credentials and issue a token.

        Unknown users and wrong passwords are reported with different messages.
        """
        try:
            user = self._users.where(User.username == username).one()
        except NotFound:
            logger.info("Login failed: unknown user")
            raise Unauthenticated("user not found") from None

        if not user.check_password(password):
            logger.info("Login failed: wrong password user_id=%s", user.id)
            raise Unauthenticated("wrong password")

        if user.status == 0:
            logger.info("Login refused: disabled user user_id=%s", user.id)
            raise Unauthenticated("user is disabled")

        return self.issue(user)

    def issue(self, user: User) -> str:
        now = int(self._clock())
        claims = {
            "user_id": user.id,
            "username": user.username,
            "exp": now + self._ttl,
            "iat": now,
            "jti": uuid.uuid4().hex,
        }
        token = jwt.encode(claims, self._settings.secret, algorithm=self._settings.algorithm)
        self._allow_list.set(token, True, ttl=self._ttl)
        logger.info("Token issued user_id=%s", user.id)
        return token

    def validate(self, token: str) -> TokenClaims:
        """
        Return the claims of a live token.

        The allow-list is checked first so revoked tokens are rejected without
        touching the signature.
        """
        if token not in self._allow_list:
            raise TokenRevoked()

        try:
            payload = jwt.decode(
                token,
                self._settings.secret,
                algorithms=[self._settings.algorithm],
                options={"require": ["exp", "user_id"], "verify_exp": True},
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("Token expired")
            raise Unauthenticated("token expired") from e
        except jwt.InvalidTokenError as e:
            logger.info("Token invalid: %s", type(e).__name__)
            raise Unauthenticated("invalid token") from e

        return _extract_claims(payload)

    def logout(self, token: str) -> None:
        self._allow_list.delete(token)
