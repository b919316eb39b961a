from __future__ import annotations

import logging

from erp.db.record import ActiveRecord, Page
from erp.errors import NotFound
from erp.models.security import User

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, users: ActiveRecord[User]) -> None:
        self._users = users

    def create_or_update(self, user: User) -> User:
        """
        Create ``user`` (no id) or update it (id set).

        Updates go through the partial-update path: empty strings and zero numbers in
        ``user`` leave the stored values untouched.
        """

        if user.password:
            user.set_password(user.password)

        if user.id:
            self._users.update(user)
            logger.info("User updated user_id=%s", user.id)
            return user

        self._users.create(user)
        logger.info("User created user_id=%s", user.id)
        return user

    def reset_password(self, username: str, password: str) -> None:
        try:
            user = self._users.where(User.username == username).one()
        except NotFound:
            raise NotFound("user not found") from None

        user.set_password(password)
        # Only the password column; the username stays untouched.
        self._users.select(User.password).update(user)
        logger.info("Password reset user_id=%s", user.id)

    def get(self, user_id: int) -> User:
        return self._users.preload("roles").read(user_id)

    def page(self, page: int, page_size: int, username: str = "") -> Page[User]:
        query = self._users
        if username:
            query = query.where(User.username.like(f"%{username}%"))
        return query.preload("roles").order(User.id).page(page, page_size)
