from __future__ import annotations

import logging

from fastapi import Request

from erp.cache import ExpiringCache
from erp.errors import TooManyRequests

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 0.5


class Debounce:
    """
    Route dependency that rejects a repeat of the same request inside ``window`` seconds.

    The key is ``<user_id>@<path>``; anonymous callers are keyed by client address.
    Entries live in ``app.state.debounce_cache`` when the app provides one.
    """

    def __init__(self, window: float = DEFAULT_WINDOW_SECONDS, cache: ExpiringCache[bool] | None = None) -> None:
        self.window = window
        self._cache = cache if cache is not None else ExpiringCache(default_ttl=300.0, cleanup_interval=600.0)

    def __call__(self, request: Request) -> None:
        auth = getattr(request.state, "auth", None)
        if auth is not None:
            caller = str(auth.user_id)
        else:
            caller = request.client.host if request.client else "anonymous"

        key = f"{caller}@{request.url.path}"
        cache = getattr(request.app.state, "debounce_cache", None)
        if cache is None:
            cache = self._cache
        if not cache.add(key, True, ttl=self.window):
            logger.info("Debounced repeated request key=%s", key)
            raise TooManyRequests()
