from __future__ import annotations

import logging

from fastapi import Request

from erp.errors import Unauthenticated

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
BEARER_SCHEME = "Bearer"


def extract_bearer_token(request: Request) -> str:
    """
    Read the token from ``Authorization: Bearer <token>``.

    Missing header, another scheme or an empty token all fail with ``Unauthenticated``.
    """

    raw = request.headers.get(AUTHORIZATION_HEADER)
    if not raw:
        logger.info("Missing Authorization header path=%s method=%s", request.url.path, request.method)
        raise Unauthenticated("missing authentication token")

    scheme, _, token = raw.partition(" ")
    if scheme != BEARER_SCHEME:
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise Unauthenticated("malformed authentication token")

    token = token.strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise Unauthenticated("malformed authentication token")

    return token


def route_template(request: Request) -> str:
    """Path template of the matched route (``/api/rbac/role/{id}``), falling back to the raw path."""

    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path
