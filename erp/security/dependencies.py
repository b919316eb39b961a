from __future__ import annotations

import logging

from fastapi import Depends, Request

from erp.errors import Forbidden
from erp.security.auth import extract_bearer_token, route_template
from erp.security.context import AuthContext
from erp.security.permissions import PermissionResolver
from erp.security.tokens import TokenService

logger = logging.getLogger(__name__)


def get_token_service(request: Request) -> TokenService:
    service = getattr(request.app.state, "token_service", None)
    if service is None:
        raise RuntimeError("Token service not configured. Was the app built with create_app()?")
    return service


def get_permission_resolver(request: Request) -> PermissionResolver:
    resolver = getattr(request.app.state, "permission_resolver", None)
    if resolver is None:
        raise RuntimeError("Permission resolver not configured. Was the app built with create_app()?")
    return resolver


def authenticate(request: Request, tokens: TokenService = Depends(get_token_service)) -> AuthContext:
    """
    Bearer token -> validated identity.

    Failures (missing, malformed, invalid, expired or revoked token) raise
    ``Unauthenticated`` and end the request with 401.
    """

    token = extract_bearer_token(request)
    claims = tokens.validate(token)

    auth = AuthContext(user_id=claims.user_id, username=claims.username, token=token)
    request.state.auth = auth
    return auth


def authorize(
    request: Request,
    auth: AuthContext = Depends(authenticate),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> AuthContext:
    """
    Route-level RBAC check (runs after routing, so the route template is known).

    The matched route template plus method must be in the caller's permission set;
    the super account passes unconditionally.
    """

    permissions = resolver.resolve(auth.user_id)

    path = route_template(request)
    method = request.method.upper()
    if not permissions.allows(path, method):
        logger.info("Permission denied user_id=%s path=%s method=%s", auth.user_id, path, method)
        raise Forbidden()

    return auth


def get_current_auth(request: Request) -> AuthContext:
    auth = getattr(request.state, "auth", None)
    if auth is None:
        raise RuntimeError("get_current_auth used on a route without authenticate()")
    return auth
