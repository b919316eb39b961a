from __future__ import annotations

from fastapi import APIRouter, Depends

from erp.errors import Forbidden, ValidationError
from erp.responses import Envelope, ok
from erp.schemas.auth import LoginIn, TokenOut
from erp.schemas.user import UserIn
from erp.security.context import AuthContext
from erp.security.debounce import Debounce
from erp.security.dependencies import authenticate, get_token_service
from erp.security.tokens import TokenService
from erp.services.providers import get_app_settings, get_user_service
from erp.services.users import UserService
from erp.settings import Settings

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=Envelope[None], dependencies=[Depends(Debounce())])
def register(payload: UserIn, users: UserService = Depends(get_user_service)) -> Envelope[None]:
    if not payload.password:
        raise ValidationError("password is required")
    # Registration never edits an existing account.
    users.create_or_update(payload.model_copy(update={"id": 0}).to_model())
    return ok(message="user registered")


@router.post("/login", response_model=Envelope[TokenOut])
def login(payload: LoginIn, tokens: TokenService = Depends(get_token_service)) -> Envelope[TokenOut]:
    token = tokens.login(payload.username, payload.password)
    return ok(TokenOut(accessToken=token), message="login succeeded")


@router.post("/logout", response_model=Envelope[None])
def logout(
    auth: AuthContext = Depends(authenticate),
    tokens: TokenService = Depends(get_token_service),
) -> Envelope[None]:
    tokens.logout(auth.token)
    return ok(message="logged out")


@router.post("/reset-password", response_model=Envelope[None])
def reset_password(
    payload: LoginIn,
    settings: Settings = Depends(get_app_settings),
    users: UserService = Depends(get_user_service),
) -> Envelope[None]:
    if not settings.debug:
        raise Forbidden("password reset is only available in debug mode")
    users.reset_password(payload.username, payload.password)
    return ok(message="password reset")
