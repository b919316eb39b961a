from __future__ import annotations

from fastapi import APIRouter, Depends

from erp.responses import Envelope, ok
from erp.schemas.user import UserIn, UserOut, UserPageOut, UserQuery
from erp.security.context import AuthContext
from erp.security.debounce import Debounce
from erp.security.dependencies import authorize, get_current_auth
from erp.services.providers import get_user_service
from erp.services.users import UserService

router = APIRouter(prefix="/api/user", tags=["user"], dependencies=[Depends(authorize)])


@router.get("/info", summary="current user", response_model=Envelope[UserOut])
def user_info(
    auth: AuthContext = Depends(get_current_auth),
    users: UserService = Depends(get_user_service),
) -> Envelope[UserOut]:
    return ok(UserOut.model_validate(users.get(auth.user_id)))


@router.post("/list", summary="list users", response_model=Envelope[UserPageOut])
def users_list(query: UserQuery, users: UserService = Depends(get_user_service)) -> Envelope[UserPageOut]:
    page = users.page(query.page, query.pageSize, query.username)
    return ok(
        UserPageOut(
            items=[UserOut.model_validate(u) for u in page.items],
            total=page.total,
            page=page.page,
            page_size=page.page_size,
        )
    )


@router.post(
    "/edit",
    summary="create or edit user",
    response_model=Envelope[UserOut],
    dependencies=[Depends(Debounce())],
)
def user_edit(payload: UserIn, users: UserService = Depends(get_user_service)) -> Envelope[UserOut]:
    user = users.create_or_update(payload.to_model())
    return ok(UserOut.model_validate(users.get(user.id)), message="user saved")
