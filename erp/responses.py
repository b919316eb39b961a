from __future__ import annotations

from typing import Generic, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from erp.context import get_request_id

DataT = TypeVar("DataT")

OK = 0


class Envelope(BaseModel, Generic[DataT]):
    """Uniform response body: ``{code, message, data, request_id}``. ``code`` is 0 on success."""

    code: int = OK
    message: str = "ok"
    data: DataT | None = None
    request_id: str = ""


def ok(data: DataT | None = None, message: str = "ok") -> Envelope[DataT]:
    return Envelope(code=OK, message=message, data=data, request_id=get_request_id() or "")


def error_response(status_code: int, message: str, request_id: str | None = None) -> JSONResponse:
    body = Envelope[None](
        code=status_code,
        message=message,
        data=None,
        request_id=request_id or get_request_id() or "",
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())
