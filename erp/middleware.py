from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from erp.context import reset_request_id, set_request_id
from erp.errors import AppError, InternalError
from erp.responses import error_response
from erp.settings import Settings

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("erp.request")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RecoveryMiddleware(BaseHTTPMiddleware):
    """
    Last line of defence: anything not turned into a response by the exception
    handlers is logged with its stack trace and answered with a generic 500.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        try:
            return await call_next(request)
        except Exception:
            request_id = getattr(request.state, "request_id", None)
            logger.exception(
                "Unhandled error request_id=%s method=%s path=%s", request_id, request.method, request.url.path
            )
            return error_response(InternalError.status_code, InternalError.default_message, request_id)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One access log line per request: method, path, client, status, duration."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        method = request.method
        path = request.url.path
        client = _client_ip(request)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            access_logger.error(
                "Request failed method=%s path=%s client=%s status=%s duration_ms=%s request_id=%s",
                method,
                path,
                client,
                500,
                duration_ms,
                getattr(request.state, "request_id", None),
            )
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        access_logger.info(
            "Request completed method=%s path=%s client=%s status=%s duration_ms=%s request_id=%s",
            method,
            path,
            client,
            response.status_code,
            duration_ms,
            getattr(request.state, "request_id", None),
        )
        return response


def _client_ip(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-IP", "-")


async def _app_error_handler(request: Request, exc: AppError):  # type: ignore[no-untyped-def]
    if exc.status_code >= 500:
        logger.error(
            "Request failed request_id=%s path=%s: %s",
            getattr(request.state, "request_id", None),
            request.url.path,
            exc.message,
            exc_info=exc,
        )
    return error_response(exc.status_code, exc.message, getattr(request.state, "request_id", None))


async def _validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore[no-untyped-def]
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid input')}" if location else "invalid input"
    return error_response(422, message, getattr(request.state, "request_id", None))


async def _http_error_handler(request: Request, exc: HTTPException):  # type: ignore[no-untyped-def]
    message = exc.detail if isinstance(exc.detail, str) else "request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = "requested resource does not exist"
    return error_response(exc.status_code, message, getattr(request.state, "request_id", None))


def install_middleware(app: FastAPI, settings: Settings) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)

    # Starlette wraps middleware outside-in in reverse order of registration:
    # request id -> recovery -> access log -> CORS -> routes.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.allow_origins,
        allow_credentials=settings.cors.credentials_allowed,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RecoveryMiddleware)
    app.add_middleware(RequestIDMiddleware)
