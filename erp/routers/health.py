from __future__ import annotations

from fastapi import APIRouter

from erp.responses import Envelope, ok

router = APIRouter(tags=["health"])


@router.get("/health", response_model=Envelope[dict])
def health() -> Envelope[dict]:
    return ok({"status": "ok"})
