"""
Cron endpoints called by an external scheduler.

Both require `Authorization: Bearer <CRON_SECRET>`; a mismatch returns 401
before any work is done.
"""
import hmac
import logging
import os
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from worker import sweeps

router = APIRouter(prefix="/api/cron")

log = logging.getLogger("cron")


def is_authorized(request: Request) -> bool:
    secret = os.getenv("CRON_SECRET") or ""
    if not secret:
        # No secret configured means nobody can call the endpoints.
        return False
    header = request.headers.get("authorization") or ""
    return hmac.compare_digest(header.encode("utf-8"), f"Bearer {secret}".encode("utf-8"))


def _run(name: str, request: Request, sweep) -> JSONResponse:
    start = time.monotonic()
    if not is_authorized(request):
        log.info(f"{name}: unauthorized request")
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    try:
        result = sweep()
    except Exception as exc:
        duration_ms = int((time.monotonic() - start) * 1000)
        log.exception(f"{name}: sweep failed", extra={"error": str(exc)})
        return JSONResponse({"error": str(exc) or "Internal server error", "duration_ms": duration_ms}, status_code=500)

    return JSONResponse(result)


@router.get("/expire-offers")
def expire_offers_route(request: Request):
    return _run("expire-offers", request, sweeps.expire_offers)


@router.get("/request-timeout")
def request_timeout_route(request: Request):
    return _run("request-timeout", request, sweeps.time_out_requests)
