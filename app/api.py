import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from dotenv import load_dotenv

from app.auth_utils import SESSION_COOKIE_NAME, decision_response
from app.guard import authorize, normalize_path
from app.routes import admin, auth, consumer, cron, provider, public, requests_api
from app.security import ROLE_COOKIE_NAME, read_role
from core.database import init_db

# Ensure .env values are loaded even if uvicorn is launched without `dotenv run`.
load_dotenv(override=True)

log = logging.getLogger("guard")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(lifespan=lifespan)


app.include_router(public.router)
app.include_router(auth.router)
app.include_router(consumer.router)
app.include_router(provider.router)
app.include_router(admin.router)
app.include_router(requests_api.router)
app.include_router(cron.router)


def _is_static_asset(path: str) -> bool:
    last = path.rsplit("/", 1)[-1]
    return "." in last and not last.endswith(".html")


@app.middleware("http")
async def role_guard(request: Request, call_next):
    """
    Edge role check. Uses only the signed role cookie set at login, so no
    database round-trip; page handlers re-check with a fresh role.
    """
    path = normalize_path(request.url.path)
    if _is_static_asset(path):
        return await call_next(request)

    role = read_role(
        request.cookies.get(ROLE_COOKIE_NAME),
        request.cookies.get(SESSION_COOKIE_NAME),
    )
    decision = authorize(path, role)
    redirect = decision_response(decision)
    if redirect is not None:
        log.info(
            "Role guard redirect",
            extra={"path": path, "role": role or "anonymous", "target": decision.target},
        )
        return redirect
    return await call_next(request)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault(
        "Content-Security-Policy",
        "default-src 'self'; img-src 'self' data:; style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline'; "
        "font-src 'self' data:; connect-src 'self';",
    )
    return response
