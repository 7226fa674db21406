import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.database import check_db_connection
from app.errors import DomainError, error_body
from app.middleware.change_log_auto import install_change_listeners, set_change_context
from app.routers.archives import router as archives_router
from app.routers.audits import router as audits_router
from app.routers.change_log import router as change_log_router
from app.routers.corrective_actions import router as corrective_actions_router
from app.routers.non_conformities import router as non_conformities_router
from app.routers.templates import router as templates_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── Install automatic change logging ──
install_change_listeners()


def _header_int(request: Request, name: str) -> int | None:
    raw = request.headers.get(name)
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


class ChangeContextMiddleware(BaseHTTPMiddleware):
    """Set per-request change-log context (user, tenant, IP)."""

    async def dispatch(self, request: Request, call_next):
        set_change_context(
            user_id=_header_int(request, "X-User-Id"),
            tenant_id=_header_int(request, "X-Tenant-Id"),
            ip_address=request.client.host if request.client else None,
        )
        return await call_next(request)


app.add_middleware(ChangeContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error envelope ──

_HTTP_CODES = {
    400: "validation_error",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
}


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.code))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    logger.warning("%s %s rejected (validation_error): %s", request.method, request.url.path, details)
    return JSONResponse(status_code=400, content=error_body(details or "Invalid request", "validation_error"))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code >= 400:
        logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), _HTTP_CODES.get(exc.status_code, "error")),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("Internal server error", "internal_error"))


app.include_router(templates_router)
app.include_router(audits_router)
app.include_router(non_conformities_router)
app.include_router(corrective_actions_router)
app.include_router(archives_router)
app.include_router(change_log_router)


@app.get("/health")
async def health():
    """Health check — verifies API is running and database is reachable."""
    try:
        await check_db_connection()
        db_status = "connected"
    except Exception as exc:
        db_status = f"error: {exc}"

    return {
        "status": "ok" if db_status == "connected" else "degraded",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "database": db_status,
    }
