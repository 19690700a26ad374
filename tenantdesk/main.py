# tenantdesk/main.py
import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm.exc import StaleDataError

from tenantdesk.api.routes import (
    auth,
    comments,
    companies,
    notifications,
    tickets,
    users,
)
from tenantdesk.core.config import settings
from tenantdesk.core.errors import DomainError
from tenantdesk.core.logging import RequestIdMiddleware, setup_logging
from tenantdesk.db.session import init_db

setup_logging(settings.log_level)
log = logging.getLogger(__name__)

app = FastAPI(
    title="TenantDesk",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url=None,
    openapi_url="/api/openapi.json",
)

# ==== Middlewares ====
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)


# ==== Error mapping ====
@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        log.error("domain_error", extra={"path": request.url.path, "detail": exc.detail})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    log.warning("concurrent_update", extra={"path": request.url.path})
    return JSONResponse(
        status_code=409,
        content={"detail": "The ticket was modified concurrently, reload and retry"},
    )


@app.on_event("startup")
async def _startup() -> None:
    if settings.auto_create_tables:
        await init_db()
        log.info("tables_created")


# ==== API under /api ====
@app.get("/api/health", tags=["health"])
async def health():
    return {"status": "ok"}


app.include_router(auth.router,          prefix="/api/auth",          tags=["auth"])
app.include_router(users.router,         prefix="/api/users",         tags=["users"])
app.include_router(companies.router,     prefix="/api/companies",     tags=["companies"])
app.include_router(tickets.router,       prefix="/api/tickets",       tags=["tickets"])
app.include_router(comments.router,      prefix="/api/comments",      tags=["comments"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])

# ==== Attachments ====
UPLOAD_DIR = Path(settings.upload_dir)
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(UPLOAD_DIR)), name="uploads")
