import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from app.api.endpoints import admin, ai, auth, credits
from app.core.clients import close_clients, init_clients
from app.core.database import Base, dispose_engine, engine
from app.core.settings import settings
from app.models import account, credit_balance, credit_grant  # noqa: F401  (register tables)
from app.services.credit_ledger import (
    BalanceNotFoundError,
    InvalidAmountError,
    LedgerConflictError,
    LedgerError,
    StorageError,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="BuddyHelp Backend API",
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

origins = settings.resolved_cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )


@app.on_event("startup")
def startup() -> None:
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)
    init_clients(app)
    logger.info("app.startup environment=%s cors_origins=%s", settings.environment, len(origins))


@app.on_event("shutdown")
async def shutdown() -> None:
    await close_clients(app)
    dispose_engine()
    logger.info("app.shutdown")


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if isinstance(exc, BalanceNotFoundError):
        return JSONResponse(status_code=404, content={"detail": "Credit balance not found"})
    if isinstance(exc, InvalidAmountError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})
    if isinstance(exc, LedgerConflictError):
        return JSONResponse(status_code=409, content={"detail": "Conflicting credit update, retry"})
    if isinstance(exc, StorageError):
        logger.warning("app.storage_error path=%s error=%s", request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"detail": "Storage temporarily unavailable"},
            headers={"Retry-After": "1"},
        )
    logger.error("app.ledger_error path=%s error=%s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(auth.router, tags=["auth"])
app.include_router(credits.router, tags=["credits"])
app.include_router(admin.router, tags=["admin"])
app.include_router(ai.router, tags=["ai"])


@app.get("/health", response_class=PlainTextResponse)
async def health_check() -> str:
    return "OK"
