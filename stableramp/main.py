from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stableramp.api.v1.routes_activity import router as activity_router
from stableramp.api.v1.routes_activity_history import router as activity_history_router
from stableramp.api.v1.routes_cashouts import router as cashouts_router
from stableramp.api.v1.routes_payments import router as payments_router
from stableramp.api.v1.routes_webhooks import router as webhooks_router
from stableramp.core.errors import (
    InsufficientBalanceError,
    NotFoundError,
    StableRampError,
    ValidationError,
    is_transient,
)
from stableramp.core.logging import configure_logging
from stableramp.db.base import init_models


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await init_models()
    yield


app = FastAPI(title="stableramp", lifespan=lifespan)

app.include_router(activity_router)
app.include_router(activity_history_router)
app.include_router(webhooks_router)
app.include_router(payments_router)
app.include_router(cashouts_router)


def status_for_error(exc: StableRampError) -> int:
    if isinstance(exc, (ValidationError, InsufficientBalanceError)):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if is_transient(exc):
        return 502
    return 500


@app.exception_handler(StableRampError)
async def stableramp_error_handler(request: Request, exc: StableRampError):
    return JSONResponse(status_code=status_for_error(exc), content={"error": exc.message})


@app.get("/health")
async def health():
    return {"status": "ok"}
