from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import logging

from app.api.v1.router import router as api_v1_router
from app.core.exceptions import (
    AuthenticationError,
    BuyerNotFoundError,
    BuyerValidationError,
    ConflictError,
    ForbiddenError,
    StorageError,
)
from app.core.config import settings as app_settings
from app.core.database import engine
from app.core.rate_limit import limiter
from app.dependencies import create_redis_client

# Configure logging
logging.basicConfig(level=app_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the shared Redis client; release it and the DB pool on shutdown."""
    logger.info("Buyer Leads API starting")
    app.state.redis = await create_redis_client()
    yield
    if app.state.redis is not None:
        await app.state.redis.aclose()
        app.state.redis = None
    await engine.dispose()
    logger.info("Redis client closed and database connections disposed")


app = FastAPI(
    title="Buyer Leads",
    description="Track prospective property buyers with validated records and a full edit history",
    version="0.1.0",
    lifespan=lifespan,
)

# Attach rate limiter state so slowapi middleware can find it
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware restricted to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.exception_handler(BuyerValidationError)
async def buyer_validation_handler(request: Request, exc: BuyerValidationError):
    logger.warning("Buyer validation failed: %s", exc.fields)
    return JSONResponse(
        status_code=422,
        content={
            "detail": exc.detail,
            "errors": [e.model_dump() for e in exc.errors],
            "type": "validation_error",
        },
    )


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    logger.warning("Update conflict: %s", exc.detail)
    return JSONResponse(
        status_code=409,
        content={"detail": exc.detail, "type": "conflict"},
    )


@app.exception_handler(BuyerNotFoundError)
async def buyer_not_found_handler(request: Request, exc: BuyerNotFoundError):
    logger.warning("Buyer not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "buyer_not_found"},
    )


@app.exception_handler(ForbiddenError)
async def forbidden_handler(request: Request, exc: ForbiddenError):
    logger.warning("Forbidden: %s", exc.detail)
    return JSONResponse(
        status_code=403,
        content={"detail": exc.detail, "type": "forbidden"},
    )


@app.exception_handler(AuthenticationError)
async def authentication_handler(request: Request, exc: AuthenticationError):
    logger.info("Unauthenticated request to %s: %s", request.url.path, exc.detail)
    return JSONResponse(
        status_code=401,
        content={"detail": exc.detail, "type": "unauthorized"},
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage error: %s", exc.detail)
    return JSONResponse(
        status_code=503,
        content={"detail": exc.detail, "type": "storage_unavailable"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": jsonable_encoder(exc.errors()),
            "type": "request_validation_error",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected/unhandled exceptions.

    Returns a generic 500 response so that raw stack traces are never
    leaked to the client.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )
