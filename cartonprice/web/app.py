"""FastAPI application for cartonprice."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from cartonprice.core.logging import configure_logging
from cartonprice.db.connection import close_db
from cartonprice.errors import PricingError
from cartonprice.web.routes import currency, health, pricing

# Initialize structured logging
configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_db()


app = FastAPI(
    title="cartonprice",
    description="Wholesale carton pricing API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            logger.info(
                "request_completed",
                status_code=response.status_code,
            )
            return response

        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise


app.add_middleware(RequestLoggingMiddleware)


# Exception Handlers
@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    """Render pricing failures as {error, message, missingFields?, ...}."""
    logger.warning(
        "pricing_failed",
        error_type=type(exc).__name__,
        message=exc.message,
        item_code=exc.item_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies get the same failure shape as pricing errors."""
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"] if part != "body")
        problems.append(f"{field}: {err['msg']}" if field else err["msg"])
    logger.info("request_invalid", problems=problems)
    return JSONResponse(status_code=400, content={"error": True, "message": "; ".join(problems)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"error": True, "message": str(exc)})


# Include Routers
app.include_router(health.router)
app.include_router(pricing.router)
app.include_router(currency.router)
