import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError

from app.config import allowed_origins, ensure_secure_runtime_settings, settings
from app.db.migration_check import prepare_schema
from app.db.session import engine
from app.integrations.errors import IntegrationError
from app.observability import configure_logging, log_event, metrics_store, set_request_id
from app.routers.distribution import router as distribution_router
from app.routers.health import router as health_router
from app.routers.metrics import router as metrics_router
from app.routers.orders import router as orders_router
from app.routers.purchases import router as purchases_router
from app.routers.wallets import router as wallets_router
from app.services.errors import SettlementError


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    ensure_secure_runtime_settings()
    prepare_schema(engine)
    log_event("service_started", detail=f"mode={settings.app_mode}")
    yield


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Records presale token purchases and distributes tokens from the custodial wallet",
    lifespan=lifespan,
)


def custom_openapi():
    """Adds HTTP Bearer (JWT) auth to the OpenAPI schema for the OPS/ADMIN endpoints."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    security_schemes = components.setdefault("securitySchemes", {})
    security_schemes["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    openapi_schema["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    set_request_id(request_id)

    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    metrics_store.increment("http_requests_total")
    metrics_store.observe("http_request_duration_seconds", elapsed)
    log_event("http_request", detail=f"{request.method} {request.url.path} {response.status_code}")
    return response


@app.exception_handler(SettlementError)
async def settlement_error_handler(_request: Request, exc: SettlementError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    metrics_store.increment("request_validation_rejected_total")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request",
            "code": "VALIDATION_ERROR",
            "detail": [
                {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg")}
                for error in exc.errors()
            ],
        },
    )


@app.exception_handler(IntegrationError)
async def integration_error_handler(_request: Request, exc: IntegrationError) -> JSONResponse:
    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE if exc.retryable else status.HTTP_502_BAD_GATEWAY
    )
    return JSONResponse(
        status_code=status_code,
        content=exc.as_dict(),
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    log_event("store_error", level=logging.ERROR, detail=type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Order store unavailable", "code": "STORE_UNAVAILABLE"},
    )


app.include_router(health_router)
app.include_router(purchases_router)
app.include_router(distribution_router)
app.include_router(orders_router)
app.include_router(wallets_router)
app.include_router(metrics_router)
