"""
Transfer Admin - management of data transfer tokens.

Features:
- Transfer token CRUD, revocation and access key regeneration
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import get_settings
from .logging import setup_logging, get_logger, SERVICE_NAME
from .api.token_router import router as token_router, get_token_service
from .middleware import (
    CorrelationIdMiddleware,
    ErrorHandlerMiddleware,
    MetricsMiddleware,
    ValidationMiddleware,
)
from .metrics import Metrics
from .health import HealthChecker

VERSION = "0.1.0"

settings = get_settings()

setup_logging(json_output=settings.LOG_JSON, service_name=SERVICE_NAME)
logger = get_logger()

metrics = Metrics(service_name=SERVICE_NAME, version=VERSION)

health_checker = HealthChecker(
    token_service=get_token_service(),
    service_name=SERVICE_NAME,
    version=VERSION,
)

app = FastAPI(
    title="Transfer Admin",
    version=VERSION,
    description="Issue, update, revoke and regenerate data transfer tokens",
)
app.state.metrics = metrics

# Last added runs first: correlation ID wraps everything else
app.add_middleware(ValidationMiddleware, max_size=settings.MAX_REQUEST_SIZE)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(token_router)

metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.get("/health")
async def health():
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready():
    """
    Readiness probe - comprehensive health check.

    Returns:
        200: Service is ready to handle traffic
        503: Service is not ready (e.g. token salt missing)
    """
    logger.debug("health_check_readiness")
    result = health_checker.readiness()
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(content=result, status_code=status_code)


@app.on_event("startup")
async def startup_event():
    """
    Startup event handler.

    Logs service startup and warns when tokens cannot be hashed.
    """
    token_service = get_token_service()
    salt_configured = token_service.check_salt_configured()
    metrics.set_salt_configured(salt_configured)

    logger.info(
        "service_starting",
        version=VERSION,
        env=settings.ENV,
        transfer_disabled=settings.TRANSFER_DISABLED,
        salt_configured=salt_configured,
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("service_stopping")
    metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(0)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "transfer_admin.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=True,
    )
