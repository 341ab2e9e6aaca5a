import logging
import time

from fastapi import FastAPI, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import engine
from .errors import AppError, app_error_handler, http_exception_handler, request_validation_handler
from .middleware_rate_limit import RedisRateLimiter, SlidingWindowLimiter
from .middleware_request_id import RequestIDMiddleware
from .models import Base
from .routers import admin as admin_router
from .routers import auth as auth_router
from .routers import bookings as bookings_router
from .routers import ui as ui_router
from .routers import vehicles as vehicles_router


log = logging.getLogger("carrental")

# Module level so repeated create_app() calls share one registry entry
REQ = Counter("http_requests_total", "HTTP requests", ["method", "path", "status"])
REQ_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)

UNLIMITED_PATHS = ["/health", "/metrics"]


def create_app() -> FastAPI:
    app = FastAPI(title="Car Rental API", version="0.1.0")

    allowed_origins = settings.ALLOWED_ORIGINS or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    backend = (settings.RATE_LIMIT_BACKEND or "").lower()
    if backend == "redis":
        app.add_middleware(
            RedisRateLimiter,
            redis_url=settings.REDIS_URL,
            limit_per_minute=settings.RATE_LIMIT_PER_MINUTE,
            auth_boost=settings.RATE_LIMIT_AUTH_BOOST,
            auth_path_limit=settings.RATE_LIMIT_AUTH_PATH_PER_MINUTE,
            prefix=settings.RATE_LIMIT_REDIS_PREFIX,
            exclude_paths=UNLIMITED_PATHS,
        )
    else:
        app.add_middleware(
            SlidingWindowLimiter,
            limit_per_minute=settings.RATE_LIMIT_PER_MINUTE,
            auth_boost=settings.RATE_LIMIT_AUTH_BOOST,
            auth_path_limit=settings.RATE_LIMIT_AUTH_PATH_PER_MINUTE,
            exclude_paths=UNLIMITED_PATHS,
        )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    if settings.AUTO_CREATE_SCHEMA:
        Base.metadata.create_all(bind=engine)

    @app.get("/health")
    def health(response: Response):
        try:
            with engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
        except SQLAlchemyError as exc:
            log.error("health check failed: %s", exc)
            response.status_code = 503
            return {"status": "unavailable", "env": settings.ENV}
        return {"status": "ok", "env": settings.ENV}

    @app.middleware("http")
    async def _metrics_mw(request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        route = getattr(request.scope.get("route"), "path", None) or request.url.path
        REQ.labels(request.method, route, str(response.status_code)).inc()
        REQ_DURATION.labels(request.method, route).observe(time.perf_counter() - start)
        return response

    @app.get("/metrics")
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(auth_router.router)
    app.include_router(vehicles_router.router)
    app.include_router(bookings_router.router)
    app.include_router(admin_router.router)
    app.include_router(ui_router.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("carrental.main:app", host=settings.APP_HOST, port=settings.APP_PORT)
