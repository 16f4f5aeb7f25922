"""Application entrypoint.

Centralized settings + structured logging + the shared result cache and its
background sweeper.
"""
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
import logging
import json
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from slowapi.errors import RateLimitExceeded

from resume_lens.core.cache import TTLCache
from resume_lens.core.settings import Settings, settings
from resume_lens.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from resume_lens.routes import job_routes
from resume_lens.services.deepseek import DeepSeekClient, JobGenerator

VERSION = "v1"


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "level": record.levelname,
            "ts": record.created,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    for handler in logging.getLogger().handlers:
        handler.setFormatter(JsonFormatter())


REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "path", "status"])
REQUEST_LATENCY = Histogram("http_request_duration_seconds", "Request latency", ["path"])


def create_app(
    app_settings: Optional[Settings] = None,
    cache: Optional[TTLCache] = None,
    generator: Optional[JobGenerator] = None,
) -> FastAPI:
    """Build the API with its own result cache and job generator.

    Tests pass an isolated cache and a fake generator; production uses the
    module-level ``app`` built from environment settings.
    """
    app_settings = app_settings or settings
    logger = logging.getLogger(__name__)

    if cache is None:
        cache = TTLCache(
            ttl_seconds=app_settings.cache_ttl_seconds,
            sweep_interval_seconds=app_settings.cache_sweep_interval_seconds,
        )
    if generator is None:
        generator = DeepSeekClient(
            api_key=app_settings.deepseek_api_key,
            model=app_settings.deepseek_model,
            base_url=app_settings.deepseek_base_url,
            timeout=app_settings.deepseek_timeout_seconds,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app_settings.cache_sweep_enabled:
            cache.start_sweeper()
        yield
        cache.stop_sweeper(timeout=5)
        logger.info(f"Result cache shut down with {cache.size()} entries")

    app = FastAPI(title=app_settings.app_name, version=VERSION, lifespan=lifespan, openapi_tags=[
        {"name": "jobs", "description": "Cached job details & recommendations"},
    ])
    app.state.result_cache = cache
    app.state.job_generator = generator

    # Attach rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        path = request.url.path
        method = request.method
        with REQUEST_LATENCY.labels(path=path).time():
            response = await call_next(request)
        REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in app_settings.cors_allow_origins.split(',')],
        allow_credentials=True,
        allow_methods=app_settings.cors_allow_methods,
        allow_headers=app_settings.cors_allow_headers,
    )

    app.include_router(job_routes.router, prefix="/api/jobs", tags=["jobs"])

    @app.get("/")
    async def root(request: Request):
        """Service status; ``cache_entries`` is the raw size, expired entries included."""
        return {
            "message": f"{app_settings.app_name} is running",
            "version": app.version,
            "cache_entries": request.app.state.result_cache.size(),
        }

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


configure_logging(settings.log_level)
app = create_app()
