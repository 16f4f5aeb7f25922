import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from slowapi.errors import RateLimitExceeded
from fastapi.responses import JSONResponse

from resume_lens.core.settings import settings

logger = logging.getLogger(__name__)

# Per-route limits (e.g. settings.llm_rate_limit) are applied with @limiter.limit
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200/minute"],
    enabled=settings.rate_limit_enabled,
)

async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})
