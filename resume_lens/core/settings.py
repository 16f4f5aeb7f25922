from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # Core
    app_name: str = "Resume Lens API"
    environment: str = "development"
    log_level: str = "INFO"

    # CORS
    cors_allow_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    cors_allow_methods: List[str] = ["GET", "POST", "OPTIONS"]
    cors_allow_headers: List[str] = ["*"]

    # DeepSeek (OpenAI-compatible chat completions)
    deepseek_api_key: str | None = None
    deepseek_model: str = "deepseek-chat"
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_timeout_seconds: float = 60.0

    # Result cache: one hour TTL, swept every ten minutes
    cache_ttl_seconds: int = 3600
    cache_sweep_interval_seconds: int = 600
    cache_sweep_enabled: bool = True

    # Per-client limit on the LLM-backed routes
    rate_limit_enabled: bool = True
    llm_rate_limit: str = "30/minute"

    class Config:
        env_file = ".env"
        case_sensitive = False

settings = Settings()
