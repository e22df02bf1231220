from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Chat completion provider
    API_KEY: Optional[str] = None
    AI_GATEWAY_URL: str = "https://openrouter.ai/api/v1"
    MODEL_NAME: str = "google/gemini-2.5-flash"
    MAX_STEPS: int = 6
    LLM_TIMEOUT_SECONDS: float = 30.0
    LLM_MAX_RETRIES: int = 1

    # Tool execution
    PARALLEL_TOOL_CALLS: bool = True
    TOOL_RESULT_MAX_CHARS: int = 50000

    # Storage
    DATABASE_URL: str = "sqlite+aiosqlite:///./trainer.db"

    # Auth (JWT secret of the managed auth backend, required)
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    RATE_LIMIT_CALLS: int = 10
    RATE_LIMIT_PERIOD: int = 60

    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

settings = Settings()
