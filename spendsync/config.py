from typing import List, Union
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://postgres:root@db/postgres"
    CORS_ORIGINS: Union[str, List[str]] = ["http://localhost", "http://localhost:5173", "*"]
    LOG_LEVEL: str = "INFO"
    GMAIL_TOKEN_DIR: str = "tokens"

    # Celery Configuration
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"

    # Sync / ingestion
    SYNC_BATCH_SIZE: int = 100
    REPROCESS_BATCH_SIZE: int = 20
    SYNC_EMAIL_CONCURRENCY: int = 10
    SYNC_MAX_CONCURRENT_JOBS: int = 4
    SYNC_LOOKBACK_DAYS: int = 180
    SYNC_SAFETY_OFFSET_DAYS: int = 5
    SYNC_MAX_RESULTS: int = 1000
    SYNC_QUERY_KEYWORDS: Union[str, List[str]] = [
        "statement", "receipt", "purchase", "transaction",
        "payment", "invoice", "card", "bank", "upi",
    ]
    POST_SYNC_MAX_WAIT_SECONDS: float = 600.0

    # Categorization / analytics
    REVIEW_CONFIDENCE_THRESHOLD: float = 0.7
    ANALYTICS_CACHE_TTL_SECONDS: float = 60.0
    CATEGORIZATION_CONFIG_DIR: str = ""
    CARD_CONFIG_PATH: str = ""

    @field_validator("CORS_ORIGINS", "SYNC_QUERY_KEYWORDS", mode="before")
    @classmethod
    def parse_comma_separated(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }


settings = Settings()
