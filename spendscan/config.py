"""
Application settings.
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./data/spendscan.db"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # File storage
    DATA_DIR: str = "./data"
    UPLOAD_DIR: str = "./data/uploads"
    MAX_RECEIPT_SIZE_MB: int = 10
    MAX_STATEMENT_SIZE_MB: int = 20

    # Gemini extraction service
    GEMINI_API_KEY: str = ""
    GEMINI_DEFAULT_MODEL: str = "gemini-1.5-flash"
    GEMINI_FALLBACK_MODEL: str = "gemini-1.5-flash"
    GEMINI_POLL_INTERVAL_SEC: float = 3.0
    GEMINI_MAX_POLL_ATTEMPTS: int = 20

    # Preview lifecycle
    AI_PREVIEW_TTL_SEC: int = 900
    PREVIEW_SWEEP_INTERVAL_SEC: int = 300

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
