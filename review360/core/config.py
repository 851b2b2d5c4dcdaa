from pathlib import Path
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repo root

ENV_FILE = os.getenv("ENV_FILE", str(BASE_DIR / ".env"))

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_FILE, extra="ignore")

    APP_ENV: str = "local"
    DATABASE_URL: str
    CORS_ORIGINS: str = "*"  # Comma-separated list of allowed origins, or "*" for all
    LOG_LEVEL: str = "INFO"

    # Directory defaults
    DEFAULT_PASSWORD: str = "123456"
    DEFAULT_DEPARTMENT: str = "General"
    IMPORTED_DEPARTMENT: str = "Imported"

    # Matrix generation / cycles
    PEERS_PER_SUBJECT: int = 2
    DEFAULT_CYCLE_DUE_DAYS: int = 30

    # AI collaborator (OpenAI-compatible chat completions); disabled without a key
    AI_API_KEY: str | None = None
    AI_BASE_URL: str = "https://openrouter.ai/api/v1"
    AI_MODEL: str = "google/gemini-2.0-flash-001"
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list, handling '*' for development"""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def ai_enabled(self) -> bool:
        return bool(self.AI_API_KEY)

settings = Settings()
