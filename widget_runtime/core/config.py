from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Widget runtime settings"""

    # Basic runtime configuration
    PROJECT_NAME: str = "Widget Runtime"
    SERVICE_NAME: str = "widget-runtime"

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Widget API (tenant id is appended as a path segment)
    WIDGET_API_BASE_URL: str = "http://localhost:8000/api"
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    CONFIG_FETCH_RETRIES: int = 3
    END_CONVERSATION_TIMEOUT_SECONDS: float = 5.0

    # Client-side storage for visitor identity and conversation handle
    STORAGE_BACKEND: str = "file"  # file | redis | memory
    STORAGE_PATH: str = "~/.widget_runtime/storage.json"
    REDIS_URL: Optional[str] = None
    STORAGE_KEY_PREFIX: str = "voxtro"

    # Presentation
    MAX_FAQ_SUGGESTIONS: int = 4
    DEFAULT_WELCOME_MESSAGE: str = "Hi! How can I help you today?"

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables


settings = Settings()
