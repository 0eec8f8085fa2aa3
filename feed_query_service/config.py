"""
Configuration settings for Feed Query Service
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Instagram Feed Query Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8006

    # Redis (for caching following sets)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 2  # Separate from graph and newsfeed services
    REDIS_PASSWORD: str = ""
    REDIS_ENABLED: bool = True

    # JWT (tokens issued by the auth service)
    JWT_SECRET_KEY: str = "your-secret-key-change-this-in-production"
    JWT_ALGORITHM: str = "HS256"

    # Other Services
    POST_SERVICE_URL: str = "http://localhost:8002"
    GRAPH_SERVICE_URL: str = "http://localhost:8003"
    DISCOVERY_SERVICE_URL: str = "http://localhost:8005"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Combined search/filter settings
    MAX_CLIENT_CANDIDATES: int = 500  # Upper bound of the in-memory candidate buffer
    MAX_SEARCH_MATCHES: int = 500  # Upper bound when draining search pages
    COMBINE_TIMEOUT_SECONDS: float = 10.0
    DEBOUNCE_SECONDS: float = 0.3
    OPERATION_HISTORY_SIZE: int = 20
    MAX_SESSIONS: int = 10000  # Per-user coordinators held in memory

    # Cache TTL (seconds)
    CACHE_TTL_FOLLOWING: int = 300  # 5 minutes

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
