from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "stac-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "STAC")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./stac.db")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Auth
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me-before-deploying-stac")
    access_ttl_min: int = int(os.getenv("ACCESS_TTL_MIN", "15"))
    refresh_ttl_min: int = int(os.getenv("REFRESH_TTL_MIN", "10080"))  # 7d

    # Rooms
    room_id_length: int = int(os.getenv("ROOM_ID_LENGTH", "6"))
    currency_symbol: str = os.getenv("CURRENCY_SYMBOL", "₹")

settings = Settings()
