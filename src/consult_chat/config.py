from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    RELAY_URL: str = "ws://localhost:3001/relay"
    RELAY_TRANSPORTS: list[str] = ["websocket"]
    RELAY_RECONNECT_ATTEMPTS: int = 5
    RELAY_RECONNECT_DELAY: float = 1.0
    RELAY_CONNECT_TIMEOUT: float = 20.0
    RELAY_HEARTBEAT_SECONDS: float = 30.0

    API_BASE_URL: str = "http://localhost:8000"
    API_TIMEOUT: float = 10.0

    MERGE_TOLERANCE_MS: int = 5000
    TYPING_EXPIRY_SECONDS: float = 10.0

    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
