from __future__ import annotations

from pathlib import Path

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"

    CHANNEL_PREFIX: str = "community"
    CHAT_TOPIC: str = "community-chat"
    CHAT_BROADCAST_EVENT: str = "new-message"
    BROADCAST_SELF: bool = False
    PRESENCE_HEARTBEAT_SECONDS: float = 10.0
    PRESENCE_TTL_SECONDS: float = 30.0
    CHANNEL_RECONNECT_SECONDS: float = 2.0

    HISTORY_LIMIT: int = 50
    MAX_MESSAGE_LENGTH: int = 2000

    IDENTITY_STORE_PATH: Path = Path.home() / ".config" / "community-sync" / "storage.json"
    IDENTITY_KEY: str = "community-chat-username"

    STREAM_MAX_ATTEMPTS: int = 5
    STREAM_BASE_DELAY_SECONDS: float = 2.0
    STREAM_DEFAULT_VOLUME: float = 0.7
    STREAM_SOURCES: dict[str, str] = {
        "code": "https://coderadio-admin-v2.freecodecamp.org/listen/coderadio/radio.mp3",
        "rain": "https://rainyday-mynoise.radioca.st/stream",
    }

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
