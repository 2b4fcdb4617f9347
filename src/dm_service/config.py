from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"
    REALTIME_CHANNEL_PREFIX: str = "dm.inbox"

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    STORAGE_ENDPOINT_URL: str | None = None
    STORAGE_ACCESS_KEY: str | None = None
    STORAGE_SECRET_KEY: str | None = None
    STORAGE_REGION: str = "us-east-1"
    STORAGE_BUCKET: str = "message-attachments"
    STORAGE_PUBLIC_URL: str | None = None

    ATTACHMENT_MAX_BYTES: int = 10 * 1024 * 1024
    PREVIEW_MAX_SIZE: int = 256

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def storage_public_url(self) -> str:
        if self.STORAGE_PUBLIC_URL:
            return self.STORAGE_PUBLIC_URL.rstrip("/")
        if self.STORAGE_ENDPOINT_URL:
            return f"{self.STORAGE_ENDPOINT_URL.rstrip('/')}/{self.STORAGE_BUCKET}"
        return f"https://{self.STORAGE_BUCKET}.s3.{self.STORAGE_REGION}.amazonaws.com"

    def inbox_channel(self, user_id: str) -> str:
        return f"{self.REALTIME_CHANNEL_PREFIX}.{user_id}"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
