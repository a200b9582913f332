from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    BAKE_ENV: str = "development"
    BAKE_STORAGE_DRIVER: str = "local"
    BAKE_STORAGE_LOCAL_DIR: str = ".data"
    BAKE_S3_BUCKET: Optional[str] = None
    BAKE_S3_REGION: Optional[str] = None
    BAKE_S3_ACCESS_KEY: Optional[str] = None
    BAKE_S3_SECRET_KEY: Optional[str] = None
    BAKE_S3_ENDPOINT: Optional[str] = None
    BAKE_S3_PREFIX: Optional[str] = None
    BAKE_MAX_UPLOAD_MB: int = 25
    BAKE_MAX_FONT_MB: int = 10
    BAKE_HISTORY_LIMIT: int = 20
    BAKE_MAX_SESSIONS: int = 64
    BAKE_STRICT_PAGE_INDEX: bool = False
    BAKE_BUILD_VERSION: Optional[str] = None
    WEB_ORIGIN: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def _validate(self) -> "Settings":
        if self.BAKE_HISTORY_LIMIT < 1:
            raise ValueError("BAKE_HISTORY_LIMIT must be at least 1")
        if self.BAKE_MAX_SESSIONS < 1:
            raise ValueError("BAKE_MAX_SESSIONS must be at least 1")
        if self.BAKE_STORAGE_DRIVER.lower() == "s3":
            missing = [
                name
                for name, value in {
                    "BAKE_S3_BUCKET": self.BAKE_S3_BUCKET,
                    "BAKE_S3_ACCESS_KEY": self.BAKE_S3_ACCESS_KEY,
                    "BAKE_S3_SECRET_KEY": self.BAKE_S3_SECRET_KEY,
                }.items()
                if not value
            ]
            if missing:
                raise ValueError(f"Missing required S3 settings: {', '.join(missing)}")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
