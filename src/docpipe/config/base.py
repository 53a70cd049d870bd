from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from logging import getLogger

from dotenv import load_dotenv
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = getLogger(__name__)
DEFAULT_MODULE_NAME = "docpipe"


def env_prefixed_model_config(env_prefix: str) -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=env_prefix,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class AppSettings(BaseSettings):
    model_config = env_prefixed_model_config("APP_")

    NAME: str = "docpipe"
    DEBUG: bool = False
    ALLOWED_CORS_ORIGINS: list[str] = ["*"]
    MAX_UPLOAD_MB: int = 50


class StorageSettings(BaseSettings):
    model_config = env_prefixed_model_config("STORAGE_")

    PROTOCOL: str = "file"
    ROOT: str = "./data"
    INPUT_FOLDER: str = "uploads"
    OUTPUT_FOLDER: str = "outputs"
    # Only used when PROTOCOL is "s3" (MinIO or AWS)
    ENDPOINT_URL: str | None = None
    ROOT_USER: str | None = None
    ROOT_PASSWORD: str | None = None
    USE_SSL: bool = False


class RedisSettings(BaseSettings):
    model_config = env_prefixed_model_config("REDIS_")

    URL: str = "redis://localhost:6379/0"


class SaqSettings(BaseSettings):
    model_config = env_prefixed_model_config("SAQ_")

    QUEUE_NAME: str = "docpipe"
    PROCESSES: int = 1
    WEB_ENABLED: bool = False
    USE_SERVER_LIFESPAN: bool = True
    JOB_TIMEOUT: int = 1800
    JOB_HEARTBEAT: int = 60
    JOB_RETRIES: int = 3
    JOB_TTL: int = 86400


class CloudSettings(BaseSettings):
    model_config = env_prefixed_model_config("CLOUD_")

    BASE_URL: str = "https://pdf-services-ue1.adobe.io"
    TOKEN_PATH: str = "/token"
    CLIENT_ID: str = ""
    CLIENT_SECRET: str = ""
    ORGANIZATION_ID: str = ""
    CREDENTIALS_FILE: str = "pdfservices-api-credentials.json"
    OCR_LANG: str = "en-US"
    TIMEOUT: float = 120.0
    POLL_INTERVAL: float = 2.0
    MAX_ATTEMPTS: int = 2


class ConversionSettings(BaseSettings):
    model_config = env_prefixed_model_config("CONVERSION_")

    LINE_TOLERANCE: float = 0.1
    FFMPEG_TIMEOUT: float = 1200.0
    # reserved per job for storage I/O, later tiers and the report
    STEP_HEADROOM: float = 300.0


class LogSettings(BaseSettings):
    model_config = env_prefixed_model_config("LOG_")

    LEVEL: int = 20
    SAQ_LEVEL: int = 20
    UVICORN_ACCESS_LEVEL: int = 20
    UVICORN_ERROR_LEVEL: int = 20
    GRANIAN_ACCESS_LEVEL: int = 30
    GRANIAN_ERROR_LEVEL: int = 20
    HTTPX_LEVEL: int = 30


@dataclass
class Settings:
    app: AppSettings
    storage: StorageSettings
    redis: RedisSettings
    saq: SaqSettings
    cloud: CloudSettings
    conversion: ConversionSettings
    log: LogSettings

    def __post_init__(self) -> None:
        budget = self.saq.JOB_TIMEOUT - self.conversion.STEP_HEADROOM
        bounds = {
            "CONVERSION_FFMPEG_TIMEOUT": self.conversion.FFMPEG_TIMEOUT,
            "CLOUD_TIMEOUT * CLOUD_MAX_ATTEMPTS": self.cloud.TIMEOUT * max(self.cloud.MAX_ATTEMPTS, 1),
        }
        for name, bound in bounds.items():
            if bound >= budget:
                msg = f"{name} ({bound}s) must stay below SAQ_JOB_TIMEOUT minus CONVERSION_STEP_HEADROOM ({budget}s)"
                raise ValueError(msg)

    @classmethod
    def from_env(cls, dotenv_filename: str = ".env") -> Settings:
        load_dotenv(dotenv_filename, override=False)
        try:
            settings = cls(
                app=AppSettings(),
                storage=StorageSettings(),
                redis=RedisSettings(),
                saq=SaqSettings(),
                cloud=CloudSettings(),
                conversion=ConversionSettings(),
                log=LogSettings(),
            )
        except (ValidationError, ValueError):
            logger.exception("Could not load settings")
            raise
        return settings


@lru_cache(maxsize=1, typed=True)
def get_settings(dotenv_filename: str = ".env") -> Settings:
    """Load Settings file.

    Returns:
        Settings: application settings
    """
    return Settings.from_env(dotenv_filename)
