from functools import lru_cache
from typing import Dict, Literal, Optional

from pydantic_settings import BaseSettings

CompressionFormat = Literal["none", "gzip", "zip"]


class Settings(BaseSettings):
    # recordings
    RECORDINGS_ENABLED: bool = False
    RECORDINGS_PATH: str = "/data/recordings"
    RECORDINGS_FILENAME: Optional[str] = "session-{{sessionId}}-{{timestamp}}.guac"
    RECORDINGS_COMPRESSION_FORMAT: CompressionFormat = "none"
    RECORDINGS_STORAGE: Literal["local", "s3"] = "local"
    RECORDINGS_DELETE_LOCAL_AFTER_UPLOAD: bool = False

    # object storage (any S3-compatible endpoint)
    S3_ENDPOINT: str = "s3.amazonaws.com"
    S3_REGION: str = "us-east-1"
    S3_SECURE: bool = True
    S3_ACCESS_KEY_ID: Optional[str] = None
    S3_SECRET_ACCESS_KEY: Optional[str] = None
    S3_DEFAULT_BUCKET: Optional[str] = None
    S3_KEY_TEMPLATE: Optional[str] = None

    # webhook
    WEBHOOK_ENABLE: bool = False
    WEBHOOK_URL: Optional[str] = None
    WEBHOOK_AUTH_TYPE: Optional[str] = None  # none | bearer | basic
    WEBHOOK_AUTH_TOKEN: Optional[str] = None
    WEBHOOK_AUTH_USERNAME: Optional[str] = None
    WEBHOOK_AUTH_PASSWORD: Optional[str] = None
    WEBHOOK_HEADERS: Dict[str, str] = {}
    WEBHOOK_TIMEOUT_SEC: float = 10.0

    # connection parameters
    DRIVE_PATH_TEMPLATE: Optional[str] = None
    CONNECTION_DEFAULTS: Dict[str, Dict[str, str]] = {}

    # delivery queues
    UPLOAD_MAX_ATTEMPTS: int = 3
    UPLOAD_RETRY_STEP_MS: int = 5000
    NOTIFY_MAX_ATTEMPTS: int = 3
    NOTIFY_BACKOFF_BASE_MS: int = 1000
    NOTIFY_BACKOFF_CAP_MS: int = 30000
    NOTIFY_BACKOFF_JITTER: bool = False
    QUEUE_POLL_INTERVAL_SEC: float = 1.0

    LOG_LEVEL: str = "INFO"

    @property
    def webhook_enabled(self) -> bool:
        return bool(self.WEBHOOK_ENABLE and self.WEBHOOK_URL)

    @property
    def storage_credentials(self) -> bool:
        return bool(self.S3_ACCESS_KEY_ID and self.S3_SECRET_ACCESS_KEY)

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
