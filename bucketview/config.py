from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "bucketview"
    app_env: str = "dev"
    log_level: str = "INFO"
    app_secret_key: str = "change-me-in-production"

    s3_endpoint_url: str | None = None
    s3_region: str = "us-east-1"
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    bucket_name: str = "bucketview"

    max_upload_size_bytes: int = 50 * 1024 * 1024
    default_share_ttl_seconds: int = 12 * 60 * 60
    max_share_ttl_seconds: int = 7 * 24 * 60 * 60
    trash_prefix: str = ".trash/"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="BUCKETVIEW_")


@lru_cache
def get_settings() -> Settings:
    return Settings()
