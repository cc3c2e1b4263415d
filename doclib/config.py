import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _resolve_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    environment = os.getenv("ENVIRONMENT", "").strip().lower()
    if environment == "development":
        return "postgresql+psycopg://localhost:5432/doclib"

    raise ValueError(
        "DATABASE_URL is not set. Set DATABASE_URL for non-development "
        "environments or set ENVIRONMENT=development for local defaults."
    )


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = _resolve_database_url()
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))

    # Languages
    default_data_lang: str = os.getenv("DEFAULT_DATA_LANG", "ru").strip().lower()
    supported_langs: tuple[str, ...] = _env_list("SUPPORTED_LANGS", "ru,en,uz")

    # Hierarchy
    hierarchy_max_depth: int = int(os.getenv("HIERARCHY_MAX_DEPTH", "10"))

    # Uploads
    upload_dir: str = os.getenv("UPLOAD_DIR", "uploads")
    max_upload_size_mb: int = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))
    allowed_extensions: tuple[str, ...] = _env_list(
        "ALLOWED_EXTENSIONS", "pdf,txt,docx"
    )

    # Storage backend: "local" or "s3"
    storage_backend: str = os.getenv("STORAGE_BACKEND", "local").strip().lower()
    storage_timeout_seconds: int = int(os.getenv("STORAGE_TIMEOUT_SECONDS", "30"))
    storage_reclaim_async: bool = _env_bool("STORAGE_RECLAIM_ASYNC", "true")

    # S3 / MinIO settings
    s3_endpoint_url: str = os.getenv("S3_ENDPOINT_URL", "")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "")
    s3_bucket_name: str = os.getenv("S3_BUCKET_NAME", "doclib-files")
    s3_region: str = os.getenv("S3_REGION", "us-east-1")

    # Trash
    trash_ttl_days: int = int(os.getenv("TRASH_TTL_DAYS", "30"))

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv(
        "CELERY_RESULT_BACKEND", "redis://localhost:6379/1"
    )
    celery_task_always_eager: bool = _env_bool("CELERY_TASK_ALWAYS_EAGER", "false")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = _env_bool("LOG_JSON", "false")


settings = Settings()
