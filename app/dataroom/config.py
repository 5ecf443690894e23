import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    upload_dir: str
    cache_dir: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    ffmpeg_path: str
    video_encode_timeout: float


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number of seconds, got {raw!r}.")


def load_settings() -> Settings:
    uploads_root = Path(os.getcwd()) / "uploads"
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///dataroom.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        upload_dir=_getenv("UPLOAD_DIR", str(uploads_root / "files")),
        cache_dir=_getenv("CACHE_DIR", str(uploads_root / "cache")),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        ffmpeg_path=_getenv("FFMPEG_PATH", "ffmpeg"),
        # Video transcoding must never outlive the request that asked for it.
        video_encode_timeout=_getenv_float("VIDEO_ENCODE_TIMEOUT", 15.0),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "UPLOAD_DIR": s.upload_dir,
        "CACHE_DIR": s.cache_dir,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "FFMPEG_PATH": s.ffmpeg_path,
        "VIDEO_ENCODE_TIMEOUT": s.video_encode_timeout,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # file upload limits (500MB, videos)
        "MAX_CONTENT_LENGTH": 500 * 1024 * 1024,
    }
