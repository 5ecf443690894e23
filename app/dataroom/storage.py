from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO


class StorageError(RuntimeError):
    pass


class Storage:
    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def put_stream(self, key: str, stream: BinaryIO, *, content_type: str | None = None) -> int:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def read_bytes(self, key: str) -> bytes:
        with self.open(key) as f:
            return f.read()

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def local_path(self, key: str) -> Path | None:
        """Filesystem path for `key` when the backend has one (external tools need it)."""
        return None


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path

    def _path(self, key: str) -> Path:
        safe_key = key.lstrip("/").replace("\\", "/")
        p = (self.root / safe_key).resolve()
        if self.root.resolve() not in p.parents:
            raise StorageError(f"Storage key escapes storage root: {key!r}")
        return p

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def put_stream(self, key: str, stream: BinaryIO, *, content_type: str | None = None) -> int:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        with p.open("wb") as out:
            while True:
                chunk = stream.read(1024 * 1024)
                if not chunk:
                    break
                out.write(chunk)
                written += len(chunk)
        return written

    def open(self, key: str) -> BinaryIO:
        p = self._path(key)
        try:
            return p.open("rb")
        except OSError as e:
            raise StorageError(f"Cannot read stored file {key!r}: {e}") from e

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def local_path(self, key: str) -> Path | None:
        return self._path(key)


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str
    prefix: str = "files"

    def _client(self):
        try:
            import boto3  # type: ignore
        except Exception as e:  # pragma: no cover
            raise StorageError("boto3 required for S3 storage. Install boto3.") from e
        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def _key(self, key: str) -> str:
        return f"{self.prefix}/{key.lstrip('/')}" if self.prefix else key.lstrip("/")

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        extra: dict[str, object] = {}
        if content_type:
            extra["ContentType"] = content_type
        self._client().put_object(Bucket=self.bucket, Key=self._key(key), Body=data, **extra)

    def put_stream(self, key: str, stream: BinaryIO, *, content_type: str | None = None) -> int:
        extra: dict[str, object] = {}
        if content_type:
            extra["ContentType"] = content_type
        start = stream.tell() if stream.seekable() else 0
        self._client().upload_fileobj(stream, self.bucket, self._key(key), ExtraArgs=extra or None)
        end = stream.tell() if stream.seekable() else start
        return end - start

    def open(self, key: str) -> BinaryIO:
        try:
            obj = self._client().get_object(Bucket=self.bucket, Key=self._key(key))
        except Exception as e:
            raise StorageError(f"Cannot read stored object {key!r}: {e}") from e
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, key: str) -> bool:
        try:
            self._client().head_object(Bucket=self.bucket, Key=self._key(key))
            return True
        except Exception:
            return False

    def delete(self, key: str) -> None:
        self._client().delete_object(Bucket=self.bucket, Key=self._key(key))


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "nyc3").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
        )
    # default local
    return LocalStorage(root=Path(config["UPLOAD_DIR"]))


S3_REQUIRED_KEYS = ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")


def check_storage(config: dict, logger: logging.Logger) -> bool:
    """
    Startup check. Misconfiguration is logged loudly but does not stop the app;
    deliveries will fail with StorageError until it is fixed.
    """
    storage = storage_from_config(config)
    if isinstance(storage, LocalStorage):
        storage.root.mkdir(parents=True, exist_ok=True)
        return True
    assert isinstance(storage, S3Storage)

    missing = [k for k in S3_REQUIRED_KEYS if not config.get(k)]
    if missing:
        logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing))
        return False
    try:
        storage._client().head_bucket(Bucket=storage.bucket)
    except Exception as e:
        logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket '%s': %s", storage.bucket, e)
        return False
    logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
    return True
