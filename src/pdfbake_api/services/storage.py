from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Protocol

import boto3
from botocore.exceptions import ClientError

from pdfbake_api.settings import get_settings


class StorageDriver(Protocol):
    """Opaque key -> bytes store holding session documents."""

    def put_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        ...

    def get_bytes(self, key: str) -> bytes:
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...


def get_or_none(storage: StorageDriver, key: str) -> bytes | None:
    try:
        return storage.get_bytes(key)
    except FileNotFoundError:
        return None


@dataclass
class MemoryStorageDriver:
    objects: dict[str, bytes] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def put_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        with self._lock:
            self.objects[key] = bytes(data)
        return key

    def get_bytes(self, key: str) -> bytes:
        with self._lock:
            try:
                return self.objects[key]
            except KeyError as exc:
                raise FileNotFoundError(key) from exc

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self.objects

    def delete(self, key: str) -> None:
        with self._lock:
            self.objects.pop(key, None)


@dataclass
class LocalStorageDriver:
    root: Path

    def ensure_root(self) -> None:
        self.root = self.root.resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _safe_join(self, key: str) -> Path:
        candidate = (self.root / key).resolve()
        if self.root not in candidate.parents and candidate != self.root:
            raise ValueError("Invalid storage key")
        return candidate

    def put_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        path = self._safe_join(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
        return key

    def get_bytes(self, key: str) -> bytes:
        return self._safe_join(key).read_bytes()

    def exists(self, key: str) -> bool:
        return self._safe_join(key).exists()

    def delete(self, key: str) -> None:
        self._safe_join(key).unlink(missing_ok=True)


@dataclass
class S3StorageDriver:
    bucket: str
    prefix: str | None
    client: boto3.client

    def _resolve_key(self, key: str) -> str:
        if self.prefix:
            clean_prefix = self.prefix.strip("/")
            return f"{clean_prefix}/{key}"
        return key

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        error_code = exc.response.get("Error", {}).get("Code")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return error_code in {"NoSuchKey", "404"} or status == 404

    def put_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        params = {
            "Bucket": self.bucket,
            "Key": self._resolve_key(key),
            "Body": data,
        }
        if content_type:
            params["ContentType"] = content_type
        self.client.put_object(**params)
        return key

    def get_bytes(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self._resolve_key(key))
            return response["Body"].read()
        except ClientError as exc:
            if self._is_missing(exc):
                raise FileNotFoundError("Object not found") from exc
            raise

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._resolve_key(key))
            return True
        except ClientError as exc:
            if self._is_missing(exc):
                return False
            raise

    def delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=self._resolve_key(key))


def _build_s3_driver() -> S3StorageDriver:
    settings = get_settings()
    client = boto3.client(
        "s3",
        region_name=settings.BAKE_S3_REGION,
        endpoint_url=settings.BAKE_S3_ENDPOINT,
        aws_access_key_id=settings.BAKE_S3_ACCESS_KEY,
        aws_secret_access_key=settings.BAKE_S3_SECRET_KEY,
    )
    return S3StorageDriver(
        bucket=settings.BAKE_S3_BUCKET,
        prefix=settings.BAKE_S3_PREFIX,
        client=client,
    )


_memory_driver = MemoryStorageDriver()


def get_storage() -> StorageDriver:
    settings = get_settings()
    driver_name = settings.BAKE_STORAGE_DRIVER.lower()
    if driver_name == "s3":
        return _build_s3_driver()
    if driver_name == "memory":
        return _memory_driver
    driver = LocalStorageDriver(Path(settings.BAKE_STORAGE_LOCAL_DIR))
    driver.ensure_root()
    return driver
