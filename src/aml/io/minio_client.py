from __future__ import annotations
from typing import Optional
from pathlib import Path

from minio import Minio # type: ignore
from minio.error import S3Error # type: ignore


class MinIOClient:
    def __init__(self, endpoint: str, access_key: str, secret_key: str,
                 secure: bool = False, default_bucket: Optional[str] = None, create_bucket: bool = False):

        self.client = Minio(endpoint, access_key=access_key, secret_key=secret_key, secure=secure)
        self.default_bucket = default_bucket

        if default_bucket and create_bucket:
            self._ensure_bucket(default_bucket)

    def bucket_ok(self, bucket: Optional[str] = None) -> bool:
        return bool(self.client.bucket_exists(self._bucket(bucket)))

    def fget(self, key: str, dest: str | Path, bucket: Optional[str] = None) -> int:
        """Download ``key`` into ``dest`` and return the object size in bytes."""
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        obj = self.client.fget_object(self._bucket(bucket), key, str(dest))
        size = getattr(obj, "size", None)
        return int(size) if size is not None else dest.stat().st_size

    def put_file(self, key: str, path: str | Path, content_type: str = "application/octet-stream",
                 bucket: Optional[str] = None) -> str:
        bucket = self._bucket(bucket)
        self._ensure_bucket(bucket)
        self.client.fput_object(bucket, key, str(path), content_type=content_type)
        return f"s3://{bucket}/{key}"

    @staticmethod
    def make_model_key(prefix: str, name: str, filename: str = "model.onnx") -> str:
        prefix = prefix.strip("/")
        return f"{prefix}/{name}/{filename}" if prefix else f"{name}/{filename}"

    def _bucket(self, bucket: Optional[str]) -> str:
        if bucket is None:
            if not self.default_bucket:
                raise ValueError("Bucket is not provided and default_bucket is None.")
            bucket = self.default_bucket
        return bucket

    def _ensure_bucket(self, bucket: str) -> None:
        try:
            if not self.client.bucket_exists(bucket):
                self.client.make_bucket(bucket)
        except S3Error:
            if not self.client.bucket_exists(bucket):
                raise
