"""
Object storage for team images and generated videos.
Objects live on the local filesystem under one directory per bucket;
signed download URLs are short-lived JWTs (HS256, RFC 7519).
"""
import time
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Optional, Tuple

import jwt

from .logging import log_event

IMAGES_BUCKET = "team-images"
VIDEOS_BUCKET = "team-videos"


class StorageError(Exception):
    """An object could not be written, read or removed."""


class ObjectStorage:
    BUCKETS = (IMAGES_BUCKET, VIDEOS_BUCKET)
    TOKEN_ALGORITHM = "HS256"

    def __init__(
        self,
        root: Path,
        secret_key: str,
        url_builder: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.root = Path(root)
        self._secret_key = secret_key
        self._url_builder = url_builder or (lambda token: f"/api/storage/{token}")
        for bucket in self.BUCKETS:
            (self.root / bucket).mkdir(parents=True, exist_ok=True)

    def _resolve(self, bucket: str, path: str) -> Path:
        if bucket not in self.BUCKETS:
            raise StorageError(f"Unknown bucket: {bucket}")
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise StorageError(f"Invalid object path: {path}")
        return self.root / bucket / Path(*rel.parts)

    def upload(self, bucket: str, path: str, data: bytes, *, upsert: bool = True) -> str:
        target = self._resolve(bucket, path)
        if target.exists() and not upsert:
            raise StorageError(f"Object already exists: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(str(exc)) from exc
        log_event("info", "storage.uploaded", bucket=bucket, path=path, size=len(data))
        return path

    def download(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise StorageError(str(exc)) from exc

    def exists(self, bucket: str, path: str) -> bool:
        return self._resolve(bucket, path).is_file()

    def remove(self, bucket: str, paths: Iterable[str]) -> int:
        removed = 0
        for path in paths:
            target = self._resolve(bucket, path)
            if not target.exists():
                continue
            try:
                target.unlink()
            except OSError as exc:
                raise StorageError(str(exc)) from exc
            removed += 1
        if removed:
            log_event("info", "storage.removed", bucket=bucket, count=removed)
        return removed

    def create_signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        self._resolve(bucket, path)
        now = int(time.time())
        payload = {"bkt": bucket, "path": path, "iat": now, "exp": now + int(expires_in)}
        token = jwt.encode(payload, self._secret_key, algorithm=self.TOKEN_ALGORITHM)
        return self._url_builder(token)

    def verify_token(self, token: str) -> Tuple[str, str]:
        """Return ``(bucket, path)`` for a valid signed-URL token."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self.TOKEN_ALGORITHM])
        except jwt.ExpiredSignatureError as exc:
            raise ValueError("Signed URL expired") from exc
        except jwt.InvalidTokenError as exc:
            raise ValueError("Invalid signed URL") from exc
        bucket, path = payload.get("bkt"), payload.get("path")
        if not bucket or not path:
            raise ValueError("Invalid signed URL")
        return bucket, path
