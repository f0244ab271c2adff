import logging
from pathlib import Path
from typing import Dict, Optional
import httpx
from vjoin.config.models import StorageConfig
from vjoin.domain.errors import UploadError, UploadConflictError

class ObjectStore:
    """Client for a Supabase-style storage REST API (delete, upload, public URL)."""

    def __init__(self, config: StorageConfig, client: Optional[httpx.Client] = None):
        if not config.enabled:
            raise ValueError("Storage URL and key must be configured")
        self.config = config
        self.client = client or httpx.Client(timeout=config.timeout_seconds)
        self.logger = logging.getLogger(__name__)

    @property
    def _base(self) -> str:
        return self.config.url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.key}",
            "apikey": self.config.key,
        }

    def object_url(self, key: str) -> str:
        return f"{self._base}/storage/v1/object/{self.config.bucket}/{key}"

    def public_url(self, key: str) -> str:
        return f"{self._base}/storage/v1/object/public/{self.config.bucket}/{key}"

    def delete(self, key: str) -> bool:
        """Idempotent delete; a missing object counts as success. Never raises."""
        try:
            response = self.client.delete(self.object_url(key), headers=self._headers())
        except httpx.HTTPError as e:
            self.logger.warning(f"Delete exception for {key} (continuing): {e}")
            return False
        if response.is_success or response.status_code == 404:
            self.logger.info(f"Delete successful or object absent: {key} ({response.status_code})")
            return True
        self.logger.warning(f"Delete warning for {key} ({response.status_code}): {response.text}")
        return False

    def upload(self, path: Path, key: str, content_type: str = "video/mp4", upsert: bool = True):
        """With upsert=False an existing object at `key` is a conflict, not an overwrite."""
        headers = self._headers()
        headers["Content-Type"] = content_type
        headers["x-upsert"] = "true" if upsert else "false"
        try:
            with open(path, "rb") as f:
                response = self.client.post(self.object_url(key), headers=headers, content=f.read())
        except httpx.HTTPError as e:
            raise UploadError(f"Upload of {key} failed: {e}") from e

        if response.status_code == 409:
            raise UploadConflictError(f"Upload failed: 409 - Duplicate object at {key}. Retry with a unique key.")
        if not response.is_success:
            raise UploadError(f"Upload failed: {response.status_code} - {response.text}")
        self.logger.info(f"Upload complete: {key}")

    def publish(self, path: Path, key: str) -> str:
        self.delete(key)
        self.upload(path, key)
        return self.public_url(key)

    def close(self):
        self.client.close()
