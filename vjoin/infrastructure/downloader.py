import logging
import time
from pathlib import Path
from typing import Optional
import httpx
from vjoin.config.models import DownloadConfig
from vjoin.domain.errors import DownloadError

def looks_like_html(first_bytes: bytes) -> bool:
    s = first_bytes.lstrip().lower()
    return s.startswith(b"<!doctype html") or s.startswith(b"<html") or b"<head" in s[:2000]

class HttpDownloader:
    """Streams a remote video to a local scratch path."""

    def __init__(self, config: DownloadConfig, client: Optional[httpx.Client] = None):
        self.config = config
        self._client = client
        self.logger = logging.getLogger(__name__)

    def _new_client(self) -> httpx.Client:
        return httpx.Client(
            follow_redirects=True,
            timeout=self.config.timeout_seconds,
            headers={"User-Agent": self.config.user_agent},
        )

    def fetch(self, url: str, dest: Path) -> int:
        """Downloads url into dest and returns the byte count. Raises DownloadError."""
        client = self._client or self._new_client()
        start = time.monotonic()
        try:
            with client.stream("GET", url) as response:
                if not response.is_success:
                    raise DownloadError(
                        f"Failed to download {url}: {response.status_code} {response.reason_phrase}"
                    )
                content_type = response.headers.get("content-type", "")
                if "text/html" in content_type:
                    raise DownloadError(
                        f"{url} returned HTML instead of video. Link may be private or blocked."
                    )
                total = 0
                with open(dest, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=self.config.chunk_size):
                        if not chunk:
                            continue
                        if total == 0 and looks_like_html(chunk[:4096]):
                            raise DownloadError(
                                f"{url} returned an HTML page instead of video. Link may be private or blocked."
                            )
                        f.write(chunk)
                        total += len(chunk)
        except httpx.HTTPError as e:
            raise DownloadError(f"Failed to download {url}: {e}") from e
        finally:
            if self._client is None:
                client.close()

        if total == 0:
            raise DownloadError(f"Downloaded file from {url} is empty")

        elapsed = time.monotonic() - start
        self.logger.info(f"Downloaded {dest.name} ({total / 1024 / 1024:.2f} MB in {elapsed:.2f}s)")
        if total > self.config.large_file_warning_bytes:
            self.logger.warning(f"Large file detected ({total / 1024 / 1024:.2f} MB). Processing may take longer.")
        return total
