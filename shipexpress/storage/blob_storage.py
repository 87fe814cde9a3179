"""
Blob storage for avatars and delivery-proof photos.

upload() stores bytes under a unique name and returns the public URL.
"""

import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Optional

import httpx

from shipexpress import config
from shipexpress.core.errors import TransportError

logger = logging.getLogger(__name__)


def _unique_key(data: bytes, filename: str, folder: str) -> str:
    if not data:
        raise ValueError("Refusing to upload an empty file")
    suffix = Path(filename).suffix.lower()
    return f"{folder}/{uuid.uuid4().hex}{suffix}"


class LocalBlobStorage:

    def __init__(self, root: Optional[Path] = None, base_url: Optional[str] = None):
        self.root = Path(root or config.BLOB_DIR)
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = (base_url or config.BLOB_BASE_URL or self.root.resolve().as_uri()).rstrip("/")

    def upload(self, data: bytes, filename: str, folder: str = "uploads") -> str:
        key = _unique_key(data, filename, folder)
        target = self.root / key
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

        url = f"{self.base_url}/{key}"
        logger.info(f"Uploaded {filename} ({len(data)} bytes) to {url}")
        return url


class SupabaseBlobStorage:
    """Files live in one hosted storage bucket; URLs are the bucket's public URLs."""

    def __init__(self, client, bucket: Optional[str] = None):
        self.client = client
        self.bucket = bucket or config.SUPABASE_BUCKET

    def upload(self, data: bytes, filename: str, folder: str = "uploads") -> str:
        key = _unique_key(data, filename, folder)
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        bucket = self.client.storage.from_(self.bucket)

        try:
            bucket.upload(key, data, {"content-type": content_type})
        except httpx.TimeoutException as e:
            logger.error(f"Upload of {filename} timed out")
            raise TransportError(f"Upload of {filename} timed out", retryable=True, outcome_unknown=True) from e
        except httpx.HTTPError as e:
            logger.error(f"Upload of {filename} failed: {str(e)}")
            raise TransportError(f"Upload of {filename} failed: {e}", retryable=True, outcome_unknown=True) from e

        url = bucket.get_public_url(key)
        logger.info(f"Uploaded {filename} ({len(data)} bytes) to {self.bucket}/{key}")
        return url
