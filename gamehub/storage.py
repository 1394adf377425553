"""Media storage collaborator.

Uploaded files are copied into a bucket directory under ``MEDIA_ROOT`` and
served back from ``MEDIA_BASE_URL``. The bytes are never inspected.
"""
import logging
import os
import shutil
import time
from typing import BinaryIO
from uuid import uuid4

from gamehub.config import settings
from gamehub.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

BUCKETS = ("post-media", "group-images", "avatars")


def media_kind(content_type: str) -> str:
    """Post type implied by an upload's content type."""
    content_type = content_type or ""
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("video/"):
        return "video"
    return "text"


class MediaStorage:
    def __init__(self, root: str = None, base_url: str = None):
        self.root = root or settings.MEDIA_ROOT
        self.base_url = (base_url or settings.MEDIA_BASE_URL).rstrip("/")

    def _stored_name(self, filename: str) -> str:
        ext = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
        return f"{int(time.time() * 1000)}-{uuid4().hex}.{ext}"

    def save(self, bucket: str, filename: str, fileobj: BinaryIO) -> str:
        """Store ``fileobj`` and return its public URL."""
        if bucket not in BUCKETS:
            raise ValidationError(f"Unknown bucket: {bucket}")
        if not filename:
            raise ValidationError("File name is required")

        name = self._stored_name(filename)
        directory = os.path.join(self.root, bucket)
        try:
            os.makedirs(directory, exist_ok=True)
            # "xb" never replaces an earlier upload
            with open(os.path.join(directory, name), "xb") as out:
                shutil.copyfileobj(fileobj, out)
        except OSError as e:
            logger.error(f"Error storing {filename} in {bucket}: {e}")
            raise PersistenceError("Could not store uploaded file") from e

        logger.info(f"Stored upload {name} in {bucket}")
        return f"{self.base_url}/{bucket}/{name}"
