"""
Platform Module - Object Storage
===================================
Bucket/path addressed blobs on local disk, served under /storage.
"""

import logging
import os
from typing import Optional

from starlette.concurrency import run_in_threadpool

from config.settings import STORAGE_DIR, BASE_URL
from common.exceptions import StorageError

logger = logging.getLogger("farm2home.storage")


def _safe_join(root: str, *parts: str) -> str:
    """Join path parts under root, rejecting anything that escapes it."""
    root = os.path.abspath(root)
    target = os.path.abspath(os.path.join(root, *parts))
    if os.path.commonpath([root, target]) != root or target == root:
        raise StorageError("Invalid object path")
    return target


class StorageClient:

    def __init__(self, root: str = STORAGE_DIR):
        self.root = root

    def object_path(self, bucket: str, path: str) -> str:
        return _safe_join(self.root, bucket, path)

    async def upload(self, bucket: str, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        """
        Store an object. Refuses to overwrite an existing one.

        Returns:
            The stored object key ("bucket/path")
        """
        target = self.object_path(bucket, path)

        def write():
            if os.path.exists(target):
                raise StorageError("The resource already exists")
            try:
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with open(target, "xb") as fh:
                    fh.write(data)
            except OSError as e:
                logger.error(f"Upload to {bucket}/{path} failed: {e}")
                raise StorageError("Upload failed")

        await run_in_threadpool(write)
        logger.info(f"Stored {bucket}/{path} ({len(data)} bytes, {content_type or 'unknown type'})")
        return f"{bucket}/{path}"

    def get_public_url(self, bucket: str, path: str) -> str:
        self.object_path(bucket, path)
        return f"{BASE_URL}/storage/{bucket}/{path}"

    async def remove(self, bucket: str, path: str) -> bool:
        """Delete an object. Returns True if it existed."""
        target = self.object_path(bucket, path)

        def unlink() -> bool:
            try:
                os.remove(target)
                return True
            except FileNotFoundError:
                return False

        return await run_in_threadpool(unlink)
