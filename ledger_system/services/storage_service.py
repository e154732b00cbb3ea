# ledger_system/services/storage_service.py
"""
Receipt image storage.

ReceiptStorage is the object-store interface used by ReceiptService;
LocalReceiptStorage keeps objects on the local filesystem.
"""
import asyncio
import logging
import mimetypes
import os
import re
import uuid
from datetime import timezone
from pathlib import Path
from typing import Optional

from config import Config
from ledger_system.errors import StorageError
from ledger_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

MAX_RECEIPT_IMAGE_BYTES = 10 * 1024 * 1024


def receiptObjectKey(userId: int, fileName: str) -> str:
    """Object key for a receipt image: receipts/<userId>/<millis>-<random hex>-<safe name>."""
    timestamp = int(timeMachine.now.replace(tzinfo=timezone.utc).timestamp() * 1000)
    safeName = re.sub(r"[^a-zA-Z0-9.]", "_", fileName)
    return f"receipts/{userId}/{timestamp}-{uuid.uuid4().hex}-{safeName}"


def validateReceiptImage(fileData: bytes, fileName: str) -> None:
    """
    Raises:
        StorageError(invalid): Empty, oversized or non-image file
    """
    if not fileName or not fileName.strip():
        raise StorageError(StorageError.INVALID, "File name is required")

    if not fileData:
        raise StorageError(StorageError.INVALID, "Receipt image is empty")

    if len(fileData) > MAX_RECEIPT_IMAGE_BYTES:
        raise StorageError(StorageError.INVALID, "Image size must be less than 10MB")

    contentType, _ = mimetypes.guess_type(fileName)
    if not contentType or not contentType.startswith("image/"):
        raise StorageError(StorageError.INVALID, "Please select a valid image file")


class ReceiptStorage:
    """Object store interface."""

    async def upload(self, key: str, data: bytes) -> str:
        """Store object, return its public URL."""
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        """Remove object. Missing objects are not an error."""
        raise NotImplementedError


class LocalReceiptStorage(ReceiptStorage):
    """Filesystem-backed receipt storage."""

    def __init__(self, basePath: Optional[str] = None, publicBaseUrl: Optional[str] = None):
        self.basePath = Path(basePath or Config.get(Config.RECEIPT_STORAGE_PATH))
        self.publicBaseUrl = (publicBaseUrl or Config.get(Config.RECEIPT_PUBLIC_BASE_URL)).rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self.basePath / key).resolve()
        if not str(path).startswith(str(self.basePath.resolve()) + os.sep):
            raise StorageError(StorageError.INVALID, f"Invalid object key: {key}")
        return path

    async def upload(self, key: str, data: bytes) -> str:
        path = self._path(key)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except PermissionError as e:
            logger.warning(f"Permission denied storing {key}: {e}")
            raise StorageError(StorageError.PERMISSION_DENIED, "Permission denied while uploading receipt image")
        except OSError as e:
            logger.warning(f"Failed to store {key}: {e}")
            raise StorageError(StorageError.TRANSIENT, "Failed to upload receipt image. Please try again.")

        logger.debug(f"Stored receipt image {key} ({len(data)} bytes)")
        return f"{self.publicBaseUrl}/{key}"

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, True)
        except PermissionError as e:
            raise StorageError(StorageError.PERMISSION_DENIED, f"Permission denied deleting {key}: {e}")
        except OSError as e:
            raise StorageError(StorageError.TRANSIENT, f"Failed to delete {key}: {e}")
        logger.debug(f"Deleted receipt image {key}")
