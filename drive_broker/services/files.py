"""
File Transfer Helper - the platform side of file uploads and downloads.

Drive transfers always go through this helper: an upload to Drive reads a
platform file, and a download from Drive ends up as a new platform file.

LocalFileStore keeps files under FILES_DIR:
    <FILES_DIR>/<file_id>        content
    <FILES_DIR>/<file_id>.json   {"fileId", "fileName", "contentType"}
"""

import json
import logging
import shutil
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Optional

from drive_broker.core.config import settings
from drive_broker.environments.base import ArgumentError


logger = logging.getLogger("drive_broker.services.files")


class FileTransferHelper(ABC):
    """Abstract base class for platform file storage."""

    @abstractmethod
    def download(self, file_id: str) -> Path:
        """
        Get a readable local path for a platform file.

        Raises:
            ArgumentError: If the file does not exist
        """
        pass

    @abstractmethod
    def upload(self, name: str, stream: BinaryIO, mime_type: Optional[str]) -> dict:
        """
        Store stream as a new platform file.

        Returns:
            {"fileId": ..., "fileName": ..., "contentType": ...}
        """
        pass

    def metadata(self, file_id: str) -> dict:
        """Name and content type of a platform file, when known."""
        return {"fileId": file_id}


class LocalFileStore(FileTransferHelper):
    """File transfer helper backed by a local directory."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.FILES_DIR)

    def download(self, file_id: str) -> Path:
        path = self._path(file_id)
        if not path.is_file():
            raise ArgumentError(f"File [{file_id}] was not found")
        return path

    def upload(self, name: str, stream: BinaryIO, mime_type: Optional[str]) -> dict:
        self.root.mkdir(parents=True, exist_ok=True)

        file_id = uuid.uuid4().hex
        with open(self._path(file_id), "wb") as out:
            shutil.copyfileobj(stream, out)

        metadata = {
            "fileId": file_id,
            "fileName": name,
            "contentType": mime_type or "application/octet-stream",
        }
        self._sidecar(file_id).write_text(json.dumps(metadata))

        logger.info(f"Stored file [{name}] as [{file_id}]")
        return metadata

    def metadata(self, file_id: str) -> dict:
        path = self._sidecar(file_id)
        if not path.is_file():
            return {"fileId": file_id}
        return json.loads(path.read_text())

    def _path(self, file_id: str) -> Path:
        # file ids are opaque hex names; never let them escape the root
        safe = Path(file_id).name
        if not safe or safe != file_id:
            raise ArgumentError(f"Invalid file id [{file_id}]")
        return self.root / safe

    def _sidecar(self, file_id: str) -> Path:
        path = self._path(file_id)
        return path.with_name(path.name + ".json")
