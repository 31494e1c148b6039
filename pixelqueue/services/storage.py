"""
Storage Service
Handles uploaded inputs and processed outputs on the local filesystem.
"""

import logging
import os
import re
import uuid
from datetime import datetime
from pathlib import Path

from pixelqueue.core.exceptions import StorageError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StorageService:
    """Service for artifact storage operations."""

    INPUT_DIR = "inputs"
    OUTPUT_DIR = "outputs"

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)
        self.inputs_path = self.base_path / self.INPUT_DIR
        self.outputs_path = self.base_path / self.OUTPUT_DIR
        self.inputs_path.mkdir(parents=True, exist_ok=True)
        self.outputs_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"[Storage] Using local storage: {self.base_path}")

    @staticmethod
    def _safe_name(filename: str) -> str:
        name = _UNSAFE_CHARS.sub("_", Path(filename or "").name).strip("._")
        return name[:100] or "upload"

    def save_upload(self, data: bytes, filename: str) -> str:
        """
        Persist uploaded bytes under a fresh, collision-resistant name.

        Returns:
            Path of the stored input
        """
        file_path = self.inputs_path / f"{uuid.uuid4().hex}_{self._safe_name(filename)}"
        self.write_bytes(str(file_path), data)
        return str(file_path)

    def output_path_for(self, job_id: str, action: str) -> str:
        """Derive a fresh output path for one attempt at a job."""
        stamp = datetime.utcnow().strftime("%H%M%S")
        return str(self.outputs_path / f"{job_id}_{self._safe_name(action)}_{stamp}_{uuid.uuid4().hex[:12]}.jpg")

    def write_bytes(self, path: str, data: bytes) -> None:
        """Write a file atomically (temp file + rename)."""
        file_path = Path(path)
        tmp_path = file_path.with_name(f".{file_path.name}.tmp")
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as f:
                f.write(data)
            os.replace(tmp_path, file_path)
        except OSError as e:
            self.delete(str(tmp_path))
            raise StorageError(f"Failed to save file {file_path}: {e}") from e

    def read_bytes(self, path: str) -> bytes:
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise StorageError(f"Failed to read file {path}: {e}") from e

    def exists(self, path: str) -> bool:
        return bool(path) and Path(path).is_file()

    def delete(self, path: str) -> bool:
        """
        Best-effort delete. Failures are logged, never raised.

        Returns:
            True if the file was removed
        """
        file_path = Path(path)
        try:
            file_path.unlink()
            logger.debug(f"[Storage] Deleted file: {path}")
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"[Storage] Warning: Could not delete {path}: {e}")
            return False

    def health_check(self) -> dict:
        ok = self.inputs_path.is_dir() and os.access(self.inputs_path, os.W_OK)
        return {"status": "ok" if ok else "error", "path": str(self.base_path)}
