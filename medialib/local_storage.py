"""
LocalStorage - Filesystem storage backend.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .errors import StorageError
from .storage_backend import StorageBackend


@dataclass
class LocalConfig:
    """
    Local filesystem storage configuration.

    Attributes:
        root_path: Directory that holds every stored path
        base_url: URL prefix under which root_path is served
    """
    root_path: str
    base_url: str = '/system'

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty when valid)."""
        errors = []
        if not self.root_path:
            errors.append("Local root path is required")
        elif os.path.exists(self.root_path) and not os.path.isdir(self.root_path):
            errors.append(f"Local root is not a directory: {self.root_path}")
        return errors


class LocalStorage(StorageBackend):
    """
    Stores objects as files below a root directory.
    """

    def __init__(self, config: LocalConfig, logger: Optional[logging.Logger] = None):
        """
        Initialize local storage.

        Args:
            config: Local configuration
            logger: Optional logger instance
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.root = Path(config.root_path).resolve()

    def full_path(self, path: str) -> Path:
        """Filesystem location of a storage path."""
        full = (self.root / path.lstrip('/')).resolve()
        if full != self.root and self.root not in full.parents:
            raise StorageError(f"Path escapes storage root: {path}", path=path)
        return full

    def put(self, path: str, data: bytes, content_type: str = 'application/octet-stream') -> None:
        full = self.full_path(path)
        try:
            full.parent.mkdir(parents=True, exist_ok=True)
            tmp = full.with_name(full.name + '.tmp')
            tmp.write_bytes(data)
            os.replace(tmp, full)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}", path=path) from e
        self.logger.debug(f"Wrote {path} ({len(data)} bytes)")

    def get(self, path: str) -> bytes:
        full = self.full_path(path)
        try:
            return full.read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"Not found: {path}", path=path, not_found=True) from e
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}", path=path) from e

    def delete(self, path: str) -> None:
        full = self.full_path(path)
        try:
            full.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}", path=path) from e
        self.logger.debug(f"Deleted {path}")

    def exists(self, path: str) -> bool:
        return self.full_path(path).is_file()

    def public_url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"
