"""
StorageBackend - Interface for durable byte storage keyed by path.
"""

from abc import ABC, abstractmethod


class StorageBackend(ABC):
    """
    Byte storage used by the engine.

    Implementations raise StorageError for any I/O failure and own their
    own timeout and retry policy.
    """

    @abstractmethod
    def put(self, path: str, data: bytes, content_type: str = 'application/octet-stream') -> None:
        """Store ``data`` at ``path``, replacing any existing object."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Return the bytes stored at ``path``."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove ``path``. Deleting a missing path is not an error."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check whether ``path`` is stored."""

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Public URL under which ``path`` is served."""
