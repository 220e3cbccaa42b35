"""
Exceptions raised by the media library.

Every failure surfaced by a ``Scan`` derives from MediaLibraryError so callers
can catch the whole family at once.
"""

from typing import List, Optional


class MediaLibraryError(Exception):
    """
    Base exception for all media library errors.

    Attributes:
        rollback_errors: Secondary errors raised while undoing a failed scan.
            They never replace the primary error.
    """

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.rollback_errors: List[Exception] = []


class UnsupportedFormatError(MediaLibraryError):
    """Raised when uploaded bytes are not a recognized image container."""

    pass


class EncodeError(MediaLibraryError):
    """Raised when a derived frame sequence cannot be re-encoded."""

    pass


class CropError(MediaLibraryError):
    """Base class for invalid crop rectangles."""

    pass


class CropOutOfBoundsError(CropError):
    """Raised when a crop rectangle does not fit inside the source canvas."""

    pass


class DegenerateCropError(CropError):
    """Raised when a crop resolves to zero width or height."""

    pass


class InvalidPayloadError(MediaLibraryError):
    """Raised when a crop-options payload cannot be parsed."""

    pass


class StorageError(MediaLibraryError):
    """
    Raised when a storage backend operation fails.

    Attributes:
        path: Storage path involved in the failed operation
        not_found: True when the failure means the path does not exist
    """

    def __init__(self, message: str, path: Optional[str] = None, not_found: bool = False):
        super().__init__(message)
        self.path = path
        self.not_found = not_found
