"""
Media Library - Styled image variants for uploaded attachments

An upload is decoded once and every registered style is derived from it by
center-cropping to the style's aspect ratio and scaling to its size. Later
crop payloads re-derive individual styles from the stored original with
explicit rectangles. Animated GIF, WebP and APNG sources keep their frames.

Supports both S3 and local filesystem storage.
"""

__version__ = "1.0.0"

from .errors import (
    MediaLibraryError,
    UnsupportedFormatError,
    EncodeError,
    CropError,
    CropOutOfBoundsError,
    DegenerateCropError,
    InvalidPayloadError,
    StorageError,
)
from .geometry import Size, Rectangle, center_crop
from .style_registry import StyleRegistry
from .frames import Frame, FrameSequence
from .codecs import ImageCodec, RasterCodec, AnimatedCodec
from .variant_deriver import VariantDeriver
from .path_builder import PathBuilder
from .crop_payload import CropPayload
from .attachment_record import AttachmentRecord
from .storage_backend import StorageBackend
from .local_storage import LocalConfig, LocalStorage
from .s3_config import S3Config
from .s3_storage import S3Storage
from .engine import AttachmentEngine, ScanResult

__all__ = [
    "MediaLibraryError",
    "UnsupportedFormatError",
    "EncodeError",
    "CropError",
    "CropOutOfBoundsError",
    "DegenerateCropError",
    "InvalidPayloadError",
    "StorageError",
    "Size",
    "Rectangle",
    "center_crop",
    "StyleRegistry",
    "Frame",
    "FrameSequence",
    "ImageCodec",
    "RasterCodec",
    "AnimatedCodec",
    "VariantDeriver",
    "PathBuilder",
    "CropPayload",
    "AttachmentRecord",
    "StorageBackend",
    "LocalConfig",
    "LocalStorage",
    "S3Config",
    "S3Storage",
    "AttachmentEngine",
    "ScanResult",
]
