"""
AttachmentEngine - Derives, stores and addresses style variants of uploads.

A scan either takes a new upload (decode once, derive every registered style
with its default crop) or a crop payload (derive only the named styles from
the stored original with explicit rectangles). Styles are derived in
parallel; the record is only updated after every style was stored, and
anything written by a failed scan is deleted again.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional, Set, Union

from .attachment_record import AttachmentRecord
from .codecs import ImageCodec
from .crop_payload import CropPayload, sniff_payload
from .errors import MediaLibraryError, StorageError
from .frames import FrameSequence
from .geometry import Rectangle, Size
from .path_builder import PathBuilder
from .storage_backend import StorageBackend
from .style_registry import StyleRegistry
from .variant_deriver import VariantDeriver


ScanInput = Union[bytes, bytearray, BinaryIO, CropPayload, dict, str]


@dataclass
class StyleJob:
    """One style to derive within a scan."""
    style: str
    size: Size
    token: str
    crop: Optional[Rectangle] = None


@dataclass
class ScanResult:
    """
    Outcome of a successful scan.

    Attributes:
        written: Paths stored by this scan
        orphaned: Paths the record no longer references
        styles: Styles derived by this scan
        cropped: True if the scan applied a crop payload
        cleanup_errors: Failures while deleting orphaned paths
    """
    written: List[str] = field(default_factory=list)
    orphaned: List[str] = field(default_factory=list)
    styles: List[str] = field(default_factory=list)
    cropped: bool = False
    cleanup_errors: List[Exception] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.written)


class AttachmentEngine:
    """
    Orchestrates decoding, derivation and storage for attachment records.

    The engine keeps no per-record state and may be shared across threads
    for distinct records. Scans against the same record must be serialized
    by the caller.
    """

    def __init__(
        self,
        registry: StyleRegistry,
        storage: StorageBackend,
        path_builder: Optional[PathBuilder] = None,
        codec: Optional[ImageCodec] = None,
        deriver: Optional[VariantDeriver] = None,
        max_workers: int = 4,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize engine.

        Args:
            registry: Styles derived for every upload
            storage: Backend receiving originals and variants
            path_builder: Optional path builder
            codec: Optional image codec (default quality 85)
            deriver: Optional variant deriver
            max_workers: Threads used to derive styles in parallel
            logger: Optional logger instance
        """
        self.registry = registry
        self.storage = storage
        self.logger = logger or logging.getLogger(__name__)
        self.paths = path_builder or PathBuilder()
        self.codec = codec or ImageCodec(logger=self.logger)
        self.deriver = deriver or VariantDeriver(logger=self.logger)
        self.max_workers = max(1, max_workers)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def scan(
        self,
        record: AttachmentRecord,
        value: ScanInput,
        filename: Optional[str] = None
    ) -> ScanResult:
        """
        Apply an upload or a crop payload to a record.

        Args:
            record: Record whose file fields are updated on success
            value: Upload bytes / binary file, or a crop payload as
                CropPayload, dict or JSON text
            filename: Upload file name (defaults to the file object's name)

        Returns:
            ScanResult describing stored and orphaned paths

        Raises:
            MediaLibraryError: On any failure; the record is left unchanged
        """
        if isinstance(value, (CropPayload, dict, str)):
            return self.apply_crop(record, CropPayload.parse(value))

        if hasattr(value, 'read'):
            if filename is None:
                filename = os.path.basename(getattr(value, 'name', '') or '')
            value = value.read()
            if isinstance(value, str):
                return self.apply_crop(record, CropPayload.parse(value))

        if isinstance(value, (bytes, bytearray, memoryview)):
            data = bytes(value)
            payload = sniff_payload(data)
            if payload is not None:
                return self.apply_crop(record, CropPayload.from_dict(payload))
            return self.upload(record, data, filename or 'file')

        raise MediaLibraryError(f"Cannot scan value of type {type(value).__name__}")

    def upload(self, record: AttachmentRecord, data: bytes, filename: str) -> ScanResult:
        """Store a new original and derive every registered style."""
        self.logger.info(f"Scanning upload {filename} for {record.attachment_id} ({len(data)} bytes)")

        sequence, format_tag = self.codec.decode(data)
        token = self.paths.upload_token(data)
        original_path = self.paths.build_path(
            record.attachment_id, filename, None, token,
            self.codec.source_extension(format_tag)
        )
        jobs = [
            StyleJob(style=style, size=size, token=token)
            for style, size in self.registry.get_sizes().items()
        ]

        old_paths = set(record.list_paths())
        written: List[str] = []
        try:
            self._put(original_path, data, self.codec.source_content_type(format_tag))
            written.append(original_path)
            variants = self._derive_styles(record.attachment_id, filename, sequence, format_tag, jobs, written)
        except Exception as e:
            self._rollback(written, old_paths, e)
            raise

        record.original_path = original_path
        record.filename = filename
        record.checksum = token
        record.format_tag = format_tag
        record.crop_applied = False
        record.crop_options = {}
        record.variants = variants

        result = ScanResult(written=written, styles=[job.style for job in jobs])
        self._cleanup(record, old_paths, result)
        self.logger.info(
            f"Stored {filename} with {len(variants)} style(s) "
            f"({len(sequence)} frame(s), {format_tag})"
        )
        return result

    def apply_crop(self, record: AttachmentRecord, payload: CropPayload) -> ScanResult:
        """Re-derive the styles named in a crop payload from the stored original."""
        if not record.original_path:
            raise MediaLibraryError(f"Cannot crop {record.attachment_id}: no file uploaded")

        if not payload.crop:
            self.logger.info(f"Crop disabled in payload for {record.attachment_id}, nothing to do")
            return ScanResult()

        options: Dict[str, Rectangle] = {}
        for style, rect in payload.crop_options.items():
            if style in self.registry:
                options[style] = rect
            else:
                self.logger.warning(f"Ignoring crop for unknown style {style!r}")
        if not options:
            return ScanResult(cropped=True)

        data = self.storage.get(record.original_path)
        sequence, format_tag = self.codec.decode(data)
        checksum = record.checksum or self.paths.upload_token(data)

        jobs = []
        for style, size in self.registry.get_sizes().items():
            if style not in options:
                continue
            rect = self.deriver.resolve_crop(sequence, size, options[style])
            jobs.append(StyleJob(
                style=style,
                size=size,
                token=self.paths.crop_token(checksum, style, rect),
                crop=rect,
            ))

        canonical = CropPayload(crop=True, crop_options=options).to_json()
        original_path = self.paths.build_path(
            record.attachment_id, record.filename, None,
            self.paths.payload_token(checksum, canonical),
            self.codec.source_extension(format_tag)
        )

        self.logger.info(f"Cropping {', '.join(j.style for j in jobs)} for {record.attachment_id}")
        old_paths = set(record.list_paths())
        written: List[str] = []
        try:
            self._put(original_path, data, self.codec.source_content_type(format_tag))
            written.append(original_path)
            variants = self._derive_styles(
                record.attachment_id, record.filename, sequence, format_tag, jobs, written
            )
        except Exception as e:
            self._rollback(written, old_paths, e)
            raise

        record.original_path = original_path
        record.checksum = checksum
        record.crop_applied = True
        record.crop_options.update(options)
        record.variants.update(variants)

        result = ScanResult(written=written, styles=[job.style for job in jobs], cropped=True)
        self._cleanup(record, old_paths, result)
        return result

    def url(self, record: AttachmentRecord, *styles: str) -> str:
        """
        Public URL of the original, or of the first matching style.

        Returns '' when no file is present or no style matches.
        """
        path = self.paths.url_for(record, *styles, registry=self.registry)
        if not path:
            return ''
        return self.storage.public_url(path)

    def list_paths(self, record: AttachmentRecord) -> List[str]:
        """Every stored path referenced by a record."""
        return record.list_paths()

    def delete_all(self, record: AttachmentRecord) -> List[StorageError]:
        """
        Delete every stored path of a record and clear its file fields.

        Returns:
            Deletion failures; the remaining paths are still removed
        """
        failures = []
        for path in record.list_paths():
            try:
                self.storage.delete(path)
            except StorageError as e:
                self.logger.error(f"Failed to delete {path}: {e}")
                failures.append(e)
        record.clear()
        return failures

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _derive_styles(
        self,
        attachment_id: str,
        filename: str,
        sequence: FrameSequence,
        format_tag: str,
        jobs: List[StyleJob],
        written: List[str]
    ) -> Dict[str, str]:
        """Derive, encode and store styles in parallel; raise the first failure in style order."""
        if not jobs:
            return {}

        variants: Dict[str, str] = {}
        failures = {}
        workers = min(self.max_workers, len(jobs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='medialib') as executor:
            futures = {
                executor.submit(self._derive_style, attachment_id, filename, sequence, format_tag, job): index
                for index, job in enumerate(jobs)
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    path = future.result()
                except Exception as e:
                    failures[index] = e
                    continue
                variants[jobs[index].style] = path
                written.append(path)

        if failures:
            first = min(failures)
            self.logger.error(f"Style {jobs[first].style!r} failed: {failures[first]}")
            raise failures[first]

        return {job.style: variants[job.style] for job in jobs}

    def _derive_style(
        self,
        attachment_id: str,
        filename: str,
        sequence: FrameSequence,
        format_tag: str,
        job: StyleJob
    ) -> str:
        derived = self.deriver.derive(sequence, job.size, job.crop)
        data = self.codec.encode(derived, format_tag)
        path = self.paths.build_path(
            attachment_id, filename, job.style, job.token,
            self.codec.output_extension(format_tag)
        )
        self._put(path, data, self.codec.content_type(format_tag))
        self.logger.debug(f"Stored {job.style} at {path} ({len(data)} bytes)")
        return path

    def _put(self, path: str, data: bytes, content_type: str) -> None:
        try:
            self.storage.put(path, data, content_type)
        except StorageError:
            raise
        except OSError as e:
            raise StorageError(f"Failed to store {path}: {e}", path=path) from e

    def _rollback(self, written: List[str], keep: Set[str], error: Exception) -> None:
        """Delete paths written by a failed scan, never the record's current paths."""
        for path in reversed(written):
            if path in keep:
                continue
            try:
                self.storage.delete(path)
                self.logger.debug(f"Rolled back {path}")
            except Exception as e:
                self.logger.error(f"Rollback failed to delete {path}: {e}")
                if isinstance(error, MediaLibraryError):
                    error.rollback_errors.append(e)

    def _cleanup(self, record: AttachmentRecord, old_paths: Set[str], result: ScanResult) -> None:
        """Delete paths the record stopped referencing."""
        current = set(record.list_paths())
        for path in sorted(old_paths - current):
            result.orphaned.append(path)
            try:
                self.storage.delete(path)
            except Exception as e:
                self.logger.warning(f"Failed to delete orphaned {path}: {e}")
                result.cleanup_errors.append(e)
