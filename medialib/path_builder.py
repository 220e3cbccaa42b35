"""
PathBuilder - Deterministic storage paths for originals and style variants.

Paths look like ``<attachment_id>/<basename>.<token>.<style>.<ext>``; the
style is always the third dot-delimited component of the file name.
"""

import hashlib
import os
import re
from typing import TYPE_CHECKING, Optional

from .geometry import Rectangle

if TYPE_CHECKING:
    from .attachment_record import AttachmentRecord
    from .style_registry import StyleRegistry


class PathBuilder:
    """
    Builds storage paths and crop tokens.
    """

    TOKEN_LENGTH = 10
    CROP_PREFIX = 'c'
    UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_-]+')

    def build_path(
        self,
        attachment_id: str,
        original_filename: str,
        style: Optional[str],
        token: str,
        ext: str
    ) -> str:
        """
        Build the path for an original (style=None) or a style variant.

        Args:
            attachment_id: Directory prefix identifying the attachment
            original_filename: Upload file name; only its stem is used
            style: Style name, or None for the original
            token: Upload or crop token
            ext: Extension without the leading dot
        """
        basename = self.basename(original_filename)
        parts = [basename, token]
        if style:
            parts.append(style)
        parts.append(ext.lstrip('.').lower())
        return f"{attachment_id.strip('/')}/{'.'.join(parts)}"

    def basename(self, filename: str) -> str:
        """File stem made safe for the dot-delimited path layout."""
        stem = os.path.splitext(os.path.basename(filename.replace('\\', '/')))[0]
        stem = self.UNSAFE_CHARS.sub('_', stem).strip('_')
        return stem or 'file'

    def upload_token(self, data: bytes) -> str:
        """Token for freshly uploaded bytes."""
        return self._digest(data)

    def crop_token(self, checksum: str, style: str, rect: Rectangle) -> str:
        """Token for one style's crop state; equal inputs give equal tokens."""
        state = f"{checksum}:{style}:{rect.x},{rect.y},{rect.width},{rect.height}"
        return self.CROP_PREFIX + self._digest(state.encode('utf-8'))[:self.TOKEN_LENGTH - 1]

    def payload_token(self, checksum: str, canonical_payload: str) -> str:
        """Token for the original re-stored under a crop state."""
        state = f"{checksum}:{canonical_payload}"
        return self.CROP_PREFIX + self._digest(state.encode('utf-8'))[:self.TOKEN_LENGTH - 1]

    @staticmethod
    def url_for(
        record: 'AttachmentRecord',
        *styles: str,
        registry: Optional['StyleRegistry'] = None
    ) -> str:
        """
        Stored path for the original or the first matching style.

        With no styles, returns the original path. Otherwise returns the
        variant path of the first style that is registered (when a registry
        is given) and has been derived. Returns '' when nothing matches or
        no upload has happened.
        """
        if not record.original_path:
            return ''
        if not styles:
            return record.original_path

        for style in styles:
            if registry is not None and style not in registry:
                continue
            path = record.variants.get(style)
            if path:
                return path
        return ''

    @staticmethod
    def style_from_path(path: str) -> Optional[str]:
        """Recover the style segment of a variant path, or None for originals."""
        parts = os.path.basename(path).split('.')
        if len(parts) >= 4:
            return parts[2]
        return None

    def _digest(self, data: bytes) -> str:
        return hashlib.sha1(data).hexdigest()[:self.TOKEN_LENGTH]
