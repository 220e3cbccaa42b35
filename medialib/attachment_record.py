"""
AttachmentRecord - File fields of one logical media asset.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Union

from .geometry import Rectangle


@dataclass
class AttachmentRecord:
    """
    File fields the engine reads and writes on behalf of the caller.

    The caller owns the record's lifecycle; the engine only mutates these
    fields inside a successful scan.

    Attributes:
        attachment_id: Directory prefix for every stored path
        original_path: Storage path of the original upload ('' until upload)
        filename: Original upload file name
        checksum: Upload token of the current original
        format_tag: Decoded source format of the original
        crop_applied: True once a crop payload has been applied
        crop_options: Style name -> explicit crop rectangle
        variants: Style name -> stored variant path
    """
    attachment_id: str
    original_path: str = ''
    filename: str = ''
    checksum: str = ''
    format_tag: str = ''
    crop_applied: bool = False
    crop_options: Dict[str, Rectangle] = field(default_factory=dict)
    variants: Dict[str, str] = field(default_factory=dict)

    @property
    def has_file(self) -> bool:
        return bool(self.original_path)

    @property
    def available_styles(self) -> list:
        """Styles with a derived variant."""
        return sorted(self.variants.keys())

    def list_paths(self) -> List[str]:
        """Original path followed by every variant path."""
        paths = []
        if self.original_path:
            paths.append(self.original_path)
        paths.extend(p for p in self.variants.values() if p)
        return paths

    def clear(self) -> None:
        """Forget every stored file."""
        self.original_path = ''
        self.filename = ''
        self.checksum = ''
        self.format_tag = ''
        self.crop_applied = False
        self.crop_options = {}
        self.variants = {}

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'attachmentId': self.attachment_id,
            'originalPath': self.original_path,
            'filename': self.filename,
            'checksum': self.checksum,
            'formatTag': self.format_tag,
            'crop': self.crop_applied,
            'cropOptions': {
                style: rect.to_dict()
                for style, rect in self.crop_options.items()
            },
            'variants': dict(self.variants),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AttachmentRecord':
        """Create from dictionary."""
        return cls(
            attachment_id=data['attachmentId'],
            original_path=data.get('originalPath', ''),
            filename=data.get('filename', ''),
            checksum=data.get('checksum', ''),
            format_tag=data.get('formatTag', ''),
            crop_applied=data.get('crop', False),
            crop_options={
                style: Rectangle.from_dict(rect)
                for style, rect in data.get('cropOptions', {}).items()
            },
            variants=dict(data.get('variants', {})),
        )

    def save(self, filepath: Union[str, Path]) -> None:
        """Save record to a JSON file."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> 'AttachmentRecord':
        """Load record from a JSON file."""
        with open(filepath, 'r') as f:
            return cls.from_dict(json.load(f))
