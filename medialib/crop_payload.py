"""
CropPayload - Wire format for crop-update requests.

Shape: ``{"crop": true, "cropOptions": {"small": {"X": 0, "Y": 0, "Width": 20, "Height": 10}}}``.
Keys are read case-insensitively so ``Crop`` / ``CropOptions`` also parse.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .errors import InvalidPayloadError
from .geometry import Rectangle


@dataclass
class CropPayload:
    """
    A crop-update request.

    Attributes:
        crop: Whether cropping should be applied
        crop_options: Style name -> explicit rectangle in original-image coordinates
    """
    crop: bool = False
    crop_options: Dict[str, Rectangle] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'crop': self.crop,
            'cropOptions': {
                style: rect.to_dict()
                for style, rect in sorted(self.crop_options.items())
            },
        }

    def to_json(self) -> str:
        """Canonical encoding: sorted keys, no whitespace."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))

    @classmethod
    def from_dict(cls, data: dict) -> 'CropPayload':
        if not isinstance(data, dict):
            raise InvalidPayloadError(f"Crop payload must be an object, got {type(data).__name__}")

        lowered = {str(k).lower(): v for k, v in data.items()}
        crop = lowered.get('crop', False)
        if not isinstance(crop, bool):
            raise InvalidPayloadError(f"'crop' must be a boolean, got {crop!r}")

        options = lowered.get('cropoptions', lowered.get('crop_options')) or {}
        if not isinstance(options, dict):
            raise InvalidPayloadError("'cropOptions' must map style names to rectangles")

        return cls(
            crop=crop,
            crop_options={
                str(style): Rectangle.from_dict(rect)
                for style, rect in options.items()
            },
        )

    @classmethod
    def parse(cls, value: Union['CropPayload', dict, str, bytes]) -> 'CropPayload':
        """Parse a payload object, mapping, or its JSON text."""
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls.from_dict(value)
        if isinstance(value, (bytes, bytearray)):
            value = bytes(value).decode('utf-8', errors='strict')
        if isinstance(value, str):
            try:
                data = json.loads(value)
            except json.JSONDecodeError as e:
                raise InvalidPayloadError(f"Crop payload is not valid JSON: {e}") from e
            return cls.from_dict(data)
        raise InvalidPayloadError(f"Cannot parse crop payload from {type(value).__name__}")


def sniff_payload(data: bytes) -> Optional[Dict[str, Any]]:
    """
    Return the decoded JSON object if ``data`` looks like a crop payload.

    Image containers never start with ``{``, so anything else is an upload.
    """
    stripped = data.lstrip()
    if not stripped.startswith(b'{'):
        return None
    try:
        decoded = json.loads(stripped.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(decoded, dict):
        return None
    keys = {str(k).lower() for k in decoded}
    if keys & {'crop', 'cropoptions', 'crop_options'}:
        return decoded
    return None
