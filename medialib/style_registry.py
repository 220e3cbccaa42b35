"""
StyleRegistry - Immutable mapping of style names to target sizes.
"""

import json
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Union

from .geometry import Size


class StyleRegistry:
    """
    Read-only style configuration for one attachment kind.

    Iteration order follows insertion order of the mapping the registry was
    built from, so fan-out and error reporting are deterministic.
    """

    def __init__(self, sizes: Mapping[str, Size]):
        """
        Initialize registry.

        Args:
            sizes: Mapping of style name to target Size
        """
        checked: Dict[str, Size] = {}
        for name, size in sizes.items():
            if not name or '.' in name or '/' in name:
                raise ValueError(f"Invalid style name: {name!r}")
            if not isinstance(size, Size):
                raise TypeError(f"Style {name!r} must map to a Size, got {type(size).__name__}")
            checked[name] = size
        self._sizes = MappingProxyType(checked)

    def get_sizes(self) -> Mapping[str, Size]:
        """Return the style name -> Size mapping."""
        return self._sizes

    def get(self, style: str) -> Optional[Size]:
        return self._sizes.get(style)

    def __contains__(self, style: object) -> bool:
        return style in self._sizes

    def __iter__(self) -> Iterator[str]:
        return iter(self._sizes)

    def __len__(self) -> int:
        return len(self._sizes)

    def __repr__(self) -> str:
        styles = ', '.join(f"{k}={v.width}x{v.height}" for k, v in self._sizes.items())
        return f"StyleRegistry({styles})"

    @classmethod
    def from_dict(cls, data: dict) -> 'StyleRegistry':
        """
        Create from a plain mapping.

        Accepts either ``{"small": [20, 10]}`` or
        ``{"small": {"width": 20, "height": 10}}``; a top-level ``styles``
        key is unwrapped.
        """
        if 'styles' in data and isinstance(data['styles'], dict):
            data = data['styles']

        sizes = {}
        for name, value in data.items():
            if isinstance(value, Size):
                sizes[name] = value
            elif isinstance(value, dict):
                sizes[name] = Size(int(value['width']), int(value['height']))
            else:
                width, height = value
                sizes[name] = Size(int(width), int(height))
        return cls(sizes)

    def to_dict(self) -> dict:
        return {'styles': {name: size.to_list() for name, size in self._sizes.items()}}

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> 'StyleRegistry':
        """Load a registry from a JSON file."""
        with open(filepath, 'r') as f:
            return cls.from_dict(json.load(f))
