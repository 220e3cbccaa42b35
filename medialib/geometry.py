"""
Geometry - Target sizes, crop rectangles and default crop computation.
"""

from dataclasses import dataclass

from .errors import CropOutOfBoundsError, DegenerateCropError, InvalidPayloadError


@dataclass(frozen=True)
class Size:
    """
    Target output dimensions for a style.

    Attributes:
        width: Output width in pixels (> 0)
        height: Output height in pixels (> 0)
    """
    width: int
    height: int

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Size must be positive, got {self.width}x{self.height}")

    @property
    def aspect(self) -> float:
        return self.width / self.height

    def to_list(self) -> list:
        return [self.width, self.height]


@dataclass(frozen=True)
class Rectangle:
    """
    Crop region in source-image pixel coordinates.

    Attributes:
        x: Left edge
        y: Top edge
        width: Region width
        height: Region height
    """
    x: int
    y: int
    width: int
    height: int

    @property
    def box(self) -> tuple:
        """Pillow crop box (left, upper, right, lower)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def validate(self, source_width: int, source_height: int) -> None:
        """
        Check this rectangle against a source canvas.

        Raises:
            CropOutOfBoundsError: If the rectangle leaves the canvas
            DegenerateCropError: If width or height is not positive
        """
        if (
            self.x < 0
            or self.y < 0
            or self.x + self.width > source_width
            or self.y + self.height > source_height
        ):
            raise CropOutOfBoundsError(
                f"Crop {self.to_dict()} exceeds source canvas {source_width}x{source_height}"
            )
        if self.width <= 0 or self.height <= 0:
            raise DegenerateCropError(f"Crop {self.to_dict()} has no area")

    def to_dict(self) -> dict:
        return {'X': self.x, 'Y': self.y, 'Width': self.width, 'Height': self.height}

    @classmethod
    def from_dict(cls, data: dict) -> 'Rectangle':
        """
        Create from a wire mapping.

        Keys are matched case-insensitively, so both ``{"X": 1}`` and
        ``{"x": 1}`` are accepted.
        """
        if not isinstance(data, dict):
            raise InvalidPayloadError(f"Crop rectangle must be an object, got {type(data).__name__}")

        lowered = {str(k).lower(): v for k, v in data.items()}
        values = {}
        for name in ('x', 'y', 'width', 'height'):
            if name not in lowered:
                raise InvalidPayloadError(f"Crop rectangle is missing {name!r}")
            value = lowered[name]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidPayloadError(f"Crop field {name!r} must be an integer, got {value!r}")
            if isinstance(value, float) and not value.is_integer():
                raise InvalidPayloadError(f"Crop field {name!r} must be an integer, got {value!r}")
            values[name] = int(value)

        return cls(**values)


def center_crop(source_width: int, source_height: int, target: Size) -> Rectangle:
    """
    Largest rectangle centered in the source whose aspect matches the target.

    A source wider than the target keeps its full height and is trimmed on
    the left and right; otherwise the full width is kept and the top and
    bottom are trimmed.

    Raises:
        DegenerateCropError: If the rectangle rounds to zero width or height
    """
    if source_width * target.height > source_height * target.width:
        height = source_height
        width = min(source_width, round(source_height * target.width / target.height))
    else:
        width = source_width
        height = min(source_height, round(source_width * target.height / target.width))

    if width <= 0 or height <= 0:
        raise DegenerateCropError(
            f"Default crop for {target.width}x{target.height} on "
            f"{source_width}x{source_height} source has no area"
        )

    return Rectangle(
        x=(source_width - width) // 2,
        y=(source_height - height) // 2,
        width=width,
        height=height,
    )
