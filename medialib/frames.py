"""
Decoded in-memory frames plus shared animation metadata.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from PIL import Image


@dataclass
class Frame:
    """
    One decoded picture.

    Attributes:
        image: Pixel buffer, always canvas-sized
        duration: Display time in milliseconds (animated containers only)
    """
    image: Image.Image
    duration: Optional[int] = None

    @property
    def size(self) -> tuple:
        return self.image.size


@dataclass
class FrameSequence:
    """
    Ordered frames decoded from one container.

    Attributes:
        frames: Frames in display order (exactly one for rasters)
        width: Canvas width
        height: Canvas height
        format_tag: Source container format (e.g. 'PNG', 'GIF')
        loop: Loop count from the source, None when the source had none
    """
    frames: List[Frame]
    width: int
    height: int
    format_tag: str
    loop: Optional[int] = None
    info: dict = field(default_factory=dict)

    @property
    def is_animated(self) -> bool:
        return len(self.frames) > 1

    @property
    def durations(self) -> List[Optional[int]]:
        return [f.duration for f in self.frames]

    def __len__(self) -> int:
        return len(self.frames)

    def with_frames(self, frames: List[Frame], width: int, height: int) -> 'FrameSequence':
        """Copy of this sequence with new pixels and unchanged metadata."""
        return FrameSequence(
            frames=frames,
            width=width,
            height=height,
            format_tag=self.format_tag,
            loop=self.loop,
            info=dict(self.info),
        )
