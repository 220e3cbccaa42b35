"""
VariantDeriver - Crops and scales decoded frames to a style's size.
"""

import logging
from typing import Optional

from PIL import Image

from .frames import Frame, FrameSequence
from .geometry import Rectangle, Size, center_crop


class VariantDeriver:
    """
    Produces a new frame sequence at a target size.

    The same crop box and resampling filter are applied to every frame, so
    animated output stays consistent frame to frame and keeps the source
    frame count, durations and loop count.
    """

    RESAMPLE = Image.Resampling.LANCZOS

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def resolve_crop(
        self,
        source: FrameSequence,
        target: Size,
        crop: Optional[Rectangle] = None
    ) -> Rectangle:
        """
        Pick the crop rectangle for a derivation.

        Args:
            source: Decoded source frames
            target: Style output size
            crop: Explicit rectangle in source coordinates, or None for the
                centered aspect-matched default

        Raises:
            CropOutOfBoundsError: If an explicit crop leaves the canvas
            DegenerateCropError: If the crop has no area
        """
        if crop is None:
            return center_crop(source.width, source.height, target)

        crop.validate(source.width, source.height)
        return crop

    def derive(
        self,
        source: FrameSequence,
        target: Size,
        crop: Optional[Rectangle] = None
    ) -> FrameSequence:
        """
        Crop every frame and scale it to exactly ``target``.

        Args:
            source: Decoded source frames
            target: Style output size
            crop: Optional explicit crop rectangle

        Returns:
            FrameSequence at target.width x target.height
        """
        rect = self.resolve_crop(source, target, crop)
        self.logger.debug(
            f"Deriving {len(source)} frame(s) {rect.width}x{rect.height}+{rect.x}+{rect.y} "
            f"-> {target.width}x{target.height}"
        )

        frames = []
        for frame in source.frames:
            image = frame.image.crop(rect.box)
            if image.size != (target.width, target.height):
                image = image.resize((target.width, target.height), self.RESAMPLE)
            frames.append(Frame(image=image, duration=frame.duration))

        return source.with_frames(frames, target.width, target.height)
