"""
Codecs - Decode uploaded bytes into frames and re-encode derived frames.

Two codecs share the same contract: RasterCodec for single-frame images and
AnimatedCodec for multi-frame GIF, WebP and APNG containers. ImageCodec picks
one of them from the decoded format tag and frame count.
"""

import io
import logging
import struct
from typing import Dict, Optional, Tuple

from PIL import Image, ImageSequence, UnidentifiedImageError

from .animation import write_apng, write_gif, write_webp
from .errors import EncodeError, UnsupportedFormatError
from .frames import Frame, FrameSequence


# Pillow format name -> format tag
FORMAT_TAGS = {
    'JPEG': 'JPEG',
    'MPO': 'JPEG',
    'PNG': 'PNG',
    'GIF': 'GIF',
    'WEBP': 'WEBP',
    'BMP': 'BMP',
    'TIFF': 'TIFF',
}

# Format tag -> (output format, extension, content type)
OUTPUT_FORMATS = {
    'JPEG': ('JPEG', 'jpg', 'image/jpeg'),
    'PNG': ('PNG', 'png', 'image/png'),
    'GIF': ('GIF', 'gif', 'image/gif'),
    'WEBP': ('WEBP', 'webp', 'image/webp'),
    'BMP': ('JPEG', 'jpg', 'image/jpeg'),
    'TIFF': ('JPEG', 'jpg', 'image/jpeg'),
}

SOURCE_EXTENSIONS = {
    'JPEG': 'jpg',
    'PNG': 'png',
    'GIF': 'gif',
    'WEBP': 'webp',
    'BMP': 'bmp',
    'TIFF': 'tiff',
}

SOURCE_CONTENT_TYPES: Dict[str, str] = {
    'JPEG': 'image/jpeg',
    'PNG': 'image/png',
    'GIF': 'image/gif',
    'WEBP': 'image/webp',
    'BMP': 'image/bmp',
    'TIFF': 'image/tiff',
}

ANIMATED_FORMATS = {'GIF', 'WEBP', 'PNG'}


def _output_format(format_tag: str) -> Tuple[str, str, str]:
    try:
        return OUTPUT_FORMATS[format_tag]
    except KeyError:
        raise UnsupportedFormatError(f"No encoder for format {format_tag!r}") from None


class RasterCodec:
    """
    Single-frame still images.
    """

    def __init__(self, quality: int = 85, logger: Optional[logging.Logger] = None):
        """
        Initialize raster codec.

        Args:
            quality: JPEG / WebP quality for output (default: 85)
            logger: Optional logger instance
        """
        self.quality = quality
        self.logger = logger or logging.getLogger(__name__)

    def decode(self, img: Image.Image, format_tag: str) -> FrameSequence:
        img.seek(0)
        image = _normalize_mode(img)
        info = {}
        if img.info.get('icc_profile'):
            info['icc_profile'] = img.info['icc_profile']
        return FrameSequence(
            frames=[Frame(image=image)],
            width=image.width,
            height=image.height,
            format_tag=format_tag,
            info=info,
        )

    def encode(self, sequence: FrameSequence, format_tag: str) -> bytes:
        output_format, _, _ = _output_format(format_tag)
        image = sequence.frames[0].image
        params = {}
        if sequence.info.get('icc_profile') and output_format in ('JPEG', 'PNG', 'WEBP'):
            params['icc_profile'] = sequence.info['icc_profile']

        output = io.BytesIO()
        if output_format == 'JPEG':
            _flatten(image).save(output, format='JPEG', quality=self.quality, optimize=True, **params)
        elif output_format == 'PNG':
            image.save(output, format='PNG', optimize=True, **params)
        elif output_format == 'WEBP':
            image.save(output, format='WEBP', quality=self.quality, **params)
        else:
            image.save(output, format=output_format)
        return output.getvalue()


class AnimatedCodec:
    """
    Multi-frame containers (GIF, animated WebP, APNG).

    Every frame is decoded onto the full canvas, so derived frames all share
    the canvas geometry. Encoding writes exactly one frame per input frame
    with its own delay, even when consecutive frames are identical.
    """

    def __init__(self, quality: int = 85, logger: Optional[logging.Logger] = None):
        self.quality = quality
        self.logger = logger or logging.getLogger(__name__)

    def decode(self, img: Image.Image, format_tag: str) -> FrameSequence:
        frames = []
        for frame in ImageSequence.Iterator(img):
            frames.append(Frame(
                image=frame.convert('RGBA'),
                duration=frame.info.get('duration'),
            ))

        self.logger.debug(f"Decoded {len(frames)} {format_tag} frames at {img.width}x{img.height}")
        return FrameSequence(
            frames=frames,
            width=img.width,
            height=img.height,
            format_tag=format_tag,
            loop=img.info.get('loop'),
        )

    def encode(self, sequence: FrameSequence, format_tag: str) -> bytes:
        output_format, _, _ = _output_format(format_tag)
        images = [f.image for f in sequence.frames]
        durations = [int(f.duration or 0) for f in sequence.frames]
        size = (sequence.width, sequence.height)

        if output_format == 'GIF':
            data = write_gif(images, durations, *size, loop=sequence.loop)
        elif output_format == 'WEBP':
            data = write_webp(images, durations, *size, loop=sequence.loop, quality=self.quality)
        elif output_format == 'PNG':
            data = write_apng(images, durations, *size, loop=sequence.loop)
        else:
            raise EncodeError(f"{output_format} cannot hold {len(images)} frames")

        self.logger.debug(f"Encoded {len(images)} {output_format} frames at {size[0]}x{size[1]}")
        return data


class ImageCodec:
    """
    Decodes uploads and re-encodes derived frames, dispatching on format tag.
    """

    def __init__(self, quality: int = 85, logger: Optional[logging.Logger] = None):
        """
        Initialize codec dispatcher.

        Args:
            quality: Lossy output quality shared by both codecs
            logger: Optional logger instance
        """
        self.quality = quality
        self.logger = logger or logging.getLogger(__name__)
        self.raster = RasterCodec(quality, logger=self.logger)
        self.animated = AnimatedCodec(quality, logger=self.logger)

    def decode(self, data: bytes) -> Tuple[FrameSequence, str]:
        """
        Decode image bytes.

        Args:
            data: Raw container bytes

        Returns:
            Tuple of (frame_sequence, format_tag)

        Raises:
            UnsupportedFormatError: If the byte signature is not recognized,
                or the image exceeds Pillow's pixel limit
        """
        try:
            img = Image.open(io.BytesIO(data))
        except Image.DecompressionBombError as e:
            self.logger.warning(f"Image exceeds size limit: {e}")
            raise UnsupportedFormatError(f"Image exceeds maximum size limit: {e}") from e
        except (UnidentifiedImageError, OSError) as e:
            raise UnsupportedFormatError(f"Unrecognized image data: {e}") from e

        format_tag = FORMAT_TAGS.get(img.format or '')
        if format_tag is None:
            raise UnsupportedFormatError(f"Unsupported image format: {img.format}")

        try:
            if self._is_animated(img, format_tag):
                sequence = self.animated.decode(img, format_tag)
            else:
                sequence = self.raster.decode(img, format_tag)
        except Image.DecompressionBombError as e:
            self.logger.warning(f"Image exceeds size limit: {e}")
            raise UnsupportedFormatError(f"Image exceeds maximum size limit: {e}") from e
        except (OSError, ValueError, SyntaxError) as e:
            raise UnsupportedFormatError(f"Corrupt {format_tag} data: {e}") from e

        return sequence, format_tag

    def encode(self, sequence: FrameSequence, format_tag: str) -> bytes:
        """
        Encode frames into the output container for a source format.

        Raises:
            EncodeError: If Pillow fails to write the container
        """
        if format_tag in ANIMATED_FORMATS and sequence.is_animated:
            codec = self.animated
        else:
            codec = self.raster
        try:
            return codec.encode(sequence, format_tag)
        except EncodeError:
            raise
        except UnsupportedFormatError as e:
            raise EncodeError(str(e)) from e
        except (OSError, ValueError, KeyError, TypeError, IndexError, struct.error) as e:
            self.logger.error(f"Error encoding {format_tag}: {e}")
            raise EncodeError(f"Failed to encode {format_tag}: {e}") from e

    @staticmethod
    def _is_animated(img: Image.Image, format_tag: str) -> bool:
        return (
            format_tag in ANIMATED_FORMATS
            and getattr(img, 'is_animated', False)
            and getattr(img, 'n_frames', 1) > 1
        )

    @staticmethod
    def output_extension(format_tag: str) -> str:
        """File extension for derived variants of a source format."""
        return _output_format(format_tag)[1]

    @staticmethod
    def source_extension(format_tag: str) -> str:
        """File extension for the stored original."""
        return SOURCE_EXTENSIONS.get(format_tag, 'bin')

    @staticmethod
    def content_type(format_tag: str) -> str:
        return _output_format(format_tag)[2]

    @staticmethod
    def source_content_type(format_tag: str) -> str:
        return SOURCE_CONTENT_TYPES.get(format_tag, 'application/octet-stream')


def _normalize_mode(img: Image.Image) -> Image.Image:
    """Convert to RGB or RGBA so resampling is well defined."""
    if img.mode in ('RGBA', 'LA', 'PA') or (img.mode == 'P' and 'transparency' in img.info):
        return img.convert('RGBA')
    elif img.mode != 'RGB':
        return img.convert('RGB')
    return img.copy()


def _flatten(img: Image.Image) -> Image.Image:
    """Composite transparent pixels onto white for formats without alpha."""
    if img.mode == 'RGBA':
        background = Image.new('RGB', img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    elif img.mode != 'RGB':
        return img.convert('RGB')
    return img
