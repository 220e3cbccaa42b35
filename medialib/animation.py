"""
Animation writers - Assemble GIF, APNG and animated WebP containers.

Pillow's multi-frame writers drop a frame that is identical to the one before
it and fold its delay into the previous frame. Derived variants must keep one
frame per source frame, so each frame is encoded on its own with Pillow and
the encoded pieces are muxed into the container here.

Every frame covers the full canvas and replaces the previous one.
"""

import io
import struct
import zlib
from typing import List, Optional, Tuple

from PIL import Image

from .errors import EncodeError


PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'

# GIF graphic control: restore to background before the next frame
GIF_DISPOSAL_BACKGROUND = 2

# WebP ANMF flags: no alpha blending, no disposal
WEBP_FRAME_NO_BLEND = 0x02
WEBP_FLAG_ANIMATION = 0x02
WEBP_FLAG_ALPHA = 0x10


def _save(image: Image.Image, fmt: str, **params) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **params)
    return buffer.getvalue()


# ----------------------------------------------------------------------
# GIF
# ----------------------------------------------------------------------

def _skip_sub_blocks(data: bytes, pos: int) -> int:
    while True:
        size = data[pos]
        pos += 1
        if size == 0:
            return pos
        pos += size


def _gif_frame(image: Image.Image) -> Tuple[bytes, int, int, Optional[int], bytes]:
    """
    Encode one frame as a GIF and split out its pieces.

    Returns:
        Tuple of (color table, table size bits, interlace flag,
        transparent index, LZW image data)
    """
    data = _save(image, 'GIF')
    if data[:3] != b'GIF':
        raise EncodeError("Pillow produced no GIF header")

    packed = data[10]
    pos = 13
    table = b''
    size_bits = 0
    if packed & 0x80:
        size_bits = packed & 0x07
        table_length = 3 * (2 << size_bits)
        table = data[pos:pos + table_length]
        pos += table_length

    transparency = None
    while pos < len(data):
        block = data[pos]
        if block == 0x21:
            label = data[pos + 1]
            pos += 2
            if label == 0xF9 and data[pos + 1] & 0x01:
                transparency = data[pos + 4]
            pos = _skip_sub_blocks(data, pos)
        elif block == 0x2C:
            flags = data[pos + 9]
            pos += 10
            if flags & 0x80:
                size_bits = flags & 0x07
                table_length = 3 * (2 << size_bits)
                table = data[pos:pos + table_length]
                pos += table_length
            start = pos
            pos = _skip_sub_blocks(data, pos + 1)
            if not table:
                raise EncodeError("GIF frame has no color table")
            return table, size_bits, flags & 0x40, transparency, data[start:pos]
        else:
            break

    raise EncodeError("GIF frame has no image data")


def write_gif(
    images: List[Image.Image],
    durations: List[int],
    width: int,
    height: int,
    loop: Optional[int] = None
) -> bytes:
    """
    Write an animated GIF with one image block per frame.

    Each frame carries its own color table, so frames are quantized
    independently.

    Args:
        images: Canvas-sized frames in display order
        durations: Per-frame delays in milliseconds
        width: Canvas width
        height: Canvas height
        loop: NETSCAPE loop count, omitted when None
    """
    out = [b'GIF89a', struct.pack('<HHBBB', width, height, 0, 0, 0)]
    if loop is not None:
        out.append(b'!\xff\x0bNETSCAPE2.0\x03\x01' + struct.pack('<H', loop) + b'\x00')

    for image, duration in zip(images, durations):
        table, size_bits, interlace, transparency, image_data = _gif_frame(image)
        control = GIF_DISPOSAL_BACKGROUND << 2
        if transparency is not None:
            control |= 0x01
        delay = min(int(round(duration / 10)), 0xFFFF)
        out.append(struct.pack('<BBBBHBB', 0x21, 0xF9, 4, control, delay, transparency or 0, 0))
        out.append(struct.pack('<BHHHHB', 0x2C, 0, 0, image.width, image.height, 0x80 | interlace | size_bits))
        out.append(table)
        out.append(image_data)

    out.append(b';')
    return b''.join(out)


# ----------------------------------------------------------------------
# APNG
# ----------------------------------------------------------------------

def _png_chunk(chunk_type: bytes, data: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack('>I', len(data)) + chunk_type + data + struct.pack('>I', crc)


def _png_frame(image: Image.Image) -> Tuple[bytes, List[bytes]]:
    """Encode one frame as a PNG and return its IHDR and IDAT payloads."""
    data = _save(image.convert('RGBA'), 'PNG')
    if not data.startswith(PNG_SIGNATURE):
        raise EncodeError("Pillow produced no PNG signature")

    header = None
    idats = []
    pos = len(PNG_SIGNATURE)
    while pos + 8 <= len(data):
        length, chunk_type = struct.unpack_from('>I4s', data, pos)
        payload = data[pos + 8:pos + 8 + length]
        pos += 12 + length
        if chunk_type == b'IHDR':
            header = payload
        elif chunk_type == b'IDAT':
            idats.append(payload)
        elif chunk_type == b'IEND':
            break

    if header is None or not idats:
        raise EncodeError("PNG frame has no image data")
    return header, idats


def write_apng(
    images: List[Image.Image],
    durations: List[int],
    width: int,
    height: int,
    loop: Optional[int] = None
) -> bytes:
    """
    Write an animated PNG with one fcTL per frame.

    All frames are written as 8-bit RGBA. A loop of None plays forever.
    """
    frames = [_png_frame(image) for image in images]
    header = frames[0][0]

    out = [
        PNG_SIGNATURE,
        _png_chunk(b'IHDR', header),
        _png_chunk(b'acTL', struct.pack('>II', len(frames), loop or 0)),
    ]
    sequence = 0
    for index, ((frame_header, idats), duration) in enumerate(zip(frames, durations)):
        if frame_header != header:
            raise EncodeError(f"APNG frame {index} does not match the first frame's header")
        out.append(_png_chunk(b'fcTL', struct.pack(
            '>IIIIIHHBB', sequence, width, height, 0, 0,
            min(int(duration), 0xFFFF), 1000, 0, 0
        )))
        sequence += 1
        for idat in idats:
            if index == 0:
                out.append(_png_chunk(b'IDAT', idat))
            else:
                out.append(_png_chunk(b'fdAT', struct.pack('>I', sequence) + idat))
                sequence += 1

    out.append(_png_chunk(b'IEND', b''))
    return b''.join(out)


# ----------------------------------------------------------------------
# WebP
# ----------------------------------------------------------------------

def _riff_chunk(chunk_type: bytes, data: bytes) -> bytes:
    padding = b'\x00' if len(data) % 2 else b''
    return chunk_type + struct.pack('<I', len(data)) + data + padding


def _uint24(value: int) -> bytes:
    return struct.pack('<I', value)[:3]


def _webp_frame(image: Image.Image, quality: int) -> Tuple[bytes, bool]:
    """
    Encode one frame as a still WebP.

    Returns:
        Tuple of (ALPH/VP8/VP8L chunks, has_alpha)
    """
    data = _save(image, 'WEBP', quality=quality)
    if data[:4] != b'RIFF' or data[8:12] != b'WEBP':
        raise EncodeError("Pillow produced no WebP header")

    chunks = []
    has_alpha = False
    pos = 12
    end = len(data)
    while pos + 8 <= end:
        chunk_type = data[pos:pos + 4]
        length = struct.unpack_from('<I', data, pos + 4)[0]
        chunk_end = pos + 8 + length + (length % 2)
        if chunk_type == b'ANMF':
            # Some encoders wrap a single frame; descend into its payload.
            pos += 8 + 16
            end = pos + length - 16
            continue
        if chunk_type in (b'ALPH', b'VP8 ', b'VP8L'):
            chunks.append(data[pos:chunk_end])
            has_alpha = has_alpha or chunk_type in (b'ALPH', b'VP8L')
        pos = chunk_end

    if not chunks:
        raise EncodeError("WebP frame has no image data")
    return b''.join(chunks), has_alpha


def write_webp(
    images: List[Image.Image],
    durations: List[int],
    width: int,
    height: int,
    loop: Optional[int] = None,
    quality: int = 85
) -> bytes:
    """
    Write an animated WebP with one ANMF chunk per frame.

    A loop of None loops forever, matching Pillow's default.
    """
    frames = []
    has_alpha = False
    for image, duration in zip(images, durations):
        frame_data, alpha = _webp_frame(image, quality)
        has_alpha = has_alpha or alpha
        header = (
            _uint24(0) + _uint24(0)
            + _uint24(image.width - 1) + _uint24(image.height - 1)
            + _uint24(min(int(duration), 0xFFFFFF))
            + bytes([WEBP_FRAME_NO_BLEND])
        )
        frames.append(_riff_chunk(b'ANMF', header + frame_data))

    flags = WEBP_FLAG_ANIMATION | (WEBP_FLAG_ALPHA if has_alpha else 0)
    body = b''.join([
        b'WEBP',
        _riff_chunk(b'VP8X', bytes([flags, 0, 0, 0]) + _uint24(width - 1) + _uint24(height - 1)),
        _riff_chunk(b'ANIM', b'\x00\x00\x00\x00' + struct.pack('<H', loop or 0)),
    ] + frames)
    return b'RIFF' + struct.pack('<I', len(body)) + body
