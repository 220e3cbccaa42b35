"""
Pytest fixtures for medialib tests.
"""

import io
import struct
import zlib

import pytest
from PIL import Image


FRAME_COLORS = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 0)]
FRAME_DURATIONS = [100, 120, 140, 160]


def encode_image(img, fmt, **params):
    buffer = io.BytesIO()
    img.save(buffer, format=fmt, **params)
    return buffer.getvalue()


def animated_frames(size=(60, 40)):
    return [Image.new('RGBA', size, color + (255,)) for color in FRAME_COLORS]


def oversized_png(width=20000, height=20000):
    """PNG header claiming a canvas larger than Pillow's pixel limit."""
    def chunk(chunk_type, data):
        crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
        return struct.pack('>I', len(data)) + chunk_type + data + struct.pack('>I', crc)

    header = struct.pack('>IIBBBBB', width, height, 8, 2, 0, 0, 0)
    return b'\x89PNG\r\n\x1a\n' + chunk(b'IHDR', header) + chunk(b'IDAT', b'') + chunk(b'IEND', b'')


@pytest.fixture
def style_registry():
    """Fixture providing the avatar style registry."""
    from medialib.geometry import Size
    from medialib.style_registry import StyleRegistry

    return StyleRegistry({
        'small1': Size(20, 10),
        'small2': Size(20, 10),
        'square': Size(30, 30),
        'big': Size(50, 50),
    })


@pytest.fixture
def sample_png_bytes():
    """Fixture providing a 100x80 PNG with transparency."""
    img = Image.new('RGBA', (100, 80), color=(255, 0, 0, 128))
    return encode_image(img, 'PNG')


@pytest.fixture
def other_png_bytes():
    """Fixture providing a second, different PNG."""
    img = Image.new('RGB', (120, 90), color=(0, 128, 255))
    return encode_image(img, 'PNG')


@pytest.fixture
def sample_image_bytes():
    """Fixture providing sample JPEG image bytes."""
    img = Image.new('RGB', (100, 100), color='red')
    return encode_image(img, 'JPEG')


@pytest.fixture
def sample_bmp_bytes():
    """Fixture providing sample BMP image bytes."""
    img = Image.new('RGB', (64, 48), color='green')
    return encode_image(img, 'BMP')


@pytest.fixture
def sample_gif_bytes():
    """Fixture providing a 4-frame 60x40 animated GIF."""
    frames = [Image.new('RGB', (60, 40), color) for color in FRAME_COLORS]
    return encode_image(
        frames[0], 'GIF',
        save_all=True,
        append_images=frames[1:],
        duration=FRAME_DURATIONS,
        loop=0,
    )


@pytest.fixture
def held_gif_bytes():
    """Fixture providing a 4-frame 60x40 GIF whose frames differ only in the bottom-right pixel."""
    frames = []
    for color in FRAME_COLORS:
        frame = Image.new('RGB', (60, 40), (0, 128, 255))
        frame.putpixel((59, 39), color)
        frames.append(frame)
    return encode_image(
        frames[0], 'GIF',
        save_all=True,
        append_images=frames[1:],
        duration=FRAME_DURATIONS,
        loop=0,
    )


@pytest.fixture
def sample_apng_bytes():
    """Fixture providing a 4-frame 60x40 animated PNG."""
    frames = animated_frames()
    return encode_image(
        frames[0], 'PNG',
        save_all=True,
        append_images=frames[1:],
        duration=FRAME_DURATIONS,
        loop=0,
    )


@pytest.fixture
def local_storage(tmp_path):
    """Fixture providing LocalStorage rooted in a temp directory."""
    from medialib.local_storage import LocalConfig, LocalStorage

    return LocalStorage(LocalConfig(root_path=str(tmp_path / 'public'), base_url='/system'))


@pytest.fixture
def engine(style_registry, local_storage, logger):
    """Fixture providing an engine over local storage."""
    from medialib.engine import AttachmentEngine

    return AttachmentEngine(style_registry, local_storage, max_workers=4, logger=logger)


@pytest.fixture
def record():
    """Fixture providing an empty attachment record."""
    from medialib.attachment_record import AttachmentRecord

    return AttachmentRecord(attachment_id='users/1/avatar')


@pytest.fixture
def crop_payload_text():
    """Fixture providing a crop payload in its capitalized wire form."""
    return (
        '{"CropOptions": {"small1": {"X": 5, "Y": 5, "Height": 10, "Width": 20}, '
        '"small2": {"X": 0, "Y": 0, "Height": 10, "Width": 20}}, "Crop": true}'
    )


@pytest.fixture
def logger():
    """Fixture providing a logger."""
    import logging
    return logging.getLogger('test')


def stored_files(root):
    """Relative paths of every file under a storage root."""
    if not root.exists():
        return set()
    return {str(p.relative_to(root)) for p in root.rglob('*') if p.is_file()}


@pytest.fixture
def list_stored(local_storage):
    """Fixture returning a callable that lists stored files."""
    return lambda: stored_files(local_storage.root)
