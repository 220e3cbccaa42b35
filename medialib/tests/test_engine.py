"""Tests for AttachmentEngine class."""

import io
import json
from concurrent.futures import ThreadPoolExecutor

import pytest
from PIL import Image, ImageSequence

from medialib.attachment_record import AttachmentRecord
from medialib.crop_payload import CropPayload
from medialib.engine import AttachmentEngine
from medialib.errors import (
    CropOutOfBoundsError,
    DegenerateCropError,
    MediaLibraryError,
    StorageError,
    UnsupportedFormatError,
)
from medialib.geometry import Rectangle
from medialib.local_storage import LocalStorage
from medialib.path_builder import PathBuilder

from conftest import FRAME_DURATIONS, oversized_png


def stored_image(storage, path):
    return Image.open(io.BytesIO(storage.get(path)))


class FailingStorage(LocalStorage):
    """LocalStorage that fails writes for one style and optionally every delete."""

    def __init__(self, config, fail_marker, fail_deletes=False):
        super().__init__(config)
        self.fail_marker = fail_marker
        self.fail_deletes = fail_deletes

    def put(self, path, data, content_type='application/octet-stream'):
        if self.fail_marker in path:
            raise StorageError(f"Simulated write failure for {path}", path=path)
        super().put(path, data, content_type)

    def delete(self, path):
        if self.fail_deletes:
            raise StorageError(f"Simulated delete failure for {path}", path=path)
        super().delete(path)


class TestUrlWithoutFile:
    """URL lookups on records without an upload."""

    def test_urls_are_empty(self, engine, record):
        assert engine.url(record) == ''
        assert engine.url(record, 'big') == ''
        assert engine.url(record, 'small1', 'small2') == ''


class TestUpload:
    """Tests for scanning new uploads."""

    def test_upload_stores_original(self, engine, record, local_storage, sample_png_bytes):
        result = engine.scan(record, sample_png_bytes, filename='logo.png')

        assert record.original_path.startswith('users/1/avatar/logo.')
        assert record.original_path.endswith('.png')
        assert local_storage.get(record.original_path) == sample_png_bytes
        assert engine.url(record) == '/system/' + record.original_path
        assert record.filename == 'logo.png'
        assert record.format_tag == 'PNG'
        assert record.crop_applied is False
        assert result.styles == ['small1', 'small2', 'square', 'big']
        assert len(result.written) == 5

    def test_upload_derives_every_style(self, engine, record, local_storage, style_registry, sample_png_bytes):
        engine.scan(record, sample_png_bytes, filename='logo.png')

        for style, size in style_registry.get_sizes().items():
            path = record.variants[style]
            assert engine.url(record, style) == '/system/' + path
            assert path.split('/')[-1].split('.')[2] == style
            assert stored_image(local_storage, path).size == (size.width, size.height)

    def test_first_matching_style_wins(self, engine, record, sample_png_bytes):
        engine.scan(record, sample_png_bytes, filename='logo.png')

        assert engine.url(record, 'small1', 'small2') == '/system/' + record.variants['small1']
        assert engine.url(record, 'missing', 'small2') == '/system/' + record.variants['small2']
        assert engine.url(record, 'missing') == ''

    def test_upload_from_file_object(self, engine, record, tmp_path, sample_image_bytes):
        path = tmp_path / 'holiday photo.jpg'
        path.write_bytes(sample_image_bytes)

        with open(path, 'rb') as f:
            engine.scan(record, f)

        assert record.original_path.startswith('users/1/avatar/holiday_photo.')
        assert record.variants['big'].endswith('.big.jpg')

    def test_upload_default_filename(self, engine, record, sample_png_bytes):
        engine.scan(record, bytearray(sample_png_bytes))

        assert record.filename == 'file'

    def test_bmp_variants_are_jpeg(self, engine, record, local_storage, sample_bmp_bytes):
        engine.scan(record, sample_bmp_bytes, filename='scan.bmp')

        assert record.original_path.endswith('.bmp')
        assert record.variants['square'].endswith('.square.jpg')
        assert stored_image(local_storage, record.variants['square']).format == 'JPEG'

    def test_same_upload_twice_keeps_paths(self, engine, record, local_storage, sample_png_bytes):
        engine.scan(record, sample_png_bytes, filename='logo.png')
        first = record.list_paths()

        result = engine.scan(record, sample_png_bytes, filename='logo.png')

        assert record.list_paths() == first
        assert result.orphaned == []
        assert all(local_storage.exists(p) for p in first)

    def test_new_upload_removes_old_files(self, engine, record, local_storage, sample_png_bytes, other_png_bytes):
        engine.scan(record, sample_png_bytes, filename='logo.png')
        old_paths = record.list_paths()

        result = engine.scan(record, other_png_bytes, filename='logo.png')

        assert sorted(result.orphaned) == sorted(old_paths)
        assert not any(local_storage.exists(p) for p in old_paths)
        assert all(local_storage.exists(p) for p in record.list_paths())

    def test_new_upload_resets_crop(self, engine, record, sample_png_bytes, other_png_bytes, crop_payload_text):
        engine.scan(record, sample_png_bytes, filename='logo.png')
        engine.scan(record, crop_payload_text)

        engine.scan(record, other_png_bytes, filename='logo.png')

        assert record.crop_applied is False
        assert record.crop_options == {}

    def test_unsupported_upload(self, engine, record, list_stored):
        with pytest.raises(UnsupportedFormatError):
            engine.scan(record, b'definitely not an image', filename='notes.txt')

        assert record.original_path == ''
        assert list_stored() == set()

    def test_oversized_upload(self, engine, record, list_stored):
        with pytest.raises(UnsupportedFormatError):
            engine.scan(record, oversized_png(), filename='huge.png')

        assert record.original_path == ''
        assert list_stored() == set()

    def test_unscannable_value(self, engine, record):
        with pytest.raises(MediaLibraryError):
            engine.scan(record, 12345)


class TestAnimatedUpload:
    """Tests for animated sources."""

    def test_every_style_keeps_frames(self, engine, record, local_storage, style_registry, sample_gif_bytes):
        engine.scan(record, sample_gif_bytes, filename='spinner.gif')

        for style, size in style_registry.get_sizes().items():
            img = stored_image(local_storage, record.variants[style])
            assert img.format == 'GIF'
            assert img.n_frames == 4
            for frame in ImageSequence.Iterator(img):
                assert frame.size == (size.width, size.height)

    def test_frames_identical_after_crop_are_kept(self, engine, record, local_storage, held_gif_bytes):
        engine.scan(record, held_gif_bytes, filename='spinner.gif')

        for style in ('small1', 'small2', 'square', 'big'):
            img = stored_image(local_storage, record.variants[style])
            assert img.n_frames == 4
            durations = [frame.info.get('duration') for frame in ImageSequence.Iterator(img)]
            assert durations == FRAME_DURATIONS

    def test_held_frames_kept_after_explicit_crop(self, engine, record, local_storage, held_gif_bytes):
        engine.scan(record, held_gif_bytes, filename='spinner.gif')
        engine.scan(record, {'crop': True, 'cropOptions': {'big': {'X': 0, 'Y': 0, 'Width': 40, 'Height': 40}}})

        img = stored_image(local_storage, record.variants['big'])
        assert img.n_frames == 4
        assert img.size == (50, 50)

    def test_cropped_gif_keeps_frames(self, engine, record, local_storage, sample_gif_bytes, crop_payload_text):
        engine.scan(record, sample_gif_bytes, filename='spinner.gif')
        engine.scan(record, crop_payload_text)

        img = stored_image(local_storage, record.variants['small1'])
        assert img.size == (20, 10)
        assert img.n_frames == 4
        for frame in ImageSequence.Iterator(img):
            assert frame.size == (20, 10)


class TestCrop:
    """Tests for scanning crop payloads."""

    @pytest.fixture
    def uploaded(self, engine, record, sample_png_bytes):
        engine.scan(record, sample_png_bytes, filename='logo.png')
        return record

    def test_crop_changes_urls(self, engine, uploaded, crop_payload_text):
        before = {style: engine.url(uploaded, style) for style in ('small1', 'small2', 'square', 'big')}
        original_before = engine.url(uploaded)

        result = engine.scan(uploaded, crop_payload_text)

        assert result.cropped is True
        assert result.styles == ['small1', 'small2']
        assert engine.url(uploaded) != original_before
        assert engine.url(uploaded, 'small1') != before['small1']
        assert engine.url(uploaded, 'small2') != before['small2']
        assert engine.url(uploaded, 'square') == before['square']
        assert engine.url(uploaded, 'big') == before['big']

    def test_crop_updates_record(self, engine, uploaded, crop_payload_text):
        engine.scan(uploaded, crop_payload_text)

        assert uploaded.crop_applied is True
        assert uploaded.crop_options == {
            'small1': Rectangle(5, 5, 20, 10),
            'small2': Rectangle(0, 0, 20, 10),
        }
        assert PathBuilder.style_from_path(uploaded.variants['small1']) == 'small1'

    def test_cropped_variant_dimensions(self, engine, uploaded, local_storage, crop_payload_text):
        engine.scan(uploaded, crop_payload_text)

        assert stored_image(local_storage, uploaded.variants['small1']).size == (20, 10)
        assert stored_image(local_storage, uploaded.variants['small2']).size == (20, 10)

    def test_crop_scaled_to_style_size(self, engine, uploaded, local_storage):
        engine.scan(uploaded, {'crop': True, 'cropOptions': {'square': {'X': 0, 'Y': 0, 'Width': 60, 'Height': 60}}})

        assert stored_image(local_storage, uploaded.variants['square']).size == (30, 30)

    def test_crop_is_idempotent(self, engine, uploaded, local_storage, crop_payload_text):
        engine.scan(uploaded, crop_payload_text)
        first = uploaded.list_paths()

        result = engine.scan(uploaded, crop_payload_text)

        assert uploaded.list_paths() == first
        assert result.orphaned == []
        assert all(local_storage.exists(p) for p in first)

    def test_different_crop_changes_url(self, engine, uploaded):
        engine.scan(uploaded, {'crop': True, 'cropOptions': {'small1': {'X': 0, 'Y': 0, 'Width': 20, 'Height': 10}}})
        first = engine.url(uploaded, 'small1')

        engine.scan(uploaded, {'crop': True, 'cropOptions': {'small1': {'X': 1, 'Y': 1, 'Width': 20, 'Height': 10}}})

        assert engine.url(uploaded, 'small1') != first

    def test_crop_removes_replaced_files(self, engine, uploaded, local_storage, crop_payload_text):
        old_small1 = uploaded.variants['small1']
        old_original = uploaded.original_path

        result = engine.scan(uploaded, crop_payload_text)

        assert old_small1 in result.orphaned
        assert not local_storage.exists(old_small1)
        assert not local_storage.exists(old_original)
        assert local_storage.exists(uploaded.original_path)

    def test_crop_payload_as_bytes(self, engine, uploaded, crop_payload_text):
        result = engine.scan(uploaded, crop_payload_text.encode('utf-8'))

        assert result.cropped is True
        assert uploaded.crop_applied is True

    def test_crop_payload_object(self, engine, uploaded):
        payload = CropPayload(crop=True, crop_options={'big': Rectangle(10, 10, 40, 40)})

        engine.scan(uploaded, payload)

        assert uploaded.crop_options['big'] == Rectangle(10, 10, 40, 40)

    def test_crop_uses_original_source(self, engine, uploaded, local_storage):
        payload = {'crop': True, 'cropOptions': {'small1': {'X': 0, 'Y': 0, 'Width': 100, 'Height': 50}}}

        engine.scan(uploaded, payload)
        engine.scan(uploaded, json.dumps({'crop': True, 'cropOptions': {'small1': {'X': 60, 'Y': 60, 'Width': 40, 'Height': 20}}}))

        assert stored_image(local_storage, uploaded.variants['small1']).size == (20, 10)

    def test_out_of_bounds_crop_leaves_record(self, engine, uploaded, local_storage, list_stored):
        before = uploaded.to_dict()
        files_before = list_stored()

        with pytest.raises(CropOutOfBoundsError):
            engine.scan(uploaded, {'crop': True, 'cropOptions': {'small1': {'X': 90, 'Y': 0, 'Width': 20, 'Height': 10}}})

        assert uploaded.to_dict() == before
        assert list_stored() == files_before

    def test_degenerate_crop(self, engine, uploaded):
        with pytest.raises(DegenerateCropError):
            engine.scan(uploaded, {'crop': True, 'cropOptions': {'small1': {'X': 0, 'Y': 0, 'Width': 0, 'Height': 10}}})

        assert uploaded.crop_applied is False

    def test_crop_disabled(self, engine, uploaded, crop_payload_text):
        before = uploaded.to_dict()

        result = engine.scan(uploaded, crop_payload_text.replace('true', 'false'))

        assert result.written == []
        assert uploaded.to_dict() == before

    def test_unknown_style_ignored(self, engine, uploaded):
        before = uploaded.to_dict()

        result = engine.scan(uploaded, {'crop': True, 'cropOptions': {'huge': {'X': 0, 'Y': 0, 'Width': 10, 'Height': 10}}})

        assert result.written == []
        assert uploaded.to_dict() == before

    def test_crop_without_upload(self, engine, record, crop_payload_text):
        with pytest.raises(MediaLibraryError):
            engine.scan(record, crop_payload_text)


class TestRollback:
    """Tests for all-or-nothing scans."""

    @pytest.fixture
    def failing_storage(self, local_storage):
        return FailingStorage(local_storage.config, fail_marker='.big.')

    def test_failed_upload_rolls_back(self, style_registry, failing_storage, record, sample_png_bytes, list_stored):
        engine = AttachmentEngine(style_registry, failing_storage)

        with pytest.raises(StorageError):
            engine.scan(record, sample_png_bytes, filename='logo.png')

        assert record.original_path == ''
        assert record.variants == {}
        assert list_stored() == set()

    def test_failed_crop_rolls_back(self, style_registry, local_storage, failing_storage, record, sample_png_bytes, list_stored):
        AttachmentEngine(style_registry, local_storage).scan(record, sample_png_bytes, filename='logo.png')
        before = record.to_dict()
        files_before = list_stored()
        engine = AttachmentEngine(style_registry, failing_storage)

        with pytest.raises(StorageError):
            engine.scan(record, {'crop': True, 'cropOptions': {
                'small1': {'X': 0, 'Y': 0, 'Width': 20, 'Height': 10},
                'big': {'X': 0, 'Y': 0, 'Width': 50, 'Height': 50},
            }})

        assert record.to_dict() == before
        assert list_stored() == files_before

    def test_rollback_keeps_current_files(self, style_registry, local_storage, failing_storage, record, sample_png_bytes):
        AttachmentEngine(style_registry, local_storage).scan(record, sample_png_bytes, filename='logo.png')
        engine = AttachmentEngine(style_registry, failing_storage)

        with pytest.raises(StorageError):
            engine.scan(record, sample_png_bytes, filename='logo.png')

        assert all(local_storage.exists(p) for p in record.list_paths())

    def test_rollback_failures_are_reported(self, style_registry, local_storage, record, sample_png_bytes):
        storage = FailingStorage(local_storage.config, fail_marker='.big.', fail_deletes=True)
        engine = AttachmentEngine(style_registry, storage)

        with pytest.raises(StorageError) as exc_info:
            engine.scan(record, sample_png_bytes, filename='logo.png')

        assert 'Simulated write failure' in str(exc_info.value)
        assert len(exc_info.value.rollback_errors) == 4


class TestDelete:
    """Tests for list_paths and delete_all."""

    def test_list_paths(self, engine, record, sample_png_bytes):
        engine.scan(record, sample_png_bytes, filename='logo.png')

        paths = engine.list_paths(record)

        assert paths[0] == record.original_path
        assert len(paths) == 5

    def test_delete_all(self, engine, record, local_storage, sample_png_bytes, list_stored):
        engine.scan(record, sample_png_bytes, filename='logo.png')

        failures = engine.delete_all(record)

        assert failures == []
        assert list_stored() == set()
        assert record.original_path == ''
        assert engine.url(record, 'big') == ''

    def test_delete_all_reports_failures(self, style_registry, local_storage, record, sample_png_bytes):
        AttachmentEngine(style_registry, local_storage).scan(record, sample_png_bytes, filename='logo.png')
        storage = FailingStorage(local_storage.config, fail_marker='never', fail_deletes=True)

        failures = AttachmentEngine(style_registry, storage).delete_all(record)

        assert len(failures) == 5
        assert record.list_paths() == []


class TestConcurrency:
    """Tests for sharing one engine across records."""

    def test_distinct_records_in_parallel(self, engine, local_storage, sample_png_bytes, sample_gif_bytes):
        records = [AttachmentRecord(attachment_id=f'users/{i}/avatar') for i in range(4)]
        uploads = [sample_png_bytes, sample_gif_bytes] * 2

        with ThreadPoolExecutor(max_workers=4) as executor:
            list(executor.map(lambda pair: engine.scan(pair[0], pair[1], filename='a.png'), zip(records, uploads)))

        for rec in records:
            assert len(rec.variants) == 4
            assert all(local_storage.exists(p) for p in rec.list_paths())
