"""Tests for media classification and capture-time extraction."""

import io
from datetime import datetime, timezone

import magic
import pytest

from uploader.classifier import (
    Classification,
    MediaClassifier,
    extract_capture_time,
    parse_exif_datetime,
    resolve_mtime,
    sniff_content_type,
)
from uploader.exceptions import LocalFileError


@pytest.mark.parametrize('content_type, kind, is_media, is_image', [
    ('image/jpeg', 'image', True, True),
    ('video/mp4', 'video', True, False),
    ('audio/mpeg', 'audio', True, False),
    ('text/plain', 'text', False, False),
    ('application/pdf', 'application', False, False),
    ('application/x-empty', 'application', False, False),
])
def test_classification_kinds(content_type, kind, is_media, is_image):
    """Test the kind is the part before the slash and only media kinds count."""
    classification = Classification(content_type)

    assert classification.kind == kind
    assert classification.is_media is is_media
    assert classification.is_image is is_image


def test_classifier_only_sees_prefix():
    """Test the detector is handed at most 512 bytes."""
    seen = []

    def detector(prefix):
        seen.append(prefix)
        return 'image/png'

    classifier = MediaClassifier(detector=detector)
    stream = io.BytesIO(b'\x89PNG' + b'\x00' * 2000)

    assert classifier.classify_stream(stream).content_type == 'image/png'
    assert len(seen[0]) == 512
    assert stream.tell() == 512


def test_classifier_with_injected_detector(classifier):
    """Test signature detection through the injected detector."""
    assert classifier.classify(b'\xff\xd8\xff\xe0rest').is_image
    assert classifier.classify(b'ID3\x03').kind == 'audio'
    assert not classifier.classify(b'hello world').is_media


def test_sniff_content_type_with_libmagic(tmp_path, jpeg_writer):
    """Test libmagic recognizes a real JPEG prefix."""
    path = jpeg_writer(tmp_path / 'x.jpg')

    assert sniff_content_type(path.read_bytes()[:512]) == 'image/jpeg'


def test_sniff_content_type_empty_prefix():
    """Test an empty prefix is never classified as media."""
    assert not Classification(sniff_content_type(b'')).is_media


def test_sniff_content_type_text():
    """Test plain text is not media."""
    assert not MediaClassifier().classify(b'just some notes\n' * 10).is_media


def test_sniff_content_type_failure(monkeypatch):
    """Test libmagic failures surface as local file errors."""
    def broken(prefix, mime=False):
        raise magic.MagicException('could not find any valid magic files')

    monkeypatch.setattr(magic, 'from_buffer', broken)

    with pytest.raises(LocalFileError, match='cannot detect content type'):
        MediaClassifier().classify(b'\xff\xd8\xff')


def test_extract_capture_time(sample_jpeg):
    """Test the EXIF timestamp and camera tags are read."""
    with open(sample_jpeg, 'rb') as f:
        result = extract_capture_time(f)

    assert result.ok
    assert result.error is None
    assert result.info.captured_at == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert result.info.make == 'Acme'
    assert result.info.model == 'Shooter 3000'


def test_extract_capture_time_without_exif(tmp_path, jpeg_writer):
    """Test a JPEG without EXIF yields a failure result instead of raising."""
    path = jpeg_writer(tmp_path / 'plain.jpg')

    with open(path, 'rb') as f:
        result = extract_capture_time(f)

    assert not result.ok
    assert 'no capture time' in str(result.error)


def test_extract_capture_time_from_non_image():
    """Test undecodable bytes yield a failure result."""
    result = extract_capture_time(io.BytesIO(b'\xff\xd8\xff this is not really a jpeg'))

    assert not result.ok
    assert result.info is None


def test_extract_capture_time_bad_timestamp(tmp_path, jpeg_writer):
    """Test an unparsable EXIF timestamp is a failure result."""
    path = jpeg_writer(tmp_path / 'bad.jpg', capture_time='0000:00:00 00:00:00')

    with open(path, 'rb') as f:
        result = extract_capture_time(f)

    assert not result.ok
    assert 'parse exif time' in str(result.error)


def test_parse_exif_datetime():
    """Test EXIF timestamps are read as UTC."""
    assert parse_exif_datetime('2021:06:15 13:04:05') == datetime(2021, 6, 15, 13, 4, 5, tzinfo=timezone.utc)


def test_resolve_mtime(sample_jpeg):
    """Test the capture time wins over the filesystem time, which is the fallback."""
    fallback = datetime(2024, 5, 5, tzinfo=timezone.utc)

    with open(sample_jpeg, 'rb') as f:
        found = extract_capture_time(f)
    missing = extract_capture_time(io.BytesIO(b'nothing'))

    assert resolve_mtime(found, fallback) == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert resolve_mtime(missing, fallback) == fallback
