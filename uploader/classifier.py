"""Media classification and capture-time extraction for pending files."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Optional

import magic
from PIL import ExifTags, Image

from common.constants import MEDIA_KINDS, SNIFF_LENGTH
from uploader.exceptions import LocalFileError

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


def sniff_content_type(prefix: bytes) -> str:
    """
    Detect the MIME type of a content prefix with libmagic.

    Args:
        prefix: Leading bytes of a file (may be empty)

    Returns:
        MIME type string such as ``image/jpeg``

    Raises:
        LocalFileError: If libmagic cannot classify the content
    """
    try:
        return magic.from_buffer(prefix, mime=True)
    except magic.MagicException as e:
        raise LocalFileError(f"cannot detect content type: {e}") from e


@dataclass(frozen=True)
class Classification:
    """MIME type of a file and the coarse kind derived from it."""
    content_type: str

    @property
    def kind(self) -> str:
        return self.content_type.split("/", 1)[0]

    @property
    def is_media(self) -> bool:
        return self.kind in MEDIA_KINDS

    @property
    def is_image(self) -> bool:
        return self.kind == "image"


class MediaClassifier:
    """Classify file content from a short prefix."""

    def __init__(self, detector: Optional[Callable[[bytes], str]] = None):
        """
        Args:
            detector: Callable mapping a content prefix to a MIME type
                (defaults to libmagic sniffing)
        """
        self.detector = detector or sniff_content_type

    def classify(self, prefix: bytes) -> Classification:
        return Classification(content_type=self.detector(prefix[:SNIFF_LENGTH]))

    def classify_stream(self, stream: BinaryIO) -> Classification:
        """Classify the next SNIFF_LENGTH bytes of ``stream``."""
        return self.classify(stream.read(SNIFF_LENGTH))


class ExtractionError(Exception):
    """Raised when no capture time can be read from image metadata."""
    pass


@dataclass(frozen=True)
class CaptureInfo:
    """Camera metadata embedded in an image."""
    captured_at: datetime
    make: Optional[str] = None
    model: Optional[str] = None


@dataclass(frozen=True)
class CaptureTimeResult:
    """Either the extracted capture info or the reason extraction failed."""
    info: Optional[CaptureInfo] = None
    error: Optional[ExtractionError] = None

    @property
    def ok(self) -> bool:
        return self.info is not None

    @classmethod
    def success(cls, info: CaptureInfo) -> "CaptureTimeResult":
        return cls(info=info)

    @classmethod
    def failure(cls, message: str) -> "CaptureTimeResult":
        return cls(error=ExtractionError(message))


def _tag_text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="replace")
    text = str(value).strip().rstrip("\x00").strip()
    return text or None


def parse_exif_datetime(value: str) -> datetime:
    """Parse an EXIF ``YYYY:MM:DD HH:MM:SS`` timestamp as UTC."""
    return datetime.strptime(value, EXIF_DATETIME_FORMAT).replace(tzinfo=timezone.utc)


def extract_capture_time(stream: BinaryIO) -> CaptureTimeResult:
    """
    Read the capture timestamp from an image's EXIF metadata.

    ``DateTimeOriginal`` is preferred, then the IFD0 ``DateTime``. The stream
    is read from its current position and left open.

    Args:
        stream: Binary stream positioned at the start of the image

    Returns:
        CaptureTimeResult; never raises for unreadable or missing metadata
    """
    try:
        with Image.open(stream) as img:
            exif = img.getexif()
            exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
    except Exception as e:
        return CaptureTimeResult.failure(f"read exif err: {e}")

    raw = _tag_text(exif_ifd.get(ExifTags.Base.DateTimeOriginal)) or _tag_text(
        exif.get(ExifTags.Base.DateTime)
    )
    if raw is None:
        return CaptureTimeResult.failure("no capture time in exif metadata")

    try:
        captured_at = parse_exif_datetime(raw)
    except ValueError as e:
        return CaptureTimeResult.failure(f"parse exif time {raw!r} err: {e}")

    return CaptureTimeResult.success(
        CaptureInfo(
            captured_at=captured_at,
            make=_tag_text(exif.get(ExifTags.Base.Make)),
            model=_tag_text(exif.get(ExifTags.Base.Model)),
        )
    )


def resolve_mtime(result: CaptureTimeResult, fallback: datetime) -> datetime:
    """
    Pick the timestamp a file is filed under.

    Args:
        result: Capture time extraction result
        fallback: Filesystem modification time

    Returns:
        The capture time when extraction succeeded, otherwise ``fallback``
    """
    if result.ok:
        return result.info.captured_at
    return fallback
