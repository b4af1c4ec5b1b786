"""Wire protocol shared by the coordinator and the uploader.

The uploader POSTs a ``FileMetadata`` document to the coordinator and gets an
``UploadDecision`` back. Both are plain JSON objects; field names below are
the wire names.
"""

import posixpath
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class UploadStatus(str, Enum):
    OK = "ok"
    SKIP = "skip"  # object already exists at the derived key
    ERROR = "error"


class FileMetadata(BaseModel):
    """Metadata the uploader submits for one file."""
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    mtime: datetime
    size: int = Field(ge=0)
    content_type: str = Field(min_length=1)
    test_upload: bool = False

    @field_validator("mtime")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_wire(self) -> dict:
        return self.model_dump(mode="json")


class UploadDecision(BaseModel):
    """
    Coordinator answer to an upload request.

    ``error`` is only set for ``status=error``; ``url``, ``method`` and
    ``headers`` together form the write capability and are only set for
    ``status=ok``.
    """
    status: UploadStatus
    error: Optional[str] = None
    url: Optional[str] = None
    method: Optional[str] = None
    headers: Optional[Dict[str, str]] = None

    @field_validator("headers", mode="before")
    @classmethod
    def _flatten_multi_value_headers(cls, value):
        # Some coordinators serialise header maps as {"Name": ["value"]}.
        if isinstance(value, dict):
            flattened = {}
            for key, item in value.items():
                if isinstance(item, list):
                    item = item[0] if item else ""
                flattened[key] = item
            return flattened
        return value

    @model_validator(mode="after")
    def _check_shape(self) -> "UploadDecision":
        if self.status == UploadStatus.ERROR and not self.error:
            raise ValueError("error decision without an error message")
        if self.status == UploadStatus.OK and not self.url:
            raise ValueError("ok decision without a capability url")
        return self

    @classmethod
    def ok(cls, url: str, method: str, headers: Dict[str, str]) -> "UploadDecision":
        return cls(status=UploadStatus.OK, url=url, method=method, headers=dict(headers))

    @classmethod
    def skip(cls) -> "UploadDecision":
        return cls(status=UploadStatus.SKIP)

    @classmethod
    def failure(cls, message: str) -> "UploadDecision":
        return cls(status=UploadStatus.ERROR, error=message)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_store_timestamp(value: datetime) -> str:
    """
    Render a timestamp as the sortable prefix of a store key.

    The value keeps its own UTC offset. Tenths of a second are appended,
    truncated, only when non-zero: ``2020-01-01-00_00_00`` or
    ``2020-01-01-00_00_00.5``.
    """
    ts = value.strftime("%Y-%m-%d-%H_%M_%S")
    tenths = value.microsecond // 100000
    if tenths:
        ts += f".{tenths}"
    return ts


def format_rfc3339(value: datetime) -> str:
    """Format a timestamp as RFC 3339 with second precision."""
    value = _as_aware(value).replace(microsecond=0)
    if value.utcoffset() == timedelta(0):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return value.isoformat()


def derive_store_key(meta: FileMetadata, prefix: str = "") -> str:
    """
    Compute the object key a file is stored under.

    The key combines mtime, content id and display name, so the same bytes
    uploaded under another name or timestamp land on a different key.

    Args:
        meta: Submitted file metadata
        prefix: Key prefix (directory) inside the bucket

    Returns:
        Store key such as ``photos/2020-01-01-00_00_00-<id>-a.jpg``
    """
    leaf = f"{format_store_timestamp(meta.mtime)}-{meta.id}-{meta.name}"
    if not prefix:
        return leaf
    return posixpath.join(prefix, leaf)
