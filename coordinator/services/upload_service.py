"""Upload coordination: dedup decision and capability issuance."""

import logging
from typing import Optional
from urllib.parse import quote

from common.logging_config import get_logger
from common.protocol import FileMetadata, UploadDecision, derive_store_key, format_rfc3339
from coordinator.config import CoordinatorConfig
from coordinator.store import ObjectStore

# Printable ASCII except '%', so an encoded value is unambiguous
HEADER_SAFE_CHARS = "".join(chr(c) for c in range(0x20, 0x7f) if chr(c) != "%")


def header_safe(value: str) -> str:
    """
    Make a value usable as a signed HTTP header.

    Printable ASCII values are kept as is; anything else is UTF-8
    percent-encoded, so ``café.jpg`` becomes ``caf%C3%A9.jpg``.
    """
    if value.isascii() and value.isprintable():
        return value
    return quote(value, safe=HEADER_SAFE_CHARS)


class UploadCoordinator:
    """
    Decides whether a file must be uploaded and, if so, issues a capability.

    Existence check and capability issuance are not atomic with the final
    write: two clients racing on the same key can both receive ``ok``, and
    the later write wins.
    """

    def __init__(
        self,
        config: CoordinatorConfig,
        store: ObjectStore,
        logger: Optional[logging.Logger] = None
    ):
        self.config = config
        self.store = store
        self.logger = logger or get_logger(__name__)

    def store_key(self, meta: FileMetadata) -> str:
        return derive_store_key(meta, self.config.path_prefix)

    def request_upload(self, meta: FileMetadata) -> UploadDecision:
        """
        Decide between skip and upload for one file.

        Args:
            meta: Metadata submitted by the uploader

        Returns:
            UploadDecision with status ``skip`` if the derived key already
            exists, otherwise ``ok`` with a write capability for that key

        Raises:
            StorageError: If the store fails; never reported as skip or ok
        """
        key = self.store_key(meta)
        context = (
            f"[id={meta.id}] [filename={meta.name}] [path={key}] [size={meta.size}] "
            f"[content_type={meta.content_type}] [test_upload={meta.test_upload}]"
        )

        if self.store.exists(key):
            self.logger.info(f"Object already exists, skipping upload {context}")
            return UploadDecision.skip()

        metadata = {
            "filename": header_safe(meta.name),
            "mtime": format_rfc3339(meta.mtime),
        }
        if meta.test_upload:
            metadata["test-upload"] = "true"

        presigned = self.store.presign_put(
            key,
            content_length=meta.size,
            content_type=header_safe(meta.content_type),
            metadata=metadata,
            expires_in=self.config.capability_ttl_seconds,
        )

        self.logger.info(f"Upload capability issued {context}")
        return UploadDecision.ok(
            url=presigned.url,
            method=presigned.method,
            headers=presigned.headers,
        )
