"""Sequential batch runner moving pending media files through the upload protocol.

Each file goes through::

    PENDING -> CLASSIFIED -> REQUESTED -> SKIPPED            (already stored)
                                       -> UPLOADING -> DONE  (bytes transferred)
    PENDING -> NOT_MEDIA                                      (left in place)

SKIPPED and DONE files are moved into the done directory. The first error
aborts the whole batch; files moved before it stay moved.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from common.checksum import compute_content_id
from common.logging_config import get_logger
from common.protocol import FileMetadata, UploadStatus
from uploader.classifier import MediaClassifier, extract_capture_time, resolve_mtime
from uploader.config import UploaderConfig
from uploader.coordinator_client import CoordinatorClient
from uploader.exceptions import BatchAbortedError, LocalFileError, UploaderError
from uploader.utils import format_file_size


class FileState(str, Enum):
    PENDING = "pending"
    CLASSIFIED = "classified"
    REQUESTED = "requested"
    SKIPPED = "skipped"
    UPLOADING = "uploading"
    DONE = "done"
    NOT_MEDIA = "not_media"


TRANSITIONS = {
    FileState.PENDING: {FileState.CLASSIFIED, FileState.NOT_MEDIA},
    FileState.CLASSIFIED: {FileState.REQUESTED},
    FileState.REQUESTED: {FileState.SKIPPED, FileState.UPLOADING},
    FileState.UPLOADING: {FileState.DONE},
}

@dataclass
class FileOutcome:
    """Progress of one file through the upload protocol."""
    path: Path
    state: FileState = FileState.PENDING
    content_id: Optional[str] = None
    content_type: Optional[str] = None
    size: Optional[int] = None
    mtime: Optional[datetime] = None

    def advance(self, state: FileState) -> None:
        if state not in TRANSITIONS.get(self.state, set()):
            raise ValueError(f"invalid transition {self.state.value} -> {state.value} for {self.path.name}")
        self.state = state

    @property
    def completed(self) -> bool:
        """True once the file has been accounted for remotely and moved."""
        return self.state in (FileState.SKIPPED, FileState.DONE)


@dataclass
class BatchReport:
    """Outcomes of a batch that ran to completion."""
    outcomes: List[FileOutcome] = field(default_factory=list)

    def _count(self, state: FileState) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state == state)

    @property
    def uploaded(self) -> int:
        return self._count(FileState.DONE)

    @property
    def skipped(self) -> int:
        return self._count(FileState.SKIPPED)

    @property
    def not_media(self) -> int:
        return self._count(FileState.NOT_MEDIA)

    @property
    def total(self) -> int:
        return len(self.outcomes)


class BatchRunner:
    """Drive every file of the pending directory through the upload protocol, one at a time."""

    def __init__(
        self,
        config: UploaderConfig,
        client: CoordinatorClient,
        classifier: Optional[MediaClassifier] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            config: Validated uploader configuration (pending and done dirs set)
            client: Coordinator client used for requests and transfers
            classifier: Media classifier (defaults to libmagic sniffing)
            logger: Logger receiving one line per attempted file
        """
        self.config = config
        self.client = client
        self.classifier = classifier or MediaClassifier()
        self.logger = logger or get_logger(__name__)

    def list_pending(self) -> List[Path]:
        """
        List regular files of the pending directory in stable name order.

        Raises:
            LocalFileError: If the directory cannot be read
        """
        try:
            entries = sorted(Path(self.config.pending_dir).iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise LocalFileError(f"cannot list pending dir {self.config.pending_dir}: {e}") from e
        return [entry for entry in entries if entry.is_file()]

    def run(self) -> BatchReport:
        """
        Process the whole pending directory.

        Returns:
            BatchReport with one outcome per file

        Raises:
            LocalFileError: If the pending dir cannot be listed or the done dir created
            BatchAbortedError: On the first file that fails
        """
        files = self.list_pending()

        done_dir = Path(self.config.done_dir)
        try:
            done_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise LocalFileError(f"cannot create done dir {done_dir}: {e}") from e

        report = BatchReport()
        total = len(files)
        for index, path in enumerate(files, start=1):
            try:
                outcome = self.process_file(path, index, total)
            except UploaderError as e:
                self.logger.error(f"[{index}/{total}] {path.name} failed: {e}")
                raise BatchAbortedError(path, index, total, e, report.outcomes) from e
            report.outcomes.append(outcome)

        self.logger.info(
            f"Batch complete: {report.uploaded} uploaded, {report.skipped} already stored, "
            f"{report.not_media} not media, {report.total} total"
        )
        return report

    def process_file(self, path: Path, index: int = 1, total: int = 1, move: bool = True) -> FileOutcome:
        """
        Run one file through classify, request, and skip or upload, then mark it complete.

        Args:
            path: File in the pending directory
            index: 1-based position in the batch
            total: Number of files in the batch
            move: Whether completing the file moves it into the done directory

        Returns:
            FileOutcome in a terminal state

        Raises:
            UploaderError: Any failure that must abort the batch
        """
        outcome = FileOutcome(path=path)

        try:
            with open(path, 'rb') as f:
                outcome.content_id = compute_content_id(f)
                stat = os.fstat(f.fileno())
                outcome.size = stat.st_size
                outcome.mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)

                f.seek(0)
                classification = self.classifier.classify_stream(f)
                outcome.content_type = classification.content_type

                if not classification.is_media:
                    self.logger.info(
                        f"[{index}/{total}] {path.name} not a media file, content-type: {classification.content_type}"
                    )
                    outcome.advance(FileState.NOT_MEDIA)
                    return outcome

                if classification.is_image:
                    f.seek(0)
                    capture = extract_capture_time(f)
                    if capture.ok:
                        info = capture.info
                        self.logger.debug(
                            f"{path.name}: captured {info.captured_at.isoformat()} "
                            f"[make={info.make or 'unknown'}] [model={info.model or 'unknown'}]"
                        )
                    else:
                        self.logger.info(f"{path.name}: {capture.error}, using file mtime")
                    outcome.mtime = resolve_mtime(capture, outcome.mtime)

                outcome.advance(FileState.CLASSIFIED)
                self.logger.info(
                    f"[{index}/{total}] upload: {path.name} ({format_file_size(outcome.size)}, {outcome.content_type})"
                )

                meta = FileMetadata(
                    id=outcome.content_id,
                    name=path.name,
                    mtime=outcome.mtime,
                    size=outcome.size,
                    content_type=outcome.content_type,
                    test_upload=self.config.test_upload,
                )
                decision = self.client.request_upload(meta)
                outcome.advance(FileState.REQUESTED)

                if decision.status != UploadStatus.SKIP:
                    outcome.advance(FileState.UPLOADING)
                    f.seek(0)
                    self.client.transfer(f, outcome.size, decision)
        except OSError as e:
            raise LocalFileError(f"{path}: {e}") from e

        if move:
            self.mark_complete(path)

        if outcome.state == FileState.REQUESTED:
            self.logger.info(f"Upload already exists, skipping. id={outcome.content_id}")
            outcome.advance(FileState.SKIPPED)
        else:
            self.logger.info(f"Upload success! id={outcome.content_id}")
            outcome.advance(FileState.DONE)
        return outcome

    def mark_complete(self, path: Path) -> Path:
        """
        Atomically move a file from the pending into the done directory, keeping its name.

        Raises:
            LocalFileError: If the rename fails
        """
        target = Path(self.config.done_dir) / path.name
        try:
            os.replace(path, target)
        except OSError as e:
            raise LocalFileError(f"cannot move {path} to {target}: {e}") from e
        return target
