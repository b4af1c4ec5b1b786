"""Custom exception classes for the uploader."""

from pathlib import Path
from typing import Optional


class UploaderError(Exception):
    """
    Base exception class for all uploader errors.
    """
    pass


class ConfigurationError(UploaderError):
    """
    Raised when a required setting is missing; detected before any I/O.
    """
    pass


class CoordinatorError(UploaderError):
    """
    Raised when the coordinator is unreachable, answers with an unexpected
    status code, or returns an error or unparsable decision.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransferError(UploaderError):
    """
    Raised when writing the file to the capability URL fails.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class LocalFileError(UploaderError):
    """
    Raised when a pending file cannot be opened, read, stat'ed or moved.
    """
    pass


class BatchAbortedError(UploaderError):
    """
    Raised when a batch stops at the first unrecoverable file error.

    Files processed before ``path`` keep their outcome; nothing is rolled back.
    """

    def __init__(self, path: Path, index: int, total: int, cause: Exception, outcomes: list):
        super().__init__(f"batch aborted at [{index}/{total}] {path.name}: {cause}")
        self.path = path
        self.index = index
        self.total = total
        self.cause = cause
        self.outcomes = outcomes
