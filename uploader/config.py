"""Configuration for the photo backup uploader."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from uploader.exceptions import ConfigurationError


DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 2.0


@dataclass(frozen=True)
class UploaderConfig:
    """Immutable uploader settings passed to the client and the batch runner."""

    url: str
    username: str = ""
    password: str = ""
    pending_dir: Optional[Path] = None
    done_dir: Optional[Path] = None
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_backoff_multiplier: float = DEFAULT_RETRY_BACKOFF_MULTIPLIER
    test_upload: bool = False

    def validate(self, require_dirs: bool = True) -> "UploaderConfig":
        """
        Check required settings before any file or network I/O.

        Args:
            require_dirs: Whether pending and done directories are required

        Returns:
            The same config, for chaining

        Raises:
            ConfigurationError: If a required setting is missing or invalid
        """
        if not self.url:
            raise ConfigurationError("--url is required")
        if not self.url.startswith(("http://", "https://")):
            raise ConfigurationError(f"--url must be an http(s) URL, got {self.url!r}")
        if require_dirs:
            if not self.pending_dir:
                raise ConfigurationError("--pending-dir is required")
            if not self.done_dir:
                raise ConfigurationError("--done-dir is required")
        if self.max_retries < 0:
            raise ConfigurationError("--max-retries must not be negative")
        if self.timeout <= 0:
            raise ConfigurationError("--timeout must be positive")
        return self

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.max_retries,
            'retry_backoff_multiplier': self.retry_backoff_multiplier,
        }
