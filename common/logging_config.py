import logging
import os
import re
import sys
from typing import Optional


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

PACKAGE_LOGGERS = ('common', 'coordinator', 'uploader')

MASK = '***MASKED***'

SECRET_PATTERNS = (
    re.compile(r'((?:password|password_hash|secret)["\']?\s*[:=]\s*["\']?)[^"\'}\s,]+', re.IGNORECASE),
    re.compile(r'(authorization["\']?\s*[:=]\s*["\']?(?:basic\s+)?)[^"\'}\s,]+', re.IGNORECASE),
    re.compile(r'(basic\s+)[A-Za-z0-9+/]{8,}={0,2}', re.IGNORECASE),
    re.compile(r'(X-Amz-(?:Signature|Credential|Security-Token)=)[^&\s]+'),
)


def mask_secrets(text: str) -> str:
    """Replace credential values and presigned URL signatures in ``text``."""
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(r'\1' + MASK, text)
    return text


class SensitiveDataFilter(logging.Filter):
    """Rewrite records whose rendered message carries credentials."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_secrets(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(component_name: str, log_level: Optional[str] = None) -> logging.Logger:
    """
    Set up logging for a component.

    The package loggers get the same stdout handler so that module loggers
    obtained with ``get_logger(__name__)`` end up in the same stream.

    Args:
        component_name: Name of the component ('coordinator' or 'uploader')
        log_level: Log level name; defaults to the LOG_LEVEL env var, then INFO

    Returns:
        The component logger
    """
    level_name = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    level = getattr(logging, level_name, logging.INFO)

    for name in {component_name, *PACKAGE_LOGGERS}:
        _attach_handler(logging.getLogger(name), level)

    return logging.getLogger(component_name)


def _attach_handler(logger: logging.Logger, level: int) -> None:
    logger.setLevel(level)
    logger.propagate = False

    # Repeated setup only changes the level
    for handler in logger.handlers:
        handler.setLevel(level)
    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(SensitiveDataFilter())
    logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
