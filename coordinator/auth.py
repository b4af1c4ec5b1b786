"""Authentication and security utilities."""

import base64
import binascii
from typing import Optional

import bcrypt

from common.logging_config import get_logger

logger = get_logger(__name__)

REALM_HEADER = 'Basic realm="Restricted"'


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password to hash

    Returns:
        Bcrypt hash of the password
    """
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    Args:
        password: Plain text password to verify
        password_hash: Bcrypt hash to verify against

    Returns:
        True if password matches hash, False otherwise (including a malformed hash)
    """
    password_bytes = password.encode('utf-8')
    hash_bytes = password_hash.encode('utf-8')
    try:
        return bcrypt.checkpw(password_bytes, hash_bytes)
    except ValueError as e:
        logger.error(f"Configured password hash is not a valid bcrypt hash: {e}")
        return False


def parse_basic_auth(authorization: Optional[str]) -> Optional[tuple[str, str]]:
    """
    Decode an HTTP Basic Authorization header.

    Args:
        authorization: Raw header value (format: "Basic <base64(user:pass)>")

    Returns:
        (username, password) tuple, or None if the header is missing or malformed
    """
    if not authorization:
        return None

    scheme, _, encoded = authorization.partition(' ')
    if scheme.lower() != 'basic' or not encoded:
        return None

    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(':')
    if not sep:
        return None
    return username, password


def check_credentials(
    authorization: Optional[str],
    password_hash: str,
    expected_username: Optional[str] = None
) -> bool:
    """
    Check a Basic Authorization header against the shared credential.

    Args:
        authorization: Raw Authorization header value
        password_hash: Bcrypt hash of the shared password
        expected_username: Required username, or None to accept any username

    Returns:
        True if the request is authenticated
    """
    credentials = parse_basic_auth(authorization)
    if credentials is None:
        return False

    username, password = credentials
    if expected_username is not None and username != expected_username:
        return False

    return verify_password(password, password_hash)
