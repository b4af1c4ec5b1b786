"""Configuration settings for the Coordinator server."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from botocore.exceptions import BotoCoreError, ClientError

from common.constants import CAPABILITY_TTL_SECONDS
from coordinator.exceptions import ConfigurationError


ENV_PREFIX = "PHOTO_BACKUP_"

PARAMETER_STORE_PREFIX = "/prod/lambda/photo-backup/"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 1234
DEFAULT_REGION = "us-east-1"


@dataclass(frozen=True)
class CoordinatorConfig:
    """Immutable coordinator settings, built once at startup."""

    bucket: str
    password_hash: str
    path_prefix: str = ""
    username: Optional[str] = None
    region: str = DEFAULT_REGION
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    capability_ttl_seconds: int = CAPABILITY_TTL_SECONDS

    def __post_init__(self):
        if not self.bucket:
            raise ConfigurationError("bucket is required")
        if not self.password_hash:
            raise ConfigurationError("password hash is required")
        if self.capability_ttl_seconds <= 0:
            raise ConfigurationError("capability ttl must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CoordinatorConfig":
        """
        Build configuration from PHOTO_BACKUP_* environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            CoordinatorConfig instance

        Raises:
            ConfigurationError: If a required variable is missing or invalid
        """
        env = os.environ if environ is None else environ
        return cls(
            bucket=env.get(f"{ENV_PREFIX}BUCKET", ""),
            password_hash=env.get(f"{ENV_PREFIX}PASSWORD_HASH", ""),
            path_prefix=env.get(f"{ENV_PREFIX}PATH_PREFIX", ""),
            **_server_settings(env),
        )

    @classmethod
    def from_parameter_store(
        cls,
        ssm_client,
        prefix: str = PARAMETER_STORE_PREFIX,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "CoordinatorConfig":
        """
        Build configuration from AWS SSM Parameter Store.

        Reads ``bucket``, ``pathPrefix`` and ``bcryptPass`` (decrypted) under
        ``prefix``. Listen address and region still come from the environment.

        Args:
            ssm_client: boto3 SSM client
            prefix: Parameter name prefix
            environ: Mapping to read server settings from (defaults to os.environ)

        Returns:
            CoordinatorConfig instance
        """
        env = os.environ if environ is None else environ
        return cls(
            bucket=read_parameter(ssm_client, prefix, "bucket"),
            path_prefix=read_parameter(ssm_client, prefix, "pathPrefix"),
            password_hash=read_parameter(ssm_client, prefix, "bcryptPass"),
            **_server_settings(env),
        )


def read_parameter(ssm_client, prefix: str, key: str) -> str:
    """
    Read one decrypted parameter value.

    Raises:
        ConfigurationError: If the parameter cannot be read or has no value
    """
    name = prefix + key
    try:
        response = ssm_client.get_parameter(Name=name, WithDecryption=True)
    except (BotoCoreError, ClientError) as e:
        raise ConfigurationError(f"read key {key} err: {e}") from e

    value = response.get("Parameter", {}).get("Value")
    if value is None:
        raise ConfigurationError(f"read key {key} err: value is nil")
    return value


def _server_settings(env: Mapping[str, str]) -> dict:
    port = env.get(f"{ENV_PREFIX}PORT", str(DEFAULT_PORT))
    try:
        port = int(port)
    except ValueError:
        raise ConfigurationError(f"invalid port: {port!r}")

    return {
        "username": env.get(f"{ENV_PREFIX}USERNAME") or None,
        "region": env.get(f"{ENV_PREFIX}REGION", DEFAULT_REGION),
        "host": env.get(f"{ENV_PREFIX}HOST", DEFAULT_HOST),
        "port": port,
    }
