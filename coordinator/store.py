"""Object store access for existence checks and presigned write capabilities."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from common.constants import DEFAULT_UPLOAD_METHOD, METADATA_HEADER_PREFIX
from common.logging_config import get_logger
from coordinator.config import CoordinatorConfig
from coordinator.exceptions import StorageError

logger = get_logger(__name__)

NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass(frozen=True)
class PresignedRequest:
    """A signed request the holder can replay once to write one object."""
    url: str
    method: str
    expires_in: int
    headers: Dict[str, str] = field(default_factory=dict)


class ObjectStore(ABC):
    """Existence check and write-capability primitives of a blob store."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True if an object is stored at ``key``."""

    @abstractmethod
    def presign_put(
        self,
        key: str,
        *,
        content_length: int,
        content_type: str,
        metadata: Mapping[str, str],
        expires_in: int,
    ) -> PresignedRequest:
        """Build a capability that writes exactly one object at ``key``."""


class S3ObjectStore(ObjectStore):
    """S3 implementation backed by a boto3 client."""

    def __init__(self, client: Any, bucket: str):
        """
        Args:
            client: boto3 S3 client
            bucket: Bucket holding uploaded objects
        """
        self.client = client
        self.bucket = bucket

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in NOT_FOUND_CODES:
                return False
            raise StorageError(f"S3 error during exists {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"S3 error during exists {key}: {e}") from e

    def presign_put(
        self,
        key: str,
        *,
        content_length: int,
        content_type: str,
        metadata: Mapping[str, str],
        expires_in: int,
    ) -> PresignedRequest:
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "ContentLength": content_length,
            "ContentType": content_type,
            "Metadata": dict(metadata),
        }
        try:
            url = self.client.generate_presigned_url(
                ClientMethod="put_object",
                Params=params,
                ExpiresIn=expires_in,
                HttpMethod=DEFAULT_UPLOAD_METHOD,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 error during presign {key}: {e}") from e

        headers = {
            "content-length": str(content_length),
            "content-type": content_type,
        }
        for name, value in metadata.items():
            headers[METADATA_HEADER_PREFIX + name] = value

        return PresignedRequest(
            url=url,
            method=DEFAULT_UPLOAD_METHOD,
            expires_in=expires_in,
            headers=headers,
        )


def build_s3_store(config: CoordinatorConfig) -> S3ObjectStore:
    """
    Build the S3 object store for the configured bucket.

    Credentials come from the standard boto3 provider chain.
    """
    client = boto3.client(
        "s3",
        region_name=config.region,
        config=BotoConfig(signature_version="s3v4"),
    )
    logger.info(f"Using S3 bucket {config.bucket} in {config.region}")
    return S3ObjectStore(client, config.bucket)
