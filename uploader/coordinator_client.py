"""HTTP client for the upload coordinator and for capability transfers."""

import logging
import time
import uuid
from typing import BinaryIO, Iterator, Optional

import httpx
from pydantic import ValidationError

from common.constants import DEFAULT_UPLOAD_METHOD, TRANSFER_CHUNK_SIZE
from common.logging_config import get_logger
from common.protocol import FileMetadata, UploadDecision, UploadStatus
from uploader.config import UploaderConfig
from uploader.exceptions import CoordinatorError, LocalFileError, TransferError


def iter_exact(stream: BinaryIO, size: int, chunk_size: int = TRANSFER_CHUNK_SIZE) -> Iterator[bytes]:
    """
    Yield exactly ``size`` bytes from ``stream`` in chunks.

    Raises:
        LocalFileError: If the stream ends before ``size`` bytes were read
    """
    remaining = size
    while remaining > 0:
        chunk = stream.read(min(chunk_size, remaining))
        if not chunk:
            raise LocalFileError(
                f"file shrank during upload: expected {size} bytes, read {size - remaining}"
            )
        remaining -= len(chunk)
        yield chunk


class CoordinatorClient:
    """HTTP client for the coordinator with retry logic, plus the capability transfer."""

    def __init__(
        self,
        config: UploaderConfig,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize coordinator client.

        Args:
            config: Uploader configuration
            logger: Logger for request events
            transport: Optional httpx transport (tests route requests in-process)
        """
        self.config = config
        self.logger = logger or get_logger(__name__)
        self.session = httpx.Client(timeout=config.timeout, transport=transport)
        self.auth = httpx.BasicAuth(config.username, config.password)
        self.request_id = None

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> 'CoordinatorClient':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _calculate_upload_timeout(self, file_size: int) -> float:
        """
        Calculate timeout for upload based on file size.

        Args:
            file_size: File size in bytes

        Returns:
            Timeout in seconds (configured base + 0.1s per MB)
        """
        size_mb = file_size / (1024 * 1024)
        return self.config.timeout + size_mb * 0.1

    def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Make HTTP request with retry logic on 5xx errors and network failures.

        Only used for coordinator requests, which have no side effects.

        Args:
            method: HTTP method
            url: Request URL
            **kwargs: Additional arguments to pass to httpx request

        Returns:
            HTTP response object

        Raises:
            CoordinatorError: If max retries exceeded on network failures
        """
        retry_config = self.config.get_retry_config()
        max_retries = retry_config['max_retries']
        backoff = retry_config['retry_backoff_multiplier']

        last_exception = None

        self.request_id = str(uuid.uuid4())
        kwargs.setdefault('headers', {})['X-Request-ID'] = self.request_id

        for attempt in range(max_retries + 1):
            try:
                response = self.session.request(method, url, **kwargs)

                self.logger.debug(
                    f"Response received: {method} {url} status={response.status_code} [request_id={self.request_id}]"
                )

                if response.status_code >= 500 and attempt < max_retries:
                    delay = backoff ** attempt
                    self.logger.warning(
                        f"Server error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {url} status={response.status_code}, retrying in {delay}s [request_id={self.request_id}]"
                    )
                    time.sleep(delay)
                    continue

                return response

            except httpx.TransportError as e:
                last_exception = e
                if attempt < max_retries:
                    delay = backoff ** attempt
                    self.logger.warning(
                        f"Network error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {url} error={type(e).__name__}, retrying in {delay}s [request_id={self.request_id}]"
                    )
                    time.sleep(delay)

        self.logger.error(
            f"Network error (max retries exceeded): {method} {url} error={last_exception} [request_id={self.request_id}]"
        )
        raise CoordinatorError(f"cannot reach coordinator at {url}: {last_exception}")

    def _parse_decision(self, response: httpx.Response) -> UploadDecision:
        try:
            return UploadDecision.model_validate_json(response.content)
        except ValidationError as e:
            raise CoordinatorError(
                f"malformed coordinator response (status {response.status_code}): {e}",
                status_code=response.status_code
            ) from e

    def request_upload(self, meta: FileMetadata) -> UploadDecision:
        """
        Ask the coordinator whether and where to upload a file.

        Args:
            meta: File metadata to submit

        Returns:
            UploadDecision with status ``ok`` or ``skip``

        Raises:
            CoordinatorError: On transport failure, a status other than 200/409,
                a malformed body, or an ``error`` decision
        """
        response = self._request_with_retry(
            'POST',
            self.config.url,
            json=meta.to_wire(),
            auth=self.auth
        )

        if response.status_code == httpx.codes.CONFLICT:
            if not response.content.strip():
                return UploadDecision.skip()
            decision = self._parse_decision(response)
            if decision.status != UploadStatus.SKIP:
                raise CoordinatorError(
                    f"unexpected {decision.status.value!r} decision with status 409",
                    status_code=response.status_code
                )
            return decision

        if response.status_code != httpx.codes.OK:
            raise CoordinatorError(
                f"non-200 status code: {response.status_code}",
                status_code=response.status_code
            )

        decision = self._parse_decision(response)
        if decision.status == UploadStatus.ERROR:
            raise CoordinatorError(f"coordinator error: {decision.error}", status_code=response.status_code)
        return decision

    def transfer(self, stream: BinaryIO, size: int, decision: UploadDecision) -> None:
        """
        Write exactly ``size`` bytes of ``stream`` using an upload capability.

        Args:
            stream: Binary stream positioned at the start of the file
            size: Number of bytes to send
            decision: ``ok`` decision carrying url, method and headers

        Raises:
            TransferError: On transport failure or a non-200 response, or a capability
                whose url or headers cannot be encoded
            LocalFileError: If the stream holds fewer than ``size`` bytes
        """
        method = decision.method or DEFAULT_UPLOAD_METHOD
        headers = {
            name: value
            for name, value in (decision.headers or {}).items()
            if name.lower() != 'content-length'
        }
        headers['Content-Length'] = str(size)

        try:
            response = self.session.request(
                method,
                decision.url,
                headers=headers,
                content=iter_exact(stream, size),
                timeout=self._calculate_upload_timeout(size)
            )
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as e:
            raise TransferError(f"uploadFile: {type(e).__name__}: {e}") from e

        if response.status_code != httpx.codes.OK:
            body = response.text
            raise TransferError(
                f"uploadFile: non-200 status code: {response.status_code}\n{body}",
                status_code=response.status_code,
                body=body
            )
