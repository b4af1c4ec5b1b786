"""Shared pytest fixtures for all tests."""

import base64
from datetime import datetime, timezone

import bcrypt
import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from common.constants import METADATA_HEADER_PREFIX
from common.protocol import FileMetadata
from coordinator.config import CoordinatorConfig
from coordinator.main import create_app
from coordinator.store import ObjectStore, PresignedRequest
from uploader.classifier import MediaClassifier
from uploader.config import UploaderConfig


PASSWORD = 'correct horse battery staple'
STORE_HOST = 'store.test'
COORDINATOR_URL = 'http://coordinator.test/upload_request'


class InMemoryObjectStore(ObjectStore):
    """Object store double that keeps objects in a dict and mints fake capabilities."""

    def __init__(self):
        self.objects = {}
        self.exists_calls = []
        self.presigned = []

    def exists(self, key):
        self.exists_calls.append(key)
        return key in self.objects

    def presign_put(self, key, *, content_length, content_type, metadata, expires_in):
        headers = {
            'content-length': str(content_length),
            'content-type': content_type,
        }
        for name, value in metadata.items():
            headers[METADATA_HEADER_PREFIX + name] = value
        request = PresignedRequest(
            url=f'https://{STORE_HOST}/{key}?X-Amz-Expires={expires_in}',
            method='PUT',
            expires_in=expires_in,
            headers=headers,
        )
        self.presigned.append(key)
        return request

    def put(self, request: httpx.Request) -> httpx.Response:
        """Apply a capability request the way the real store would."""
        body = request.read()
        if int(request.headers['content-length']) != len(body):
            return httpx.Response(400, text='IncompleteBody')
        key = request.url.path.lstrip('/')
        self.objects[key] = {
            'body': body,
            'content_type': request.headers.get('content-type'),
            'metadata': {
                name.lower()[len(METADATA_HEADER_PREFIX):]: value
                for name, value in request.headers.items()
                if name.lower().startswith(METADATA_HEADER_PREFIX)
            },
        }
        return httpx.Response(200)


def basic_auth_header(username: str, password: str) -> dict:
    token = base64.b64encode(f'{username}:{password}'.encode()).decode()
    return {'Authorization': f'Basic {token}'}


def sniff_for_tests(prefix: bytes) -> str:
    """Tiny signature-based detector so client tests do not depend on libmagic."""
    if prefix.startswith(b'\xff\xd8\xff'):
        return 'image/jpeg'
    if prefix.startswith(b'\x89PNG'):
        return 'image/png'
    if prefix.startswith(b'ID3'):
        return 'audio/mpeg'
    if prefix[4:8] == b'ftyp':
        return 'video/mp4'
    if not prefix:
        return 'application/x-empty'
    return 'text/plain'


@pytest.fixture(scope='session')
def password_hash():
    return bcrypt.hashpw(PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()


@pytest.fixture
def coordinator_config(password_hash):
    return CoordinatorConfig(
        bucket='photos-bucket',
        password_hash=password_hash,
        path_prefix='photos',
    )


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def app(coordinator_config, store):
    return create_app(coordinator_config, store)


@pytest.fixture
def api_client(app):
    """FastAPI test client for the coordinator."""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return basic_auth_header('uploader', PASSWORD)


@pytest.fixture
def sample_metadata():
    return FileMetadata(
        id='ab' * 32,
        name='a.jpg',
        mtime=datetime(2020, 1, 1, tzinfo=timezone.utc),
        size=512000,
        content_type='image/jpeg',
    )


@pytest.fixture
def pending_dir(tmp_path):
    path = tmp_path / 'pending'
    path.mkdir()
    return path


@pytest.fixture
def done_dir(tmp_path):
    return tmp_path / 'done'


@pytest.fixture
def uploader_config(pending_dir, done_dir):
    return UploaderConfig(
        url=COORDINATOR_URL,
        username='uploader',
        password=PASSWORD,
        pending_dir=pending_dir,
        done_dir=done_dir,
        max_retries=0,
    )


@pytest.fixture
def classifier():
    return MediaClassifier(detector=sniff_for_tests)


def write_jpeg(path, capture_time=None, size=(32, 16)):
    """Write a small JPEG, optionally carrying an EXIF DateTime tag."""
    image = Image.new('RGB', size, color='red')
    if capture_time is not None:
        exif = Image.Exif()
        exif[0x0132] = capture_time
        exif[0x010F] = 'Acme'
        exif[0x0110] = 'Shooter 3000'
        image.save(path, 'JPEG', exif=exif)
    else:
        image.save(path, 'JPEG')
    return path


@pytest.fixture
def sample_jpeg(pending_dir):
    return write_jpeg(pending_dir / 'a.jpg', capture_time='2020:01:01 00:00:00')


@pytest.fixture
def routed_transport(api_client, store):
    """
    Transport sending coordinator requests to the FastAPI app and
    capability requests to the in-memory store.
    """
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.host == STORE_HOST:
            return store.put(request)

        headers = {
            name: value
            for name, value in request.headers.items()
            if name.lower() in ('authorization', 'content-type')
        }
        response = api_client.request(
            request.method,
            request.url.path,
            headers=headers,
            content=request.read(),
        )
        return httpx.Response(response.status_code, content=response.content)

    transport = httpx.MockTransport(handler)
    transport.calls = calls
    return transport


@pytest.fixture
def jpeg_writer():
    return write_jpeg


@pytest.fixture
def make_auth_headers():
    return basic_auth_header


@pytest.fixture
def password():
    return PASSWORD
