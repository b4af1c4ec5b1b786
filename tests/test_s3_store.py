"""Tests for the S3 object store."""

from urllib.parse import parse_qs, urlparse

import boto3
import pytest
from botocore.config import Config as BotoConfig
from botocore.stub import Stubber

from coordinator.exceptions import StorageError
from coordinator.store import S3ObjectStore, build_s3_store


BUCKET = 'photos-bucket'
KEY = 'photos/2020-01-01-00_00_00-abc-a.jpg'


@pytest.fixture
def s3_client():
    return boto3.client(
        's3',
        region_name='us-east-1',
        aws_access_key_id='testing',
        aws_secret_access_key='testing',
        config=BotoConfig(signature_version='s3v4'),
    )


@pytest.fixture
def s3_store(s3_client):
    return S3ObjectStore(s3_client, BUCKET)


def test_exists_true(s3_client, s3_store):
    """Test a successful HEAD means the object exists."""
    with Stubber(s3_client) as stubber:
        stubber.add_response('head_object', {'ContentLength': 10}, {'Bucket': BUCKET, 'Key': KEY})
        assert s3_store.exists(KEY) is True
        stubber.assert_no_pending_responses()


@pytest.mark.parametrize('code', ['404', 'NoSuchKey', 'NotFound'])
def test_exists_false_on_not_found(s3_client, s3_store, code):
    """Test not-found errors mean the object is absent."""
    with Stubber(s3_client) as stubber:
        stubber.add_client_error('head_object', service_error_code=code, http_status_code=404)
        assert s3_store.exists(KEY) is False


def test_exists_raises_on_other_errors(s3_client, s3_store):
    """Test access errors are not mistaken for absence."""
    with Stubber(s3_client) as stubber:
        stubber.add_client_error('head_object', service_error_code='403', http_status_code=403)
        with pytest.raises(StorageError):
            s3_store.exists(KEY)


def test_presign_put(s3_store):
    """Test the presigned request targets the key and expires as asked."""
    request = s3_store.presign_put(
        KEY,
        content_length=512000,
        content_type='image/jpeg',
        metadata={'filename': 'a.jpg', 'mtime': '2020-01-01T00:00:00Z'},
        expires_in=60,
    )

    parsed = urlparse(request.url)
    query = parse_qs(parsed.query)
    assert parsed.path.endswith(KEY)
    assert query['X-Amz-Expires'] == ['60']
    assert query['X-Amz-Algorithm'] == ['AWS4-HMAC-SHA256']
    assert 'X-Amz-Signature' in query
    assert request.method == 'PUT'
    assert request.expires_in == 60
    assert request.headers == {
        'content-length': '512000',
        'content-type': 'image/jpeg',
        'x-amz-meta-filename': 'a.jpg',
        'x-amz-meta-mtime': '2020-01-01T00:00:00Z',
    }


def test_build_s3_store(coordinator_config):
    """Test the store is bound to the configured bucket."""
    store = build_s3_store(coordinator_config)

    assert isinstance(store, S3ObjectStore)
    assert store.bucket == 'photos-bucket'
    assert store.client.meta.region_name == 'us-east-1'
