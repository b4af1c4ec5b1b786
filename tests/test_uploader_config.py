"""Tests for uploader configuration validation."""

import dataclasses

import pytest

from uploader.config import UploaderConfig
from uploader.exceptions import ConfigurationError


def test_valid_config_passes(uploader_config):
    """Test a complete configuration validates and chains."""
    assert uploader_config.validate() is uploader_config


@pytest.mark.parametrize('changes, message', [
    ({'url': ''}, '--url is required'),
    ({'url': 'ftp://coordinator.test/upload_request'}, 'http'),
    ({'pending_dir': None}, '--pending-dir is required'),
    ({'done_dir': None}, '--done-dir is required'),
    ({'max_retries': -1}, '--max-retries'),
    ({'timeout': 0}, '--timeout'),
])
def test_invalid_config(uploader_config, changes, message):
    """Test missing or invalid settings are reported before any I/O."""
    config = dataclasses.replace(uploader_config, **changes)

    with pytest.raises(ConfigurationError, match=message):
        config.validate()


def test_dirs_optional_for_single_upload():
    """Test single-file uploads need no directories."""
    config = UploaderConfig(url='https://coordinator.test/upload_request')

    assert config.validate(require_dirs=False) is config


def test_retry_config(uploader_config):
    """Test retry settings are exposed for the client."""
    config = dataclasses.replace(uploader_config, max_retries=5, retry_backoff_multiplier=1.5)

    assert config.get_retry_config() == {'max_retries': 5, 'retry_backoff_multiplier': 1.5}
