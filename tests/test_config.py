"""Tests for ServiceConfig and RuntimeContext."""

import logging
import os

import pytest

from engine.config import ServiceConfig
from engine.runtime import RuntimeContext


class TestServiceConfig:
    """Test defaults, validation and loading."""

    def test_defaults(self):
        config = ServiceConfig.default()

        assert config.validate()
        assert config.max_upload_mb == 100
        assert config.max_upload_bytes == 100 * 1024 * 1024
        assert config.retention_seconds == 24 * 3600
        assert config.sweep_interval_seconds == 3600
        assert config.processing_timeout_seconds == 300
        assert config.max_merge_files == 10
        assert config.port == 5000

    def test_from_env(self):
        config = ServiceConfig.from_env({
            'UPLOAD_DIR': '/srv/uploads',
            'MAX_UPLOAD_MB': '25',
            'RETENTION_HOURS': '1.5',
            'PROCESSING_TIMEOUT_SECONDS': '60',
            'ALLOWED_ORIGINS': 'http://localhost:3000, https://example.com',
            'LOG_LEVEL': 'debug',
            'PORT': '8080',
        })

        assert config.upload_dir == '/srv/uploads'
        assert config.max_upload_mb == 25
        assert config.retention_hours == 1.5
        assert config.processing_timeout_seconds == 60
        assert config.allowed_origins == ['http://localhost:3000', 'https://example.com']
        assert config.log_level == 'debug'
        assert config.port == 8080
        assert config.validate()

    def test_from_env_ignores_blank_values(self):
        config = ServiceConfig.from_env({'MAX_UPLOAD_MB': '  '})
        assert config.max_upload_mb == 100

    def test_from_env_rejects_bad_numbers(self):
        with pytest.raises(ValueError, match="MAX_MERGE_FILES"):
            ServiceConfig.from_env({'MAX_MERGE_FILES': 'ten'})

    def test_from_dict_warns_about_unknown_keys(self, caplog):
        with caplog.at_level(logging.WARNING, logger="engine.config"):
            config = ServiceConfig.from_dict({'port': 9000, 'colour': 'blue'})

        assert config.port == 9000
        assert "colour" in caplog.text

    def test_round_trip(self):
        config = ServiceConfig(upload_dir="/tmp/x", retention_hours=2.0)
        assert ServiceConfig.from_dict(config.to_dict()) == config

    @pytest.mark.parametrize("overrides", [
        {'max_upload_mb': 0},
        {'retention_hours': 0},
        {'sweep_interval_seconds': -1},
        {'processing_timeout_seconds': 0},
        {'max_merge_files': 1},
        {'port': 70000},
        {'log_level': 'LOUD'},
        {'upload_dir': ''},
    ])
    def test_validate_rejects(self, overrides):
        assert not ServiceConfig(**overrides).validate()


class TestRuntimeContext:
    """Test the runtime's artifact directory handling."""

    def test_invalid_config_is_refused(self):
        with pytest.raises(ValueError):
            RuntimeContext(ServiceConfig(max_upload_mb=0))

    def test_download_url(self, tmp_path):
        runtime = RuntimeContext(ServiceConfig(upload_dir=str(tmp_path)))
        assert runtime.download_url(str(tmp_path / "merged-1-abc.pdf")) == "/uploads/merged-1-abc.pdf"

    def test_scope_creates_directory(self, tmp_path):
        runtime = RuntimeContext(ServiceConfig(upload_dir=str(tmp_path / "nested" / "uploads")))
        with runtime.scope() as scope:
            assert os.path.isdir(runtime.artifact_dir)
            assert os.path.dirname(scope.new_path("x", ".pdf")) == runtime.artifact_dir
