import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from medialib.server.config import ServerConfig
from medialib.server.constants import DEFAULT_MAX_UPLOAD_SIZE, BucketContext


@pytest.fixture(autouse=True)
def clean_env():
    """Keep MEDIALIB_* variables of the test runner out of these tests."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("MEDIALIB_")}
    with patch.dict(os.environ, env, clear=True):
        yield


def test_server_config_defaults() -> None:
    """Test loading configuration with defaults."""
    config = ServerConfig.load()

    assert config.host == "0.0.0.0"
    assert config.port == 8080
    assert config.max_upload_size == DEFAULT_MAX_UPLOAD_SIZE
    assert config.storage.backend == "local"
    assert config.buckets.names() == {
        BucketContext.INTERNAL: "media",
        BucketContext.COMPANY: "companies-media",
    }
    assert config.db_url == f"sqlite+aiosqlite:///{Path('storage') / 'medialib.db'}"


def test_server_config_load_from_file(tmp_path: Path) -> None:
    """Test loading configuration from a YAML file."""
    config_file = tmp_path / "config.yaml"
    data = {
        "host": "127.0.0.1",
        "port": 9090,
        "database_url": "sqlite+aiosqlite:///:memory:",
        "storage": {
            "backend": "s3",
            "s3_endpoint_url": "http://minio:9000",
            "public_base_url": "https://cdn.example.com",
        },
        "buckets": {"internal": "acme-media"},
    }
    with open(config_file, "w") as f:
        yaml.safe_dump(data, f)

    config = ServerConfig.load(config_file)

    assert config.host == "127.0.0.1"
    assert config.port == 9090
    assert config.db_url == "sqlite+aiosqlite:///:memory:"
    assert config.storage.backend == "s3"
    assert config.storage.s3_endpoint_url == "http://minio:9000"
    assert config.storage.s3_region == "us-east-1"
    assert config.buckets.internal == "acme-media"
    assert config.buckets.company == "companies-media"


def test_server_config_file_from_env(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.safe_dump({"port": 7000}))

    with patch.dict(os.environ, {"MEDIALIB_CONFIG": str(config_file)}):
        config = ServerConfig.load()
    assert config.port == 7000


def test_server_config_missing_file(tmp_path: Path) -> None:
    config = ServerConfig.load(tmp_path / "missing.yaml")
    assert config.port == 8080


def test_server_config_env_var_override(tmp_path: Path) -> None:
    """Test that environment variables override the config file."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.safe_dump({"host": "127.0.0.1", "port": 9090}))

    with patch.dict(
        os.environ,
        {
            "MEDIALIB_HOST": "1.2.3.4",
            "MEDIALIB_PORT": "5555",
            "MEDIALIB_MAX_UPLOAD_SIZE": "1024",
            "MEDIALIB_STORAGE_BACKEND": "memory",
            "MEDIALIB_S3_REGION": "eu-west-1",
        },
    ):
        config = ServerConfig.load(config_file)

    assert config.host == "1.2.3.4"
    assert config.port == 5555
    assert config.max_upload_size == 1024
    assert config.storage.backend == "memory"
    assert config.storage.s3_region == "eu-west-1"


def test_server_config_unknown_backend() -> None:
    with patch.dict(os.environ, {"MEDIALIB_STORAGE_BACKEND": "ftp"}):
        with pytest.raises(ValueError, match="ftp"):
            ServerConfig.load()


def test_server_config_default_page_size(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.safe_dump({"default_page_size": 25}))
    assert ServerConfig.load(config_file).default_page_size == 25

    with patch.dict(os.environ, {"MEDIALIB_DEFAULT_PAGE_SIZE": "10"}):
        assert ServerConfig.load(config_file).default_page_size == 10

    with patch.dict(os.environ, {"MEDIALIB_DEFAULT_PAGE_SIZE": "0"}):
        with pytest.raises(ValueError, match="default_page_size"):
            ServerConfig.load()
