"""Server configuration.

Settings are read from a YAML file (the path given to ``ServerConfig.load`` or
named by ``MEDIALIB_CONFIG``), then overridden by ``MEDIALIB_*`` environment
variables.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from mashumaro.mixins.yaml import DataClassYAMLMixin

from .constants import DEFAULT_MAX_UPLOAD_SIZE, DEFAULT_PAGE_SIZE, BucketContext

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("memory", "local", "s3")


@dataclass
class StorageConfig(DataClassYAMLMixin):
    backend: str = "local"
    """One of memory, local or s3."""

    root: str = "storage"
    """Directory used by the local backend and the default database."""

    public_base_url: str = ""

    s3_endpoint_url: str = ""
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    s3_region: str = "us-east-1"


@dataclass
class BucketsConfig(DataClassYAMLMixin):
    """Object store bucket name of each storage context."""

    internal: str = "media"
    company: str = "companies-media"

    def names(self) -> dict[BucketContext, str]:
        return {
            BucketContext.INTERNAL: self.internal,
            BucketContext.COMPANY: self.company,
        }


@dataclass
class ServerConfig(DataClassYAMLMixin):
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    database_url: str = ""
    """SQLAlchemy URL. Defaults to a SQLite file in the storage root."""

    max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE
    default_page_size: int = DEFAULT_PAGE_SIZE
    reconcile_interval: float = 0
    """Seconds between background reconciliation sweeps; 0 disables them."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    buckets: BucketsConfig = field(default_factory=BucketsConfig)

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{Path(self.storage.root) / 'medialib.db'}"

    def _apply_env(self) -> None:
        env = os.environ
        if host := env.get("MEDIALIB_HOST"):
            self.host = host
        if port := env.get("MEDIALIB_PORT"):
            self.port = int(port)
        if log_level := env.get("MEDIALIB_LOG_LEVEL"):
            self.log_level = log_level
        if database_url := env.get("MEDIALIB_DATABASE_URL"):
            self.database_url = database_url
        if max_upload_size := env.get("MEDIALIB_MAX_UPLOAD_SIZE"):
            self.max_upload_size = int(max_upload_size)
        if page_size := env.get("MEDIALIB_DEFAULT_PAGE_SIZE"):
            self.default_page_size = int(page_size)
        if backend := env.get("MEDIALIB_STORAGE_BACKEND"):
            self.storage.backend = backend
        if root := env.get("MEDIALIB_STORAGE_ROOT"):
            self.storage.root = root
        if public_base_url := env.get("MEDIALIB_PUBLIC_BASE_URL"):
            self.storage.public_base_url = public_base_url
        if endpoint := env.get("MEDIALIB_S3_ENDPOINT_URL"):
            self.storage.s3_endpoint_url = endpoint
        if access_key := env.get("MEDIALIB_S3_ACCESS_KEY_ID"):
            self.storage.s3_access_key_id = access_key
        if secret_key := env.get("MEDIALIB_S3_SECRET_ACCESS_KEY"):
            self.storage.s3_secret_access_key = secret_key
        if region := env.get("MEDIALIB_S3_REGION"):
            self.storage.s3_region = region

    @classmethod
    def load(cls, config_file: str | Path | None = None) -> "ServerConfig":
        """Load the configuration file, if any, and apply environment overrides."""
        path = config_file or os.getenv("MEDIALIB_CONFIG")
        config = cls()
        if path and Path(path).exists():
            logger.info(f"Loading config from {path}")
            config = cls.from_yaml(Path(path).read_text())
        elif path:
            logger.warning(f"Config file {path} not found, using defaults")
        config._apply_env()
        if config.storage.backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown storage backend {config.storage.backend!r}, "
                f"expected one of {', '.join(STORAGE_BACKENDS)}"
            )
        if config.default_page_size < 1:
            raise ValueError(
                f"default_page_size must be at least 1, got {config.default_page_size}"
            )
        return config
