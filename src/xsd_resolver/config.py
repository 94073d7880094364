"""
Configuration for the schema resolver.
"""

import getpass
import os
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from xsd_resolver.errors import ConfigurationError

DEFAULT_PROXY_PORT = 3128


class Settings(BaseSettings):
    """
    Resolver configuration loaded from environment variables.

    Environment variables:
        DATA_ROOT: Directory holding the ``schemas/`` cache and ``collections/``.
                   Defaults to ~/.cache/xsd-resolver
        RESOLVER_PROXY: Optional HTTP proxy as "host" or "host:port" (port defaults to 3128)
        SCHEMA_CEILING: Maximum number of schemas considered for one document. Default: 500
        COLLECTION_TTL: Seconds a collection may go untouched before eviction. Default: 14 days
        AUTO_CREATE_COLLECTIONS: Create missing collections on save instead of refusing.
    """

    model_config = SettingsConfigDict(populate_by_name=True)

    data_root: Path = Field(
        default=Path.home() / ".cache" / "xsd-resolver",
        alias="DATA_ROOT",
        description="Root directory for the schema cache and collection records"
    )

    resolver_proxy: Optional[str] = Field(
        default=None,
        alias="RESOLVER_PROXY",
        description="HTTP proxy as 'host' or 'host:port'"
    )

    fetch_timeout: float = Field(
        default=30.0,
        alias="FETCH_TIMEOUT",
        description="Timeout in seconds for each schema request"
    )

    max_redirects: int = Field(
        default=5,
        alias="MAX_REDIRECTS",
        description="Redirects followed per schema location before giving up"
    )

    schema_ceiling: int = Field(
        default=500,
        alias="SCHEMA_CEILING",
        description="Schemas considered per document before resolution is refused"
    )

    lock_timeout: float = Field(
        default=10.0,
        alias="LOCK_TIMEOUT",
        description="Seconds to wait for a file lock"
    )

    collection_ttl: int = Field(
        default=14 * 24 * 60 * 60,  # one fortnight
        alias="COLLECTION_TTL",
        description="Collection eviction age in seconds"
    )

    auto_create_collections: bool = Field(
        default=False,
        alias="AUTO_CREATE_COLLECTIONS",
        description="Create collections implicitly when a document is saved"
    )

    tar_uid: int = Field(default=65534, alias="TAR_UID")
    tar_gid: int = Field(default=65534, alias="TAR_GID")
    tar_owner: str = Field(default="nobody", alias="TAR_OWNER")
    tar_group: str = Field(default="nogroup", alias="TAR_GROUP")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def schemas_dir(self) -> Path:
        """Flat, content-addressed schema cache shared by all collections."""
        return self.data_root / "schemas"

    @property
    def collections_dir(self) -> Path:
        return self.data_root / "collections"

    @property
    def proxy_url(self) -> Optional[str]:
        """Turn RESOLVER_PROXY into a URL httpx accepts, or None."""
        if not self.resolver_proxy:
            return None
        proxy = self.resolver_proxy.strip()
        if "://" in proxy:
            return proxy
        host, _, port = proxy.partition(":")
        return f"http://{host}:{port or DEFAULT_PROXY_PORT}"

    @property
    def tar_ownership(self) -> dict:
        return {
            "uid": self.tar_uid,
            "gid": self.tar_gid,
            "username": self.tar_owner,
            "groupname": self.tar_group,
        }


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, with keyword overrides taking precedence."""
    return Settings(**overrides)


def _whoami() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return str(os.getuid())


def check_directory(phrase: str, directory: Path) -> None:
    """Raise ConfigurationError unless *directory* is an existing, writable directory."""
    if not directory.exists():
        user = _whoami()
        raise ConfigurationError(f"{phrase} {directory} doesn't exist or is unreadable by this user ({user}).")
    if not directory.is_dir():
        raise ConfigurationError(f"{phrase} {directory} isn't a directory.")
    if not os.access(directory, os.R_OK):
        user = _whoami()
        raise ConfigurationError(f"{phrase} {directory} isn't readable by this user ({user}).")
    if not os.access(directory, os.W_OK):
        user = _whoami()
        raise ConfigurationError(f"{phrase} {directory} isn't writable by this user ({user}).")


def ensure_data_dirs(settings: Settings) -> Path:
    """Ensure the schema cache and collection directories exist and return the data root."""
    for directory in (settings.schemas_dir, settings.collections_dir):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Can't create storage directory {directory}: {e}") from e
    check_directory("The schema storage directory", settings.schemas_dir)
    check_directory("The collection storage directory", settings.collections_dir)
    return settings.data_root
