"""
Configuration management for the Solr repository layer.

Every section reads its own environment variables; ``Config.from_env`` loads
an optional .env file first so its values are visible to all sections.
"""

import os
from pathlib import Path
from typing import Optional, Tuple, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, validator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
MAX_ROWS_LIMIT = 10000


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name) or default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if not value:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


class SOLRConfig(BaseModel):
    """Connection settings of the Solr instance and its default collection."""

    base_url: str = Field(
        default="http://localhost:8983/solr",
        description="Base URL for the SOLR instance",
    )
    collection: str = Field(description="Collection used by entities without a core")
    username: Optional[str] = Field(default=None, description="Basic auth user")
    password: Optional[str] = Field(default=None, description="Basic auth password")
    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_rows: int = Field(
        default=1000,
        description="Documents fetched per request by find_all",
    )

    @validator("base_url")
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("SOLR base URL must start with http:// or https://")
        return v.rstrip("/")

    @validator("collection")
    def validate_collection(cls, v: str) -> str:
        if "/" in v:
            raise ValueError("Collection name must not contain '/'")
        return v

    @validator("timeout")
    def validate_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @validator("max_rows")
    def validate_max_rows(cls, v: int) -> int:
        if not 0 < v <= MAX_ROWS_LIMIT:
            raise ValueError(f"Max rows must be between 1 and {MAX_ROWS_LIMIT}")
        return v

    @property
    def auth(self) -> Optional[Tuple[str, str]]:
        """Basic auth credentials, only when both user and password are set."""
        if self.username and self.password:
            return (self.username, self.password)
        return None

    def collection_url(self, collection: Optional[str] = None) -> str:
        return f"{self.base_url}/{collection or self.collection}/"

    @classmethod
    def from_env(cls) -> "SOLRConfig":
        collection = _env_str("SOLR_COLLECTION", "")
        if not collection:
            raise ValueError("SOLR_COLLECTION environment variable is required")
        return cls(
            base_url=_env_str("SOLR_BASE_URL", "http://localhost:8983/solr"),
            collection=collection,
            username=_env_str("SOLR_USERNAME"),
            password=_env_str("SOLR_PASSWORD"),
            timeout=_env_int("SOLR_TIMEOUT", 30),
            verify_ssl=_env_bool("SOLR_VERIFY_SSL", True),
            max_rows=_env_int("SOLR_MAX_ROWS", 1000),
        )


class RepositoryConfig(BaseModel):
    """Query lookup and write behaviour of repositories."""

    named_queries_file: Optional[Path] = Field(
        default=None,
        description="Properties file with '<Entity>.<method>=<query>' entries",
    )
    commit_on_write: bool = Field(
        default=True,
        description="Commit after repository writes when no transaction is active",
    )

    @validator("named_queries_file")
    def validate_named_queries_file(cls, v: Optional[Path]) -> Optional[Path]:
        if v is not None and not v.is_file():
            raise ValueError(f"Named queries file does not exist: {v}")
        return v

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        named_queries_file = _env_str("SOLR_NAMED_QUERIES_FILE")
        return cls(
            named_queries_file=Path(named_queries_file) if named_queries_file else None,
            commit_on_write=_env_bool("SOLR_COMMIT_ON_WRITE", True),
        )


class MCPConfig(BaseModel):
    """Settings of the MCP server exposing repository query methods."""

    host: str = Field(default="localhost", description="Host to bind the MCP server to")
    port: int = Field(default=8080, description="Port to bind the MCP server to")
    log_level: str = Field(default="INFO", description="Logging level")

    @validator("port")
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @validator("log_level")
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Log level must be one of: {', '.join(LOG_LEVELS)}")
        return level

    @classmethod
    def from_env(cls) -> "MCPConfig":
        return cls(
            host=_env_str("MCP_SERVER_HOST", "localhost"),
            port=_env_int("MCP_SERVER_PORT", 8080),
            log_level=_env_str("LOG_LEVEL", "INFO"),
        )


class Config(BaseModel):
    """Complete configuration: Solr connection, repositories and MCP server."""

    solr: SOLRConfig
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    mcp: MCPConfig = Field(default_factory=MCPConfig)

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "Config":
        """
        Load configuration from environment variables and optional .env file.

        Args:
            env_file: Path to a .env file. Defaults to ``.env`` in the current
                directory; a missing file is ignored.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        env_path = Path(env_file) if env_file is not None else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        return cls(
            solr=SOLRConfig.from_env(),
            repository=RepositoryConfig.from_env(),
            mcp=MCPConfig.from_env(),
        )


def get_config(env_file: Optional[Union[str, Path]] = None) -> Config:
    """Load the configuration, see ``Config.from_env``."""
    return Config.from_env(env_file)
