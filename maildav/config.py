"""maildav configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
The poller list is supplied as JSON, e.g.::

    MAILDAV_POLLERS='[{"source_name": "invoices", "source": {...}, ...}]'
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings


class SourceConfig(BaseModel):
    """IMAP server connection settings for one mailbox source."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use SSL/TLS connection")
    username: str = Field(description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")

    @property
    def identity(self) -> tuple[str, int, str]:
        """Key under which the connection pool shares sessions."""
        return (self.host, self.port, self.username)


class DestinationConfig(BaseModel):
    """WebDAV server that receives extracted attachments."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Unique destination name")
    url: str = Field(description="Base URL of the WebDAV collection")
    username: str | None = Field(default=None, description="Basic-auth username")
    password: SecretStr | None = Field(default=None, description="Basic-auth password")
    timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")


class PollerConfig(BaseModel):
    """One source → destination polling job."""

    source_name: str = Field(description="Name used in logs for this source")
    source: SourceConfig
    source_directories: list[str] = Field(
        default_factory=lambda: ["INBOX"],
        description="Mailbox folders to scan, in order",
    )
    source_addresses: list[str] = Field(
        default_factory=list,
        description="Allowed From header values; empty accepts every sender",
    )
    destination: DestinationConfig
    destination_directory: str = Field(
        default="",
        description="Directory below the destination URL to upload into",
    )
    poll_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between poll cycles",
    )


class RetryConfig(BaseSettings):
    """Retry / backoff settings for uploads, driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, description="Maximum upload attempts per attachment")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=30.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class MaildavConfig(BaseSettings):
    """Root configuration for a maildav process."""

    model_config = {"env_prefix": "MAILDAV_"}

    pollers: list[PollerConfig] = Field(
        min_length=1,
        description="Polling jobs; only the first one is started",
    )
    health_port: int = Field(default=8080, description="Port for health probe endpoints")
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=True, description="Emit JSON log lines")

    retry: RetryConfig = Field(default_factory=RetryConfig)
