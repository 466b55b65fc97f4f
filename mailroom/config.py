"""Mailroom configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
The account table is a JSON object, e.g.
``MAILROOM_ACCOUNTS='{"alice@example.com": "app-password"}'``.
"""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class ImapConfig(BaseSettings):
    """IMAP server connection settings."""

    model_config = {"env_prefix": "IMAP_"}

    host: str = Field(default="imap.gmail.com", description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use SSL/TLS connection")


class SmtpConfig(BaseSettings):
    """SMTP submission settings."""

    model_config = {"env_prefix": "SMTP_"}

    host: str = Field(default="smtp.gmail.com", description="SMTP server hostname")
    port: int = Field(default=465, description="SMTP server port")
    use_tls: bool = Field(default=True, description="Connect with implicit TLS")
    start_tls: bool = Field(default=False, description="Upgrade a plain connection with STARTTLS")


class SupervisorConfig(BaseSettings):
    """Session supervision settings."""

    model_config = {"env_prefix": "SUPERVISOR_"}

    reconnect_interval_seconds: float = Field(
        default=5.0,
        description="Fixed backoff between background reconnect attempts",
    )
    operation_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied to connect, select, search and fetch",
    )


class FolderConfig(BaseSettings):
    """Well-known folder names on the mail store."""

    model_config = {"env_prefix": "FOLDER_"}

    inbox: str = Field(default="INBOX", description="Inbox folder name")
    sent: str = Field(default="[Gmail]/Sent Mail", description="Sent mail folder name")
    drafts: str = Field(default="[Gmail]/Drafts", description="Drafts folder name")
    default_limit: int = Field(default=20, description="Messages returned when no limit is given")


class MailroomConfig(BaseSettings):
    """Top-level mailroom configuration.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "MAILROOM_"}

    accounts: dict[str, SecretStr] = Field(
        default_factory=dict,
        description="Authorized sender addresses mapped to their app passwords",
    )
    api_host: str = Field(default="0.0.0.0", description="HTTP bind address")
    api_port: int = Field(default=5000, description="HTTP port")
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    log_level: str = Field(default="INFO", description="Root log level")

    imap: ImapConfig = Field(default_factory=ImapConfig)
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    folders: FolderConfig = Field(default_factory=FolderConfig)
