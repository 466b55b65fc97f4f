"""Value objects passed between mailroom components."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class SessionState(str, Enum):
    """Lifecycle state of the supervised IMAP session for one account."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FOLDER_SELECTED = "folder_selected"
    RECONNECTING = "reconnecting"


class Account(BaseModel):
    """An authorized sender and the credential used to open sessions."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(description="Login address of the account")
    credential: SecretStr = Field(description="App password, never logged")


class RawRecord(BaseModel):
    """One message as returned by an IMAP FETCH.

    Any part the server did not return is ``None``; filling in
    fallbacks is the normalizer's job.
    """

    record_id: str = Field(description="Store-assigned UID")
    headers: dict[str, str] | None = Field(
        default=None,
        description="Header fields keyed by lowercase name",
    )
    body: str | None = Field(default=None, description="Decoded text body")
    flags: frozenset[str] = Field(default_factory=frozenset, description="IMAP flags")


class CanonicalMessage(BaseModel):
    """Normalized message returned to callers; every field is always set."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    from_: str = Field(alias="from")
    to: str
    subject: str
    date: str
    body: str
    is_read: bool = Field(alias="isRead")


class DraftHandle(BaseModel):
    """A saved draft, identified by its correlation id (the Message-ID)."""

    model_config = ConfigDict(frozen=True)

    correlation_id: str = Field(description="Message-ID kept stable across updates")
    to: str = ""
    subject: str = ""
    body: str = ""


class Attachment(BaseModel):
    """An uploaded file to attach to an outgoing message."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class Envelope(BaseModel):
    """Everything the submission client needs to build one message."""

    sender: str
    to: str = ""
    subject: str = ""
    body: str = ""
    attachment: Attachment | None = None
    draft: bool = False
    correlation_id: str | None = Field(
        default=None,
        description="Message-ID to reuse; a new one is generated when unset",
    )
