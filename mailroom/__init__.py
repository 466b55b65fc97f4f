"""Mailroom — send, browse and draft mail for a fixed set of accounts.

Public API re-exported here for convenience::

    from mailroom import MailService, MailroomConfig
"""

from .auth import AuthorizationGate
from .config import FolderConfig, ImapConfig, MailroomConfig, SmtpConfig, SupervisorConfig
from .drafts import DraftReconciler
from .errors import (
    ConnectionLost,
    DraftNotFound,
    ErrorKind,
    FolderNotFound,
    InvalidInput,
    MailroomError,
    ReconciliationPartialFailure,
    Timeout,
    Unauthorized,
    UpstreamFailure,
    classify_transport_error,
)
from .imap_client import AsyncImapClient, ImapSession
from .logging import setup_logging
from .mailbox import MailboxReader
from .models import (
    Account,
    Attachment,
    CanonicalMessage,
    DraftHandle,
    Envelope,
    RawRecord,
    SessionState,
)
from .normalizer import normalize
from .retry import ReconnectPolicy
from .service import MailService
from .smtp_client import SubmissionClient, build_message, render_message
from .supervisor import ConnectionSupervisor

__all__ = [
    "Account",
    "AsyncImapClient",
    "Attachment",
    "AuthorizationGate",
    "CanonicalMessage",
    "ConnectionLost",
    "ConnectionSupervisor",
    "DraftHandle",
    "DraftNotFound",
    "DraftReconciler",
    "Envelope",
    "ErrorKind",
    "FolderConfig",
    "FolderNotFound",
    "ImapConfig",
    "ImapSession",
    "InvalidInput",
    "MailService",
    "MailboxReader",
    "MailroomConfig",
    "MailroomError",
    "RawRecord",
    "ReconciliationPartialFailure",
    "ReconnectPolicy",
    "SessionState",
    "SmtpConfig",
    "SubmissionClient",
    "SupervisorConfig",
    "Timeout",
    "Unauthorized",
    "UpstreamFailure",
    "build_message",
    "classify_transport_error",
    "normalize",
    "render_message",
    "setup_logging",
]
