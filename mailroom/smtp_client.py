"""Message submission over SMTP using aiosmtplib."""

from __future__ import annotations

import email.utils
from email.message import EmailMessage

import aiosmtplib
import structlog

from .config import SmtpConfig
from .errors import InvalidInput
from .models import Account, Envelope

logger = structlog.get_logger()

DRAFT_HEADER = "X-GM-DRAFT"


def build_message(envelope: Envelope) -> EmailMessage:
    """Render *envelope* as an RFC 5322 message.

    The Message-ID is the envelope's correlation id when set, otherwise a
    fresh one in the sender's domain.
    """
    message = EmailMessage()
    message["From"] = envelope.sender
    if envelope.to:
        message["To"] = envelope.to
    message["Subject"] = envelope.subject
    message["Date"] = email.utils.formatdate(localtime=True)

    domain = envelope.sender.rpartition("@")[2] or None
    message["Message-ID"] = envelope.correlation_id or email.utils.make_msgid(domain=domain)
    if envelope.draft:
        message[DRAFT_HEADER] = "yes"

    message.set_content(envelope.body)

    if envelope.attachment is not None:
        maintype, _, subtype = envelope.attachment.content_type.partition("/")
        message.add_attachment(
            envelope.attachment.content,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=envelope.attachment.filename,
        )
    return message


def render_message(envelope: Envelope) -> EmailMessage:
    """Like :func:`build_message`, but reject unrenderable input as ``InvalidInput``.

    Header values holding CR or LF and malformed attachment types fail
    here, before any submission or store mutation is attempted.
    """
    try:
        return build_message(envelope)
    except (ValueError, TypeError) as exc:
        raise InvalidInput("The message could not be rendered.", details={"error": str(exc)}) from exc


class SubmissionClient:
    """Submit envelopes through the configured SMTP relay.

    Stateless: every call opens, authenticates and closes its own
    connection.  Transport errors propagate unclassified.
    """

    def __init__(self, config: SmtpConfig, *, timeout: float = 30.0) -> None:
        self._config = config
        self._timeout = timeout

    async def submit(self, account: Account, envelope: Envelope) -> str:
        """Send *envelope* as *account* and return its Message-ID."""
        message = render_message(envelope)
        await aiosmtplib.send(
            message,
            hostname=self._config.host,
            port=self._config.port,
            username=account.address,
            password=account.credential.get_secret_value(),
            use_tls=self._config.use_tls,
            start_tls=self._config.start_tls,
            timeout=self._timeout,
        )
        message_id = str(message["Message-ID"])
        logger.info(
            "message_submitted",
            sender=account.address,
            draft=envelope.draft,
            message_id=message_id,
            has_attachment=envelope.attachment is not None,
        )
        return message_id
