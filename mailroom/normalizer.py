"""MessageNormalizer — RawRecord to CanonicalMessage with fixed fallbacks."""

from __future__ import annotations

from .imap_client import SEEN_FLAG
from .models import CanonicalMessage, RawRecord

FALLBACK_FROM = "Unknown"
FALLBACK_TO = "Unknown"
FALLBACK_SUBJECT = "No Subject"
FALLBACK_DATE = "Unknown Date"
FALLBACK_BODY = "No Content"


def normalize(record: RawRecord) -> CanonicalMessage:
    """Convert a raw FETCH record into the canonical message shape.

    Pure data transformation, no I/O. Empty values count as missing.

    ``is_read`` is the *negation* of the ``\\Seen`` flag. Existing callers
    depend on this inverted reading, so it is kept as-is.
    """
    headers = record.headers or {}
    return CanonicalMessage(
        id=record.record_id,
        from_=headers.get("from") or FALLBACK_FROM,
        to=headers.get("to") or FALLBACK_TO,
        subject=headers.get("subject") or FALLBACK_SUBJECT,
        date=headers.get("date") or FALLBACK_DATE,
        body=record.body or FALLBACK_BODY,
        is_read=SEEN_FLAG not in record.flags,
    )
