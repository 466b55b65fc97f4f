"""Async IMAP client wrapping stdlib imaplib with asyncio.to_thread.

Every blocking call runs in a worker thread and is bounded by the
configured operation timeout.  When a call times out the worker thread
is left to finish on its own; the session is abandoned and never reused.
"""

from __future__ import annotations

import asyncio
import email.parser
import email.policy
import imaplib
import re
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

import structlog

from .config import ImapConfig
from .errors import InvalidInput
from .models import Account, RawRecord

logger = structlog.get_logger()

T = TypeVar("T")

HEADER_FIELDS = ("From", "To", "Subject", "Date")
PART_HEADERS = f"BODY.PEEK[HEADER.FIELDS ({' '.join(f.upper() for f in HEADER_FIELDS)})]"
PART_TEXT = "BODY.PEEK[TEXT]"

DELETED_FLAG = "\\Deleted"
SEEN_FLAG = "\\Seen"

_UID_RE = re.compile(rb"UID (\d+)")
_FLAGS_RE = re.compile(rb"FLAGS \(([^)]*)\)")
_LIST_RE = re.compile(rb'\((?P<flags>[^)]*)\) (?P<delim>"(?:[^"\\]|\\.)*"|NIL) (?P<name>.+)')
_FORBIDDEN_RE = re.compile(r"[\r\n\x00]")

_header_parser = email.parser.BytesHeaderParser(policy=email.policy.default)


def quote(value: str) -> str:
    """Quote a string argument for the IMAP wire format.

    CR, LF and NUL cannot appear inside a quoted string; a value holding
    one is rejected with ``InvalidInput`` before it reaches the socket.
    """
    if _FORBIDDEN_RE.search(value):
        raise InvalidInput("IMAP arguments may not contain line breaks or NUL.", details={"value": value})
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def criteria_all() -> tuple[str, ...]:
    return ("ALL",)


def criteria_header(name: str, value: str) -> tuple[str, ...]:
    return ("HEADER", name, quote(value))


def parse_headers(raw: bytes) -> dict[str, str]:
    """Parse a header block into a lowercase-name dict (first value wins)."""
    message = _header_parser.parsebytes(raw)
    headers: dict[str, str] = {}
    for name, value in message.items():
        headers.setdefault(name.lower(), str(value).strip())
    return headers


def parse_fetch_response(uid: str, data: Sequence[Any]) -> RawRecord | None:
    """Build a RawRecord from one ``UID FETCH`` response.

    Returns ``None`` when the server returned nothing for *uid*.
    """
    meta = b""
    headers: dict[str, str] | None = None
    body: str | None = None

    for item in data:
        if item is None:
            continue
        if isinstance(item, tuple):
            prefix, literal = item[0], item[1]
            meta += b" " + prefix
            if b"HEADER.FIELDS" in prefix.upper():
                headers = parse_headers(literal)
            elif b"BODY[TEXT]" in prefix.upper():
                body = literal.decode("utf-8", errors="replace")
        else:
            meta += b" " + item

    if not meta.strip():
        return None

    uid_match = _UID_RE.search(meta)
    flags_match = _FLAGS_RE.search(meta)
    flags = frozenset(flags_match.group(1).decode().split()) if flags_match else frozenset()
    return RawRecord(
        record_id=uid_match.group(1).decode() if uid_match else uid,
        headers=headers,
        body=body,
        flags=flags,
    )


def parse_list_response(data: Sequence[Any]) -> list[str]:
    """Extract folder names from a ``LIST`` response."""
    names: list[str] = []
    for line in data:
        if isinstance(line, tuple):
            # Literal folder name: (b'(\\HasNoChildren) "/" {5}', b'Notes')
            names.append(line[1].decode())
            continue
        if not line:
            continue
        match = _LIST_RE.match(line)
        if not match:
            continue
        name = match.group("name").decode()
        if name.startswith('"') and name.endswith('"'):
            name = name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
        names.append(name)
    return names


class ImapSession:
    """One logged-in IMAP connection bound to a single account.

    Tracks the selected folder and whether deletions are waiting for an
    expunge, so the supervisor can close it correctly on release.
    """

    def __init__(self, conn: imaplib.IMAP4, account: Account, timeout: float) -> None:
        self._conn = conn
        self._timeout = timeout
        self.account = account
        self.selected_folder: str | None = None
        self.expunge_pending: bool = False
        self.closed: bool = False
        self._in_flight = False

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.wait_for(asyncio.to_thread(self._call, fn, *args), timeout=self._timeout)

    def _call(self, fn: Callable[..., T], *args: Any) -> T:
        # Runs in the worker thread; cleared only when the call really returns.
        self._in_flight = True
        try:
            return fn(*args)
        finally:
            self._in_flight = False

    # ------------------------------------------------------------------
    # Folder operations
    # ------------------------------------------------------------------

    async def select_folder(self, name: str) -> bool:
        """Select *name*; returns ``False`` when the server refuses it."""
        status, _ = await self._run(self._conn.select, quote(name))
        if status != "OK":
            return False
        self.selected_folder = name
        return True

    async def close_folder(self, *, expunge: bool) -> None:
        """Leave the selected folder, expunging ``\\Deleted`` records if asked.

        CLOSE always expunges, UNSELECT never does.
        """
        if self.selected_folder is None:
            return
        if expunge:
            await self._run(self._conn.close)
        else:
            await self._run(self._conn.unselect)
        self.selected_folder = None
        self.expunge_pending = False

    async def list_folders(self) -> list[str]:
        status, data = await self._run(self._conn.list)
        if status != "OK":
            raise imaplib.IMAP4.error(f"LIST failed: {status}")
        return parse_list_response(data)

    # ------------------------------------------------------------------
    # Message operations
    # ------------------------------------------------------------------

    async def search(self, criteria: Sequence[str]) -> list[str]:
        """Return the UIDs matching *criteria* in server order."""
        status, data = await self._run(self._conn.uid, "SEARCH", None, *criteria)
        if status != "OK":
            raise imaplib.IMAP4.error(f"SEARCH failed: {status}")
        if not data or not data[0]:
            return []
        return [uid.decode() for uid in data[0].split()]

    async def fetch(self, record_ids: Sequence[str], parts: Sequence[str]) -> list[RawRecord]:
        """Fetch *parts* plus UID and FLAGS for each id, one round trip per id."""
        return await self._run(self._fetch_sync, list(record_ids), list(parts))

    def _fetch_sync(self, record_ids: list[str], parts: list[str]) -> list[RawRecord]:
        items = " ".join(["UID", "FLAGS", *parts])
        records: list[RawRecord] = []
        for uid in record_ids:
            status, data = self._conn.uid("FETCH", uid, f"({items})")
            if status != "OK" or not data:
                continue
            record = parse_fetch_response(uid, data)
            if record is not None:
                records.append(record)
        logger.debug("imap_fetch_complete", requested=len(record_ids), fetched=len(records))
        return records

    async def set_flag(self, record_id: str, flag: str) -> None:
        status, _ = await self._run(self._conn.uid, "STORE", record_id, "+FLAGS", f"({flag})")
        if status != "OK":
            raise imaplib.IMAP4.error(f"STORE {flag} failed for UID {record_id}")
        if flag == DELETED_FLAG:
            self.expunge_pending = True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def noop(self) -> bool:
        """Check connection liveness with a NOOP command."""
        if self.closed:
            return False
        try:
            status, _ = await self._run(self._conn.noop)
            return status == "OK"
        except (imaplib.IMAP4.error, OSError, TimeoutError):
            return False

    async def disconnect(self) -> None:
        """Logout; errors on the way out are ignored."""
        if self.closed:
            return
        self.closed = True
        try:
            await self._run(self._conn.logout)
        except (imaplib.IMAP4.error, OSError, TimeoutError):
            pass
        logger.info("imap_disconnected", account=self.account.address)

    def abandon(self) -> None:
        """Drop a session whose transport failed without talking to the server.

        The socket is shut down locally unless a timed-out or cancelled
        worker thread still holds it.
        """
        was_closed, self.closed = self.closed, True
        self.selected_folder = None
        self.expunge_pending = False
        if was_closed or self._in_flight:
            return
        try:
            self._conn.shutdown()
        except OSError as exc:
            logger.debug("imap_socket_shutdown_failed", account=self.account.address, error=str(exc))


class AsyncImapClient:
    """Factory for :class:`ImapSession` objects against one IMAP server."""

    def __init__(self, config: ImapConfig, *, timeout: float = 30.0) -> None:
        self._config = config
        self._timeout = timeout

    async def connect(self, account: Account) -> ImapSession:
        """Open a connection and login as *account*."""
        conn = await asyncio.wait_for(
            asyncio.to_thread(self._connect_sync, account),
            timeout=self._timeout,
        )
        logger.info("imap_connected", host=self._config.host, account=account.address)
        return ImapSession(conn, account, self._timeout)

    def _connect_sync(self, account: Account) -> imaplib.IMAP4:
        conn: imaplib.IMAP4
        if self._config.use_ssl:
            conn = imaplib.IMAP4_SSL(self._config.host, self._config.port, timeout=self._timeout)
        else:
            conn = imaplib.IMAP4(self._config.host, self._config.port, timeout=self._timeout)
        conn.login(account.address, account.credential.get_secret_value())
        return conn
