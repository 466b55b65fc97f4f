"""Shared test fixtures: an in-memory mail store, a recording submitter
and a fake sleep for the reconnect scheduler."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import SecretStr

from mailroom.config import MailroomConfig, SupervisorConfig
from mailroom.drafts import DraftReconciler
from mailroom.imap_client import DELETED_FLAG, PART_HEADERS, PART_TEXT
from mailroom.mailbox import MailboxReader
from mailroom.models import Account, Envelope, RawRecord
from mailroom.retry import ReconnectPolicy
from mailroom.service import MailService
from mailroom.smtp_client import build_message
from mailroom.supervisor import ConnectionSupervisor

INBOX = "INBOX"
SENT = "[Gmail]/Sent Mail"
DRAFTS = "[Gmail]/Drafts"


def _unquote(value: str) -> str:
    if value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value.replace('\\"', '"').replace("\\\\", "\\")


class FakeSession:
    """Stand-in for ImapSession backed by FakeMailStore."""

    def __init__(self, store: FakeMailStore, account: Account) -> None:
        self.store = store
        self.account = account
        self.selected_folder: str | None = None
        self.expunge_pending = False
        self.closed = False
        self.abandoned = False

    def _maybe_fail(self, op: str) -> None:
        exc = self.store.op_errors.pop(op, None)
        if exc is not None:
            raise exc

    def _messages(self) -> list[dict]:
        assert self.selected_folder is not None, "no folder selected"
        return self.store.folders[self.selected_folder]

    async def select_folder(self, name: str) -> bool:
        self._maybe_fail("select")
        self.store.log.append(("select", name))
        if name not in self.store.folders:
            return False
        self.selected_folder = name
        return True

    async def close_folder(self, *, expunge: bool) -> None:
        if self.selected_folder is None:
            return
        self.store.log.append(("close", expunge))
        if expunge:
            self.store.folders[self.selected_folder] = [
                m for m in self._messages() if DELETED_FLAG not in m["flags"]
            ]
        self.selected_folder = None
        self.expunge_pending = False

    async def list_folders(self) -> list[str]:
        self._maybe_fail("list")
        return list(self.store.folders)

    async def search(self, criteria) -> list[str]:
        self._maybe_fail("search")
        messages = self._messages()
        if criteria[0] == "ALL":
            return [m["uid"] for m in messages]
        _, name, value = criteria
        value = _unquote(value)
        return [m["uid"] for m in messages if (m["headers"] or {}).get(name.lower()) == value]

    async def fetch(self, record_ids, parts) -> list[RawRecord]:
        self._maybe_fail("fetch")
        by_uid = {m["uid"]: m for m in self._messages()}
        records = []
        for uid in record_ids:
            m = by_uid.get(uid)
            if m is None:
                continue
            records.append(RawRecord(
                record_id=uid,
                headers=dict(m["headers"]) if m["headers"] is not None and PART_HEADERS in parts else None,
                body=m["body"] if PART_TEXT in parts else None,
                flags=frozenset(m["flags"]),
            ))
        return records

    async def set_flag(self, record_id: str, flag: str) -> None:
        self._maybe_fail("store")
        self.store.log.append(("flag", record_id, flag))
        for m in self._messages():
            if m["uid"] == record_id:
                m["flags"].add(flag)
        if flag == DELETED_FLAG:
            self.expunge_pending = True

    async def noop(self) -> bool:
        return not self.closed and self.store.alive

    async def disconnect(self) -> None:
        self.closed = True
        self.store.log.append(("disconnect", self.account.address))

    def abandon(self) -> None:
        self.closed = True
        self.abandoned = True


class FakeMailStore:
    """In-memory folder store implementing the session-factory interface."""

    def __init__(self) -> None:
        self.folders: dict[str, list[dict]] = {INBOX: [], SENT: [], DRAFTS: []}
        self.sessions: list[FakeSession] = []
        self.connect_errors: list[BaseException] = []
        self.op_errors: dict[str, BaseException] = {}
        self.log: list[tuple] = []
        self.connects = 0
        self.alive = True
        self._next_uid = 1

    def add(self, folder: str, *, headers: dict[str, str] | None = None, body: str | None = None, flags=()) -> str:
        uid = str(self._next_uid)
        self._next_uid += 1
        self.folders.setdefault(folder, []).append(
            {"uid": uid, "headers": headers, "body": body, "flags": set(flags)}
        )
        return uid

    async def connect(self, account: Account) -> FakeSession:
        self.connects += 1
        self.log.append(("connect", account.address))
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        session = FakeSession(self, account)
        self.sessions.append(session)
        return session

    @property
    def live_sessions(self) -> list[FakeSession]:
        return [s for s in self.sessions if not s.closed]


class FakeSubmitter:
    """Records envelopes; draft submissions land in the store's drafts folder."""

    def __init__(self, store: FakeMailStore, drafts_folder: str = DRAFTS) -> None:
        self.store = store
        self.drafts_folder = drafts_folder
        self.submitted: list[Envelope] = []
        self.errors: list[BaseException] = []
        self._counter = 0

    async def submit(self, account: Account, envelope: Envelope) -> str:
        self.store.log.append(("submit", envelope.correlation_id))
        build_message(envelope)
        if self.errors:
            raise self.errors.pop(0)
        self._counter += 1
        message_id = envelope.correlation_id or f"<gen-{self._counter}@example.com>"
        self.submitted.append(envelope)
        if envelope.draft:
            self.store.add(
                self.drafts_folder,
                headers={
                    "message-id": message_id,
                    "from": envelope.sender,
                    "to": envelope.to,
                    "subject": envelope.subject,
                },
                body=envelope.body,
                flags={"\\Draft"},
            )
        return message_id


class FakeSleep:
    """Records requested delays and yields control instead of sleeping."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def account() -> Account:
    return Account(address="a@example.com", credential=SecretStr("app-password"))


@pytest.fixture
def store() -> FakeMailStore:
    return FakeMailStore()


@pytest.fixture
def submitter(store: FakeMailStore) -> FakeSubmitter:
    return FakeSubmitter(store)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def supervisor(store: FakeMailStore, fake_sleep: FakeSleep, account: Account) -> ConnectionSupervisor:
    return ConnectionSupervisor(
        store,
        ReconnectPolicy(interval_seconds=5.0),
        accounts=[account],
        sleep=fake_sleep,
    )


@pytest.fixture
def reader(supervisor: ConnectionSupervisor) -> MailboxReader:
    return MailboxReader(supervisor)


@pytest.fixture
def reconciler(
    supervisor: ConnectionSupervisor,
    reader: MailboxReader,
    submitter: FakeSubmitter,
) -> DraftReconciler:
    return DraftReconciler(supervisor, reader, submitter, drafts_folder=DRAFTS)


@pytest.fixture
def mailroom_config() -> MailroomConfig:
    return MailroomConfig(
        accounts={"a@example.com": "app-password", "b@example.com": "other-password"},
        supervisor=SupervisorConfig(reconnect_interval_seconds=5.0, operation_timeout_seconds=1.0),
    )


@pytest.fixture
def service(
    mailroom_config: MailroomConfig,
    store: FakeMailStore,
    submitter: FakeSubmitter,
    fake_sleep: FakeSleep,
) -> MailService:
    return MailService(mailroom_config, imap_client=store, submitter=submitter, sleep=fake_sleep)


def make_headers(
    *,
    sender: str | None = "sender@example.com",
    to: str | None = "a@example.com",
    subject: str | None = "Hello",
    date: str | None = "Mon, 02 Jun 2025 12:00:00 +0000",
    message_id: str | None = None,
) -> dict[str, str]:
    headers = {"from": sender, "to": to, "subject": subject, "date": date, "message-id": message_id}
    return {k: v for k, v in headers.items() if v is not None}
