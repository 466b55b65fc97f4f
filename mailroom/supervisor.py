"""ConnectionSupervisor — scoped IMAP sessions with background reconnect.

One slot per account holds an ``asyncio.Lock`` (the acquisition queue),
the current :class:`SessionState`, an optional warm session parked by the
reconnect loop, and the reconnect task itself.  All connects happen under
the slot lock, so a background reconnect racing a request-driven connect
still ends with a single live session.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from .errors import (
    TRANSPORT_ERRORS,
    FolderNotFound,
    MailroomError,
    classify_transport_error,
    is_connection_failure,
)
from .imap_client import ImapSession
from .models import Account, SessionState
from .retry import ReconnectPolicy, SleepFn

logger = structlog.get_logger()


class SessionFactory(Protocol):
    async def connect(self, account: Account) -> ImapSession: ...


@dataclass
class _AccountSlot:
    account: Account
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    state: SessionState = SessionState.DISCONNECTED
    parked: ImapSession | None = None
    reconnect_task: asyncio.Task[None] | None = None
    last_error: str | None = None


class ConnectionSupervisor:
    """Own the IMAP session lifecycle for every authorized account.

    Callers use :meth:`acquire` as an async context manager.  The session
    is closed on every exit path; a transport failure inside the block is
    re-raised as ``ConnectionLost`` or ``Timeout`` and a background
    reconnect is scheduled for the next caller.
    """

    def __init__(
        self,
        client: SessionFactory,
        policy: ReconnectPolicy | None = None,
        *,
        accounts: Iterable[Account] = (),
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._client = client
        self._policy = policy or ReconnectPolicy()
        self._sleep = sleep
        self._slots: dict[str, _AccountSlot] = {}
        for account in accounts:
            self._slot(account)

    def _slot(self, account: Account) -> _AccountSlot:
        slot = self._slots.get(account.address)
        if slot is None:
            slot = _AccountSlot(account=account)
            self._slots[account.address] = slot
        return slot

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def state(self, account: Account) -> SessionState:
        return self._slot(account).state

    def reconnect_task(self, account: Account) -> asyncio.Task[None] | None:
        """The pending background reconnect for *account*, if any."""
        task = self._slot(account).reconnect_task
        return task if task is not None and not task.done() else None

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {
            address: {
                "state": slot.state.value,
                "reconnect_pending": slot.reconnect_task is not None and not slot.reconnect_task.done(),
                "warm_session": slot.parked is not None,
                "last_error": slot.last_error,
            }
            for address, slot in sorted(self._slots.items())
        }

    # ------------------------------------------------------------------
    # Scoped acquisition
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def acquire(self, account: Account) -> AsyncIterator[ImapSession]:
        """Yield an exclusive session for *account*.

        Concurrent callers for the same account queue on the slot lock.
        """
        slot = self._slot(account)
        async with slot.lock:
            session = await self._open(slot)
            failure: MailroomError | None = None
            cancelled = False
            try:
                yield session
            except TRANSPORT_ERRORS as exc:
                failure = classify_transport_error(exc)
                raise failure from exc
            except MailroomError as exc:
                failure = exc
                raise
            except asyncio.CancelledError:
                cancelled = True
                raise
            finally:
                await self._release(slot, session, failure, cancelled=cancelled)

    async def select_folder(self, session: ImapSession, name: str) -> None:
        if not await session.select_folder(name):
            raise FolderNotFound(details={"folder": name})
        self._slot(session.account).state = SessionState.FOLDER_SELECTED

    async def close_folder(self, session: ImapSession, *, expunge: bool) -> None:
        await session.close_folder(expunge=expunge)
        self._slot(session.account).state = SessionState.CONNECTED

    async def _open(self, slot: _AccountSlot) -> ImapSession:
        if slot.parked is not None:
            session, slot.parked = slot.parked, None
            if await session.noop():
                slot.state = SessionState.CONNECTED
                self._cancel_reconnect(slot)
                logger.debug("imap_warm_session_reused", account=slot.account.address)
                return session
            session.abandon()

        slot.state = SessionState.CONNECTING
        try:
            session = await self._client.connect(slot.account)
        except TRANSPORT_ERRORS as exc:
            error = classify_transport_error(exc)
            if is_connection_failure(error):
                self._mark_lost(slot, error)
            else:
                slot.state = SessionState.DISCONNECTED
                slot.last_error = error.message
            raise error from exc

        slot.state = SessionState.CONNECTED
        slot.last_error = None
        self._cancel_reconnect(slot)
        return session

    async def _release(
        self,
        slot: _AccountSlot,
        session: ImapSession,
        failure: MailroomError | None,
        *,
        cancelled: bool,
    ) -> None:
        if failure is not None and is_connection_failure(failure):
            session.abandon()
            self._mark_lost(slot, failure)
            return

        if cancelled:
            # The worker thread may still be mid-exchange on this socket.
            session.abandon()
            slot.state = SessionState.DISCONNECTED
            logger.warning("imap_session_abandoned", account=slot.account.address)
            return

        try:
            if session.selected_folder is not None:
                await session.close_folder(expunge=session.expunge_pending)
            await session.disconnect()
        except TRANSPORT_ERRORS as exc:
            session.abandon()
            logger.warning(
                "imap_release_failed",
                account=slot.account.address,
                error=str(exc) or type(exc).__name__,
            )
        slot.state = SessionState.DISCONNECTED

    # ------------------------------------------------------------------
    # Background reconnect
    # ------------------------------------------------------------------

    def _mark_lost(self, slot: _AccountSlot, error: MailroomError) -> None:
        slot.state = SessionState.RECONNECTING
        slot.last_error = error.details.get("error", error.message)
        logger.warning(
            "imap_connection_lost",
            account=slot.account.address,
            kind=error.kind.value,
            error=slot.last_error,
        )
        self.schedule_reconnect(slot.account)

    def schedule_reconnect(self, account: Account) -> asyncio.Task[None]:
        """Start the reconnect loop for *account* unless one is already pending."""
        slot = self._slot(account)
        if slot.reconnect_task is not None and not slot.reconnect_task.done():
            return slot.reconnect_task
        slot.state = SessionState.RECONNECTING
        slot.reconnect_task = asyncio.create_task(
            self._reconnect_loop(slot),
            name=f"imap-reconnect-{account.address}",
        )
        logger.info(
            "imap_reconnect_scheduled",
            account=account.address,
            retry_in=self._policy.interval_seconds,
        )
        return slot.reconnect_task

    def _cancel_reconnect(self, slot: _AccountSlot) -> None:
        task = slot.reconnect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        slot.reconnect_task = None

    async def _reconnect_loop(self, slot: _AccountSlot) -> None:
        address = slot.account.address
        try:
            await self._sleep(self._policy.interval_seconds)
            async for attempt in self._policy.retrying(sleep=self._sleep, account=address):
                with attempt:
                    async with slot.lock:
                        if slot.parked is None:
                            slot.parked = await self._client.connect(slot.account)
                        slot.state = SessionState.CONNECTED
                        slot.last_error = None
            logger.info(
                "imap_reconnected",
                account=address,
                attempts=attempt.retry_state.attempt_number,
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            slot.state = SessionState.DISCONNECTED
            logger.exception("imap_reconnect_aborted", account=address)
        finally:
            if slot.reconnect_task is asyncio.current_task():
                slot.reconnect_task = None

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Cancel reconnect loops and log out of any parked sessions."""
        tasks = [s.reconnect_task for s in self._slots.values() if s.reconnect_task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for slot in self._slots.values():
            slot.reconnect_task = None
            if slot.parked is not None:
                parked, slot.parked = slot.parked, None
                await parked.disconnect()
            slot.state = SessionState.DISCONNECTED
        logger.info("supervisor_stopped", accounts=len(self._slots))
