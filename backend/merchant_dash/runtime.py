# Overview: Runs the sync engine on a dedicated event-loop thread and bridges Flask requests into it.

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Awaitable, TypeVar

from .auth import AuthSession, AuthUser
from .remote.base import RemoteStore
from .services.merchant_service import resolve_merchant
from .sync.session import DashboardSession, SyncSettings


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CALL_TIMEOUT = 30.0


class DashboardRuntime:
    """
    Owns the event loop, the injected RemoteStore and the open dashboard
    sessions (one per merchant).

    Request handlers are synchronous; call() schedules a coroutine on the
    loop thread and waits for its result. Sessions stay open between
    requests so their caches keep following the change feed, and are all
    closed when the signed-in user changes.
    """

    def __init__(self, remote: RemoteStore, settings: SyncSettings, auth: AuthSession | None = None,
                 *, call_timeout: float = DEFAULT_CALL_TIMEOUT):
        self.remote = remote
        self.settings = settings
        self.auth = auth
        self.call_timeout = call_timeout
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._sessions: dict[str, DashboardSession] = {}
        self._opening: dict[str, asyncio.Future] = {}
        self._start_lock = threading.Lock()
        self._unsubscribe_auth = auth.on_session_change(self._on_session_change) if auth is not None else None

    # -------------------------------------------------------------------------
    # Loop thread
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._start_lock:
            if self.running:
                return
            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def run():
                asyncio.set_event_loop(loop)
                loop.call_soon(ready.set)
                loop.run_forever()

            self._loop = loop
            self._thread = threading.Thread(target=run, name="dashboard-runtime", daemon=True)
            self._thread.start()
            ready.wait()
            logger.info("Dashboard runtime started")

    def call(self, coro: Awaitable[T], timeout: float | None = None) -> T:
        """Runs coro on the loop thread; exceptions propagate to the caller."""
        self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout if timeout is not None else self.call_timeout)

    def stop(self) -> None:
        if not self.running:
            return
        try:
            self.call(self._close_all())
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)
            self._loop.close()
            self._thread = None
            self._loop = None
            if self._unsubscribe_auth is not None:
                self._unsubscribe_auth()
                self._unsubscribe_auth = None
            shutdown = getattr(self.remote, "shutdown", None)
            if shutdown is not None:
                shutdown()
            logger.info("Dashboard runtime stopped")

    # -------------------------------------------------------------------------
    # Sessions (loop thread)
    # -------------------------------------------------------------------------

    async def session_for(self, merchant_id: str) -> DashboardSession:
        """Open (or reuse) the session for a merchant; concurrent callers share one open()."""
        session = self._sessions.get(merchant_id)
        if session is not None and session.is_open:
            return session
        pending = self._opening.get(merchant_id)
        if pending is None:
            pending = asyncio.ensure_future(self._open(merchant_id))
            self._opening[merchant_id] = pending
            pending.add_done_callback(lambda _: self._opening.pop(merchant_id, None))
        return await asyncio.shield(pending)

    async def _open(self, merchant_id: str) -> DashboardSession:
        session = DashboardSession(self.remote, merchant_id, self.settings)
        await session.open()
        self._sessions[merchant_id] = session
        return session

    async def merchant_for(self, user: AuthUser) -> dict:
        return await resolve_merchant(self.remote, user.id)

    async def close_session(self, merchant_id: str) -> None:
        session = self._sessions.pop(merchant_id, None)
        if session is not None:
            await session.close()

    async def _close_all(self) -> None:
        sessions, self._sessions = list(self._sessions.values()), {}
        await asyncio.gather(*(s.close() for s in sessions), return_exceptions=True)

    @property
    def open_sessions(self) -> list[str]:
        return [mid for mid, s in self._sessions.items() if s.is_open]

    def _on_session_change(self, user: AuthUser | None) -> None:
        # Sign-out or a different user: nothing cached for the old identity may leak
        if self._loop is None or not self.running:
            return
        logger.info("Auth session changed; closing %d dashboard session(s)", len(self._sessions))
        if threading.current_thread() is self._thread:
            self._loop.create_task(self._close_all())
            return
        asyncio.run_coroutine_threadsafe(self._close_all(), self._loop).result(self.call_timeout)
