"""Connection pool handing out exclusively locked IMAP sessions per source."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from types import TracebackType

import structlog

from .config import SourceConfig
from .imap_client import ImapSession
from .models import FetchedMessage
from .stream import FetchStream

logger = structlog.get_logger()

SessionFactory = Callable[[SourceConfig], ImapSession]


class PooledConnection:
    """A reusable session bound to one source, guarded by an exclusive lock."""

    def __init__(self, source: SourceConfig, session: ImapSession) -> None:
        self.source = source
        self.session = session
        self.lock = asyncio.Lock()

    async def ensure_connected(self) -> None:
        """Connect, or reconnect if the session no longer answers NOOP."""
        if not self.session.connected:
            await self.session.connect()
            return
        if await self.session.is_alive():
            return
        logger.warning("imap_connection_lost", host=self.source.host, action="reconnect")
        await self.session.disconnect()
        await self.session.connect()


class LockedSession:
    """Handle to a pooled session held under its lock.

    Release with :meth:`unlock`, or use the handle as an async context
    manager so the lock is released on every exit path.
    """

    def __init__(self, connection: PooledConnection) -> None:
        self._connection = connection
        self._locked = True

    @property
    def locked(self) -> bool:
        return self._locked

    async def select(self, directory: str) -> None:
        await self._session().select(directory)

    async def search_unseen(self) -> list[str]:
        return await self._session().search_unseen()

    def fetch(self, uids: list[str]) -> FetchStream[FetchedMessage]:
        return self._session().fetch(uids)

    def unlock(self) -> None:
        """Return the connection to the pool.  Safe to call more than once."""
        if self._locked:
            self._locked = False
            self._connection.lock.release()

    def _session(self) -> ImapSession:
        if not self._locked:
            raise RuntimeError("session used after unlock")
        return self._connection.session

    async def __aenter__(self) -> LockedSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.unlock()


class ConnectionPool:
    """Keyed, lazily created sessions with mutually exclusive access per source.

    Distinct sources lock independently; the key is
    :attr:`SourceConfig.identity`.  Construct one pool per process and pass
    it to every poller.
    """

    def __init__(self, session_factory: SessionFactory = ImapSession) -> None:
        self._session_factory = session_factory
        self._connections: dict[tuple[str, int, str], PooledConnection] = {}
        self._guard = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._connections)

    async def _get_or_create(self, source: SourceConfig) -> PooledConnection:
        async with self._guard:
            connection = self._connections.get(source.identity)
            if connection is None:
                connection = PooledConnection(source, self._session_factory(source))
                self._connections[source.identity] = connection
                logger.debug("pooled_connection_created", host=source.host, username=source.username)
            return connection

    async def connect_and_lock(self, source: SourceConfig) -> LockedSession:
        """Lock the pooled session for *source*, connecting it if needed.

        Blocks until the current holder unlocks.  Raises
        :class:`~maildav.errors.SourceConnectionError` if (re)connecting
        fails; the lock is released in that case.
        """
        connection = await self._get_or_create(source)
        await connection.lock.acquire()
        try:
            await connection.ensure_connected()
        except BaseException:
            connection.lock.release()
            raise
        return LockedSession(connection)

    async def close(self) -> None:
        """Disconnect every pooled session."""
        async with self._guard:
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            async with connection.lock:
                await connection.session.disconnect()
