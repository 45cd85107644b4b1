"""Async IMAP session wrapping stdlib imaplib with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import imaplib

import structlog

from .config import SourceConfig
from .errors import ImapError, MailboxSelectError, SourceConnectionError
from .models import FetchedMessage
from .stream import Emit, FetchStream

logger = structlog.get_logger()


def _quote_mailbox(name: str) -> str:
    """Quote a mailbox name for use as an IMAP astring."""
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class ImapSession:
    """One IMAP connection to a mailbox source.

    All blocking ``imaplib`` operations are wrapped with
    ``asyncio.to_thread()`` to avoid blocking the event loop.  Sessions are
    not safe for concurrent use; the connection pool serialises access.
    """

    def __init__(self, config: SourceConfig) -> None:
        self._config = config
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None

    @property
    def connected(self) -> bool:
        return self._conn is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect and login."""
        try:
            self._conn = await asyncio.to_thread(self._connect_sync)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise SourceConnectionError(
                f"could not connect to {self._config.host}:{self._config.port}: {exc}"
            ) from exc
        logger.info("imap_connected", host=self._config.host, username=self._config.username)

    def _connect_sync(self) -> imaplib.IMAP4:
        if self._config.use_ssl:
            conn: imaplib.IMAP4 = imaplib.IMAP4_SSL(self._config.host, self._config.port)
        else:
            conn = imaplib.IMAP4(self._config.host, self._config.port)
        try:
            conn.login(self._config.username, self._config.password.get_secret_value())
        except imaplib.IMAP4.error:
            conn.shutdown()
            raise
        return conn

    async def disconnect(self) -> None:
        """Logout and drop the connection; errors are ignored."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await asyncio.to_thread(self._disconnect_sync, conn)
            logger.info("imap_disconnected", host=self._config.host)

    @staticmethod
    def _disconnect_sync(conn: imaplib.IMAP4) -> None:
        try:
            conn.logout()
        except (imaplib.IMAP4.error, OSError):
            pass

    async def is_alive(self) -> bool:
        """Check connection liveness with a NOOP command."""
        if self._conn is None:
            return False
        try:
            status, _ = await asyncio.to_thread(self._conn.noop)
            return status == "OK"
        except (imaplib.IMAP4.error, OSError):
            return False

    # ------------------------------------------------------------------
    # Mailbox commands
    # ------------------------------------------------------------------

    async def select(self, directory: str) -> None:
        """Select *directory* read-write; raises :class:`MailboxSelectError`."""
        conn = self._require_conn()
        try:
            status, data = await asyncio.to_thread(conn.select, _quote_mailbox(directory))
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailboxSelectError(f"could not open directory {directory!r}: {exc}") from exc
        if status != "OK":
            raise MailboxSelectError(f"could not open directory {directory!r}: {_detail(data)}")

    async def search_unseen(self) -> list[str]:
        """Return the UIDs of messages without the ``\\Seen`` flag."""
        conn = self._require_conn()
        try:
            status, data = await asyncio.to_thread(conn.uid, "SEARCH", None, "UNSEEN")
        except (imaplib.IMAP4.error, OSError) as exc:
            raise ImapError(f"could not search unread messages: {exc}") from exc
        if status != "OK":
            raise ImapError(f"could not search unread messages: {_detail(data)}")
        if not data or not data[0]:
            return []
        return [uid.decode() for uid in data[0].split()]

    def fetch(self, uids: list[str], *, maxsize: int = 10) -> FetchStream[FetchedMessage]:
        """Stream the full bodies of *uids*.

        Fetching ``RFC822`` implicitly marks each message ``\\Seen``.
        """
        conn = self._require_conn()

        async def produce(emit: Emit[FetchedMessage]) -> None:
            for uid in uids:
                raw_bytes = await asyncio.to_thread(self._fetch_one_sync, conn, uid)
                await emit(FetchedMessage(uid=uid, raw_bytes=raw_bytes))

        return FetchStream(produce, maxsize=maxsize)

    @staticmethod
    def _fetch_one_sync(conn: imaplib.IMAP4, uid: str) -> bytes:
        try:
            status, msg_data = conn.uid("FETCH", uid, "(RFC822)")
        except (imaplib.IMAP4.error, OSError) as exc:
            raise ImapError(f"could not fetch message {uid}: {exc}") from exc
        if status != "OK":
            raise ImapError(f"could not fetch message {uid}: {_detail(msg_data)}")
        for item in msg_data or []:
            if isinstance(item, tuple) and len(item) == 2:
                return item[1]
        raise ImapError(f"message {uid} vanished before it could be fetched")

    def _require_conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise ImapError("not connected")
        return self._conn


def _detail(data: list | None) -> str:
    if not data or data[0] is None:
        return "no response text"
    first = data[0]
    return first.decode(errors="replace") if isinstance(first, bytes) else str(first)
