"""Poller that drives repeated scan cycles for one mailbox source."""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime

import structlog

from .config import PollerConfig
from .delivery import Uploader
from .errors import AggregateError, MaildavError, aggregate
from .models import Attachment, PollerStatus
from .pool import ConnectionPool, LockedSession
from .scanner import DirectoryScanner

logger = structlog.get_logger()


def _error_fields(error: Exception) -> dict[str, object]:
    if isinstance(error, AggregateError):
        return {"error": error.message, "causes": error.describe()}
    return {"error": str(error)}


def _summary(error: Exception) -> str:
    if isinstance(error, AggregateError):
        return f"{error.message}: " + "; ".join(error.describe())
    return str(error)


class Poller:
    """Poll the configured directories of one source until cancelled.

    The poller is :attr:`PollerStatus.STOPPED` until
    :meth:`start_polling` runs, and returns to it once the shutdown
    event fires.  A scan in progress always runs to completion; the
    event only prevents a new cycle from starting.
    """

    def __init__(
        self,
        config: PollerConfig,
        pool: ConnectionPool,
        scanner: DirectoryScanner | None = None,
    ) -> None:
        self.config = config
        self.status: PollerStatus = PollerStatus.STOPPED
        self.start_time: float = time.monotonic()
        self._pool = pool
        self._scanner = scanner or DirectoryScanner(config)
        self._log = logger.bind(source=config.source_name)
        self._last_poll_time: datetime | None = None
        self._last_error: str | None = None
        self._cycles: int = 0
        self._attachments_found: int = 0

    async def start_polling(self, shutdown_event: asyncio.Event, uploader: Uploader) -> None:
        """Run poll cycles until *shutdown_event* is set.

        Poll and upload errors are logged and never end the loop.
        """
        self.status = PollerStatus.RUNNING
        self._log.info("poller_started", interval_seconds=self.config.poll_interval_seconds)
        try:
            while not shutdown_event.is_set():
                try:
                    attachments, error = await self.poll()
                except Exception as exc:
                    self._last_error = _summary(exc)
                    attachments, error = [], exc
                if error is not None:
                    self._log.error("poll_failed", **_error_fields(error))

                try:
                    await uploader.upload_attachments(attachments)
                except Exception as exc:
                    self._last_error = _summary(exc)
                    self._log.error("upload_failed", **_error_fields(exc))

                self._log.info("poller_sleeping", seconds=self.config.poll_interval_seconds)
                try:
                    await asyncio.wait_for(
                        shutdown_event.wait(),
                        timeout=self.config.poll_interval_seconds,
                    )
                except TimeoutError:
                    self._log.info("poller_woke_up")
                else:
                    self._log.info("poller_cancelled")
        finally:
            self.status = PollerStatus.STOPPED
            self._log.info("poller_stopped")

    async def poll(self) -> tuple[list[Attachment], Exception | None]:
        """Run one scan cycle over every configured directory.

        Returns all attachments found plus an aggregate with one cause per
        failed directory, or the connection error if no session could be
        locked.
        """
        self._cycles += 1
        self._last_poll_time = datetime.now(UTC)

        try:
            session = await self._pool.connect_and_lock(self.config.source)
        except MaildavError as exc:
            self._last_error = _summary(exc)
            return [], exc

        async with session:
            self._log.info("scanning_directories")
            attachments, error = await self._scan_dirs(session)

        self._attachments_found += len(attachments)
        if error is not None:
            self._last_error = _summary(error)
        else:
            self._last_error = None
            self._log.info("scanning_successful", attachments=len(attachments))
        return attachments, error

    async def _scan_dirs(
        self, session: LockedSession
    ) -> tuple[list[Attachment], Exception | None]:
        attachments: list[Attachment] = []
        errors: list[Exception] = []
        for directory in self.config.source_directories:
            self._log.info("scanning_directory", directory=directory)
            found, error = await self._scanner.scan_dir(session, directory)
            if error is not None:
                errors.append(error)
            attachments.extend(found)
            self._log.info("directory_done", directory=directory)
        return attachments, aggregate("error scanning directories", errors)

    async def health_check(self) -> dict[str, object]:
        return {
            "source": self.config.source_name,
            "directories": list(self.config.source_directories),
            "last_poll_time": (
                self._last_poll_time.isoformat() if self._last_poll_time else None
            ),
            "cycles": self._cycles,
            "attachments_found": self._attachments_found,
            "last_error": self._last_error,
        }
