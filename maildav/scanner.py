"""Scan one mailbox directory for unread messages and extract attachments."""

from __future__ import annotations

import structlog

from .config import PollerConfig
from .errors import MaildavError, MessageError, aggregate
from .models import Attachment
from .parser import MessageParser
from .pool import LockedSession

logger = structlog.get_logger()


class DirectoryScanner:
    """Select a directory, find unseen messages and parse each one independently."""

    def __init__(self, config: PollerConfig, parser: MessageParser | None = None) -> None:
        self._config = config
        self._parser = parser or MessageParser(config)

    async def scan_dir(
        self, session: LockedSession, directory: str
    ) -> tuple[list[Attachment], Exception | None]:
        """Return the attachments found in *directory* and any error.

        A failed select or search ends the scan of this directory only.
        Message-level failures and a failed fetch are aggregated without
        stopping the remaining messages.
        """
        log = logger.bind(source=self._config.source_name, directory=directory)

        try:
            await session.select(directory)
        except MaildavError as exc:
            log.error("directory_open_failed", error=str(exc))
            return [], exc

        try:
            uids = await session.search_unseen()
        except MaildavError as exc:
            log.error("unread_search_failed", error=str(exc))
            return [], exc
        if not uids:
            log.info("no_unread_messages")
            return [], None

        log.info("unread_messages_found", count=len(uids))
        try:
            stream = session.fetch(uids)
        except MaildavError as exc:
            log.error("mail_fetch_failed", error=str(exc))
            return [], exc

        attachments: list[Attachment] = []
        errors: list[Exception] = []
        async with stream:
            async for fetched in stream:
                try:
                    found, part_error = self._parser.parse_message(fetched)
                except MessageError as exc:
                    log.error("message_parse_failed", uid=fetched.uid, error=str(exc))
                    errors.append(exc)
                    continue
                if part_error is not None:
                    log.error("message_parse_failed", uid=fetched.uid, error=str(part_error))
                    errors.append(part_error)
                attachments.extend(found)
            try:
                await stream.wait()
            except MaildavError as exc:
                log.error("mail_fetch_failed", error=str(exc))
                errors.append(exc)

        return attachments, aggregate(f"error scanning directory {directory!r}", errors)
