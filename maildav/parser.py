"""MIME parsing: sender policy and attachment extraction for one message."""

from __future__ import annotations

import codecs
import email
import email.errors
import email.policy
import re
from collections.abc import Iterator
from email.message import EmailMessage

import structlog

from .config import PollerConfig
from .errors import (
    AttachmentPartError,
    MessageDecodeError,
    SenderRejectedError,
    aggregate,
)
from .models import Attachment, DestinationInfo, FetchedMessage

logger = structlog.get_logger()

# Defects after which the part layout of a message cannot be trusted.
_FATAL_DEFECTS: tuple[type[email.errors.MessageDefect], ...] = (
    email.errors.NoBoundaryInMultipartDefect,
    email.errors.StartBoundaryNotFoundDefect,
    email.errors.MultipartInvariantViolationDefect,
    email.errors.InvalidMultipartContentTransferEncodingDefect,
)

# Raised by the header value parser on some malformed structured headers.
_HEADER_PARSE_ERRORS = (ValueError, TypeError, IndexError, AttributeError)

_FOLDING = re.compile(r"\r?\n[ \t]+")


class MessageParser:
    """Turn raw RFC 822 bytes into :class:`Attachment` records for one poller."""

    def __init__(self, config: PollerConfig) -> None:
        self._config = config
        self._destination = DestinationInfo(
            config=config.destination,
            directory=config.destination_directory,
        )

    def parse_message(
        self, fetched: FetchedMessage
    ) -> tuple[list[Attachment], Exception | None]:
        """Extract the attachments of *fetched*.

        Returns the attachments that could be extracted together with an
        aggregate of per-part failures (or ``None``).  Raises
        :class:`MessageDecodeError` if the message is unreadable and
        :class:`SenderRejectedError` if the sender is not allowed.
        """
        msg = self._read(fetched)
        self._check_sender(msg)

        if not msg.is_multipart():
            logger.warning("message_not_multipart", uid=fetched.uid)
            return [], None

        try:
            parts = list(_iter_parts(msg))
        except _HEADER_PARSE_ERRORS as exc:
            raise MessageDecodeError(
                f"could not read parts of message {fetched.uid}: {type(exc).__name__}: {exc}"
            ) from exc

        attachments: list[Attachment] = []
        errors: list[Exception] = []
        for part in parts:
            try:
                attachment = self._parse_part(part)
            except AttachmentPartError as exc:
                logger.error("attachment_part_invalid", uid=fetched.uid, error=str(exc))
                errors.append(exc)
                continue
            if attachment is not None:
                attachments.append(attachment)

        return attachments, aggregate(
            f"error parsing parts of message {fetched.uid}", errors
        )

    def parse_msg_part(self, part: EmailMessage) -> Attachment | None:
        """Return the attachment carried by *part*, or ``None`` if it is not one."""
        disposition = part.get_content_disposition()
        if disposition is None:
            # Body text or inline content without a disposition: not an error.
            logger.debug("message_part_without_disposition", source=self._config.source_name)
            return None
        if disposition != "attachment":
            return None

        filename = part["Content-Disposition"].params.get("filename")
        if not filename:
            raise AttachmentPartError("unable to handle attachment without filename in header")
        encoding = str(part.get("Content-Transfer-Encoding", "")).strip()
        if not encoding:
            raise AttachmentPartError(
                f"unable to handle attachment {filename!r} without "
                '"Content-Transfer-Encoding" header'
            )

        content = _decoded_content(part)
        if content is None:
            raise AttachmentPartError(f"attachment {filename!r} has no readable body")

        logger.info(
            "attachment_extracted",
            source=self._config.source_name,
            filename=filename,
            size=len(content),
        )
        return Attachment(filename=filename, content=content, destination=self._destination)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_part(self, part: EmailMessage) -> Attachment | None:
        try:
            return self.parse_msg_part(part)
        except _HEADER_PARSE_ERRORS as exc:
            raise AttachmentPartError(
                f"malformed part headers: {type(exc).__name__}: {exc}"
            ) from exc

    def _read(self, fetched: FetchedMessage) -> EmailMessage:
        if not fetched.raw_bytes.strip():
            raise MessageDecodeError(f"message {fetched.uid} is empty")
        try:
            msg = email.message_from_bytes(fetched.raw_bytes, policy=email.policy.default)
            self._check_structure(fetched, msg)
        except _HEADER_PARSE_ERRORS as exc:
            raise MessageDecodeError(
                f"could not read message {fetched.uid}: {type(exc).__name__}: {exc}"
            ) from exc
        return msg  # type: ignore[return-value]

    def _check_structure(self, fetched: FetchedMessage, msg: EmailMessage) -> None:
        for part in msg.walk():
            fatal = [d for d in part.defects if isinstance(d, _FATAL_DEFECTS)]
            if fatal:
                raise MessageDecodeError(
                    f"could not read message {fetched.uid}: {type(fatal[0]).__name__}"
                )
            charset = part.get_content_charset()
            if charset is not None and not _known_charset(charset):
                logger.warning("unknown_charset", uid=fetched.uid, charset=charset)

    def _check_sender(self, msg: EmailMessage) -> None:
        allowed = self._config.source_addresses
        if not allowed:
            return
        address = _raw_header(msg, "From")
        logger.info("checking_source_address", address=address)
        if address not in allowed:
            raise SenderRejectedError(address)
        logger.info("valid_source_address", address=address)


def _raw_header(msg: EmailMessage, name: str) -> str:
    """First *name* header as received: unfolded, but neither decoded nor parsed."""
    for key, value in msg.raw_items():
        if key.lower() == name.lower():
            return _FOLDING.sub(" ", str(value)).strip()
    return ""


def _iter_parts(msg: EmailMessage) -> Iterator[EmailMessage]:
    """Yield parts in encounter order, descending into nested multiparts."""
    for part in msg.iter_parts():
        if part.get_content_maintype() == "multipart" and part.get_content_disposition() is None:
            yield from _iter_parts(part)
        else:
            yield part


def _decoded_content(part: EmailMessage) -> bytes | None:
    """Transfer-decoded bytes of *part*; attached messages are re-serialised."""
    if part.get_content_type() == "message/rfc822":
        inner = part.get_payload()
        if isinstance(inner, list) and inner:
            return inner[0].as_bytes()
        return None
    payload = part.get_payload(decode=True)
    return payload if isinstance(payload, bytes) else None


def _known_charset(charset: str) -> bool:
    try:
        codecs.lookup(charset)
    except LookupError:
        return False
    return True
