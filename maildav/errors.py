"""Exception hierarchy and ordered error aggregation."""

from __future__ import annotations

from collections.abc import Sequence


class MaildavError(Exception):
    """Base class for all maildav errors."""


class SourceConnectionError(MaildavError):
    """Connecting or logging in to a mailbox source failed."""


class ImapError(MaildavError):
    """An IMAP command failed or returned a non-OK status."""


class MailboxSelectError(ImapError):
    """A mailbox directory could not be selected (e.g. it does not exist)."""


class MessageError(MaildavError):
    """A single message could not be processed."""


class MessageDecodeError(MessageError):
    """The MIME structure of a message is unreadable."""


class SenderRejectedError(MessageError):
    """The ``From`` header is not on the configured allow-list."""

    def __init__(self, sender: str) -> None:
        super().__init__(f"message from invalid source address {sender!r}")
        self.sender = sender


class AttachmentPartError(MessageError):
    """An attachment-dispositioned part lacks the headers needed to extract it."""


class DeliveryError(MaildavError):
    """An attachment could not be handed to its destination."""


class AggregateError(ExceptionGroup):
    """Ordered collection of independent failure causes.

    Always holds at least one cause; use :func:`aggregate` to collapse an
    empty list to ``None``.
    """

    def __new__(cls, message: str, causes: Sequence[Exception]) -> AggregateError:
        return super().__new__(cls, message, list(causes))

    def derive(self, excs: Sequence[Exception]) -> AggregateError:
        return AggregateError(self.message, excs)

    @property
    def causes(self) -> tuple[Exception, ...]:
        return self.exceptions

    def describe(self) -> list[str]:
        """Flatten nested causes into ``"<type>: <message>"`` lines for logging."""
        lines: list[str] = []
        for cause in self.exceptions:
            if isinstance(cause, AggregateError):
                lines.extend(f"{cause.message}: {line}" for line in cause.describe())
            else:
                lines.append(f"{type(cause).__name__}: {cause}")
        return lines


def aggregate(message: str, causes: Sequence[Exception]) -> AggregateError | None:
    """Return an :class:`AggregateError` over *causes*, or ``None`` if there are none."""
    if not causes:
        return None
    return AggregateError(message, causes)
