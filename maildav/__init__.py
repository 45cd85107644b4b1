"""maildav: poll IMAP mailboxes and deliver attachments to WebDAV.

Public API re-exported here for convenience::

    from maildav import ConnectionPool, Poller, WebDavUploader
"""

from .config import (
    DestinationConfig,
    MaildavConfig,
    PollerConfig,
    RetryConfig,
    SourceConfig,
)
from .delivery import Uploader
from .errors import (
    AggregateError,
    AttachmentPartError,
    DeliveryError,
    ImapError,
    MailboxSelectError,
    MaildavError,
    MessageDecodeError,
    MessageError,
    SenderRejectedError,
    SourceConnectionError,
    aggregate,
)
from .imap_client import ImapSession
from .logging import setup_logging
from .models import Attachment, DestinationInfo, FetchedMessage, HealthStatus, PollerStatus
from .parser import MessageParser
from .poller import Poller
from .pool import ConnectionPool, LockedSession, PooledConnection
from .scanner import DirectoryScanner
from .shutdown import install_signal_handlers, remove_signal_handlers
from .stream import FetchStream
from .webdav import WebDavUploader

__all__ = [
    "AggregateError",
    "Attachment",
    "AttachmentPartError",
    "ConnectionPool",
    "DeliveryError",
    "DestinationConfig",
    "DestinationInfo",
    "DirectoryScanner",
    "FetchStream",
    "FetchedMessage",
    "HealthStatus",
    "ImapError",
    "ImapSession",
    "LockedSession",
    "MailboxSelectError",
    "MaildavConfig",
    "MaildavError",
    "MessageDecodeError",
    "MessageError",
    "MessageParser",
    "Poller",
    "PollerConfig",
    "PollerStatus",
    "PooledConnection",
    "RetryConfig",
    "SenderRejectedError",
    "SourceConfig",
    "SourceConnectionError",
    "Uploader",
    "WebDavUploader",
    "aggregate",
    "install_signal_handlers",
    "remove_signal_handlers",
    "setup_logging",
]
