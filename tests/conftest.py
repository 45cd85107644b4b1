"""Shared test fixtures for the maildav test suite."""

from __future__ import annotations

from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import pytest

from maildav.config import DestinationConfig, PollerConfig, RetryConfig, SourceConfig
from maildav.errors import MailboxSelectError, SourceConnectionError
from maildav.models import FetchedMessage
from maildav.stream import FetchStream


@pytest.fixture
def source_config() -> SourceConfig:
    return SourceConfig(
        host="imap.test.com",
        port=993,
        use_ssl=True,
        username="testuser",
        password="testpass",
    )


@pytest.fixture
def destination_config() -> DestinationConfig:
    return DestinationConfig(
        name="nextcloud",
        url="https://dav.test.com/remote.php/webdav",
        username="davuser",
        password="davpass",
    )


@pytest.fixture
def poller_config(source_config: SourceConfig, destination_config: DestinationConfig) -> PollerConfig:
    return PollerConfig(
        source_name="invoices",
        source=source_config,
        source_directories=["INBOX"],
        source_addresses=[],
        destination=destination_config,
        destination_directory="scans",
        poll_interval_seconds=60.0,
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.02,
        multiplier=1.0,
    )


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    from_addr: str = "sender@example.com",
    body: str = "Hello, World!",
) -> bytes:
    """Build a simple single-part plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = "Plain Email"
    msg["From"] = from_addr
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<plain-001@example.com>"
    msg["Date"] = "Mon, 01 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _attachment_part(filename: str | None, content_type: str, payload: bytes) -> MIMEBase:
    maintype, subtype = content_type.split("/", 1)
    part = MIMEBase(maintype, subtype)
    part.set_payload(payload)
    encoders.encode_base64(part)
    if filename is None:
        part.add_header("Content-Disposition", "attachment")
    else:
        part.add_header("Content-Disposition", "attachment", filename=filename)
    return part


def _build_multipart_email(
    *,
    from_addr: str = "sender@example.com",
    body_text: str = "Plain body",
    body_html: str | None = None,
    attachments: list[tuple[str | None, str, bytes]] | None = None,
    extra_parts: list[MIMEBase] | None = None,
) -> bytes:
    """Build a multipart/mixed email with a body and optional attachments.

    A *filename* of ``None`` produces an attachment part without the
    ``filename`` parameter.
    """
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Multipart Email"
    msg["From"] = from_addr
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<multi-001@example.com>"
    msg["Date"] = "Mon, 01 Jun 2025 12:00:00 +0000"

    if body_html is None:
        msg.attach(MIMEText(body_text, "plain"))
    else:
        alt = MIMEMultipart("alternative")
        alt.attach(MIMEText(body_text, "plain"))
        alt.attach(MIMEText(body_html, "html"))
        msg.attach(alt)

    for filename, content_type, payload in attachments or []:
        msg.attach(_attachment_part(filename, content_type, payload))
    for part in extra_parts or []:
        msg.attach(part)

    return msg.as_bytes()


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return _build_multipart_email(
        attachments=[
            ("report.pdf", "application/pdf", b"%PDF-1.4 fake pdf content"),
            ("data.csv", "text/csv", b"col1,col2\na,b\n"),
        ],
    )


# ------------------------------------------------------------------
# In-memory IMAP session
# ------------------------------------------------------------------


class FakeSession:
    """Stand-in for :class:`maildav.imap_client.ImapSession`.

    *mailboxes* maps directory name → {uid: raw bytes} of unseen messages.
    """

    def __init__(
        self,
        config: SourceConfig | None = None,
        *,
        mailboxes: dict[str, dict[str, bytes]] | None = None,
        connect_error: Exception | None = None,
        search_error: Exception | None = None,
        fetch_error: Exception | None = None,
    ) -> None:
        self.config = config
        self.mailboxes = mailboxes if mailboxes is not None else {"INBOX": {}}
        self.connect_error = connect_error
        self.search_error = search_error
        self.fetch_error = fetch_error
        self.alive = True
        self.selected: str | None = None
        self.selected_history: list[str] = []
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.fetched: list[str] = []
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error
        self._connected = True
        self.alive = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._connected = False

    async def is_alive(self) -> bool:
        return self._connected and self.alive

    async def select(self, directory: str) -> None:
        self.selected_history.append(directory)
        if directory not in self.mailboxes:
            raise MailboxSelectError(f"could not open directory {directory!r}: NO such mailbox")
        self.selected = directory

    async def search_unseen(self) -> list[str]:
        if self.search_error is not None:
            raise self.search_error
        assert self.selected is not None
        return list(self.mailboxes[self.selected])

    def fetch(self, uids: list[str], *, maxsize: int = 10) -> FetchStream[FetchedMessage]:
        assert self.selected is not None
        messages = self.mailboxes[self.selected]

        async def produce(emit) -> None:
            for uid in uids:
                self.fetched.append(uid)
                await emit(FetchedMessage(uid=uid, raw_bytes=messages[uid]))
            if self.fetch_error is not None:
                raise self.fetch_error

        return FetchStream(produce, maxsize=maxsize)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def unreachable_session() -> FakeSession:
    return FakeSession(connect_error=SourceConnectionError("could not connect to imap.test.com:993"))
