"""WebDAV uploader delivering attachments with HTTP PUT."""

from __future__ import annotations

import re
from collections.abc import Sequence

import httpx
import structlog

from .config import DestinationConfig, RetryConfig
from .delivery import Uploader
from .errors import DeliveryError, aggregate
from .models import Attachment
from .retry import with_retry

logger = structlog.get_logger()


class WebDavUploader(Uploader):
    """PUTs every attachment below its destination's base URL.

    One :class:`httpx.AsyncClient` is kept per destination name.  Transport
    errors and 5xx responses are retried; every attachment is attempted and
    the failures are raised together.
    """

    def __init__(self, retry: RetryConfig) -> None:
        self._retry = retry
        self._clients: dict[str, httpx.AsyncClient] = {}
        self._started = False

    async def start(self) -> None:
        self._started = True
        logger.info("webdav_uploader_started")

    async def stop(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
        logger.info("webdav_uploader_stopped")

    async def upload_attachments(self, attachments: Sequence[Attachment]) -> None:
        if not self._started:
            raise AssertionError("Uploader not started")

        errors: list[Exception] = []
        for attachment in attachments:
            try:
                await self.upload(attachment)
            except httpx.HTTPError as exc:
                logger.error(
                    "attachment_upload_failed",
                    filename=attachment.filename,
                    destination=attachment.destination.config.name,
                    error=str(exc),
                )
                errors.append(
                    DeliveryError(
                        f"could not upload {attachment.filename!r} to "
                        f"{attachment.destination.config.name}: {exc}"
                    )
                )

        error = aggregate("error uploading attachments", errors)
        if error is not None:
            raise error

    async def upload(self, attachment: Attachment) -> str:
        """Upload one attachment and return its URL."""
        client = self._client_for(attachment.destination.config)
        path = _target_path(attachment.destination.directory, attachment.filename)

        @with_retry(self._retry, retryable_exceptions=(httpx.TransportError, httpx.HTTPStatusError))
        async def _put() -> httpx.Response:
            response = await client.put(path, content=attachment.content)
            if response.is_server_error:
                response.raise_for_status()
            return response

        response = await _put()
        response.raise_for_status()
        logger.info(
            "attachment_uploaded",
            filename=attachment.filename,
            url=str(response.request.url),
            size=len(attachment.content),
        )
        return str(response.request.url)

    def _client_for(self, destination: DestinationConfig) -> httpx.AsyncClient:
        client = self._clients.get(destination.name)
        if client is None:
            auth: httpx.BasicAuth | None = None
            if destination.username is not None:
                password = destination.password.get_secret_value() if destination.password else ""
                auth = httpx.BasicAuth(destination.username, password)
            client = httpx.AsyncClient(
                base_url=destination.url,
                auth=auth,
                timeout=httpx.Timeout(destination.timeout_seconds),
            )
            self._clients[destination.name] = client
        return client


def _target_path(directory: str, filename: str) -> str:
    """Relative PUT path; keeps the filename from escaping *directory*."""
    parts = [segment for segment in directory.split("/") if segment and segment != ".."]
    parts.append(_sanitize_filename(filename))
    return "/".join(parts)


def _sanitize_filename(name: str) -> str:
    """Replace characters unsafe in a single URL path segment."""
    cleaned = re.sub(r"[^\w.\-]", "_", name)
    return "_" if cleaned in ("", ".", "..") else cleaned
