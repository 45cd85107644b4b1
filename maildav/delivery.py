"""The Uploader ABC for stages that consume extracted attachments."""

from __future__ import annotations

import abc
from collections.abc import Sequence

from .models import Attachment


class Uploader(abc.ABC):
    """Delivery stage fed by :meth:`Poller.start_polling`.

    Implementations receive the attachments of one poll cycle, in the
    order they were found, and raise if any of them could not be
    delivered.
    """

    async def start(self) -> None:
        """Acquire resources before the first upload."""

    async def stop(self) -> None:
        """Release resources at shutdown."""

    @abc.abstractmethod
    async def upload_attachments(self, attachments: Sequence[Attachment]) -> None:
        """Deliver *attachments*; an empty sequence is a no-op."""
        ...
