"""SIGTERM / SIGINT handling: the cancellation signal observed by the poller."""

from __future__ import annotations

import asyncio
import signal

import structlog

logger = structlog.get_logger()

_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """Register SIGTERM and SIGINT handlers that set *shutdown_event*.

    Call once from the running event loop.  A pending inter-cycle sleep in
    :meth:`Poller.start_polling` returns as soon as the event is set; a scan
    already in progress finishes first, so repeated signals are only logged.
    """
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        if shutdown_event.is_set():
            logger.warning("shutdown_already_requested", signal=sig.name)
            return
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in _SIGNALS:
        loop.add_signal_handler(sig, _handle, sig)


def remove_signal_handlers() -> None:
    """Restore default SIGTERM / SIGINT handling.

    Used during teardown so that a signal arriving while connections are
    being closed terminates the process instead of being swallowed.
    """
    loop = asyncio.get_running_loop()
    for sig in _SIGNALS:
        loop.remove_signal_handler(sig)
