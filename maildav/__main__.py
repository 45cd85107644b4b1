"""Entry point: ``python -m maildav``.

Reads :class:`~maildav.config.MaildavConfig` from the environment, runs the
first configured poller and a health server until SIGTERM / SIGINT.
"""

from __future__ import annotations

import asyncio
import sys

import structlog
import uvicorn
from pydantic import ValidationError

from .config import MaildavConfig
from .health import create_health_app
from .logging import setup_logging
from .poller import Poller
from .pool import ConnectionPool
from .shutdown import install_signal_handlers, remove_signal_handlers
from .webdav import WebDavUploader

logger = structlog.get_logger()


async def _run_health_server(poller: Poller, port: int, shutdown_event: asyncio.Event) -> None:
    """Serve the health app until the shutdown event fires."""
    config = uvicorn.Config(
        create_health_app(poller),
        host="0.0.0.0",
        port=port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    serve_task = asyncio.create_task(server.serve())
    await shutdown_event.wait()
    server.should_exit = True
    await serve_task


async def run(config: MaildavConfig) -> None:
    shutdown_event = asyncio.Event()
    install_signal_handlers(shutdown_event)

    if len(config.pollers) > 1:
        # TODO: run one poller task per entry once pollers share the pool concurrently.
        logger.warning(
            "extra_pollers_ignored",
            started=config.pollers[0].source_name,
            ignored=[p.source_name for p in config.pollers[1:]],
        )

    pool = ConnectionPool()
    poller = Poller(config.pollers[0], pool)
    uploader = WebDavUploader(config.retry)
    await uploader.start()

    try:
        async with asyncio.TaskGroup() as tg:
            tg.create_task(poller.start_polling(shutdown_event, uploader))
            tg.create_task(_run_health_server(poller, config.health_port, shutdown_event))
    except* Exception:
        logger.exception("maildav_task_group_error")
    finally:
        remove_signal_handlers()
        await uploader.stop()
        await pool.close()
        logger.info("maildav_stopped")


def main() -> None:
    try:
        config = MaildavConfig()
    except ValidationError as exc:
        setup_logging()
        logger.error("invalid_configuration", error=str(exc))
        sys.exit(1)

    setup_logging(json=config.log_json, level=config.log_level)
    asyncio.run(run(config))


if __name__ == "__main__":
    main()
