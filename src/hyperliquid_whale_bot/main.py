from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from typing import Any

from .config import load_settings
from .service import WhaleAlertService

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    logger.error("Unhandled asyncio error: %s", context.get("message"), exc_info=exc)


async def _main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(_log_loop_exception)
    current = asyncio.current_task()
    if current is not None:
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGTERM, current.cancel)

    service = WhaleAlertService(settings)
    await service.run()


def main() -> None:
    try:
        asyncio.run(_main())
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    except Exception as exc:
        # Exit non-zero so a supervisor restarts the process.
        logger.critical("Whale tracker exited: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
