"""
Scheduler Runner

Runs the sync scheduler as a standalone process.
"""

import asyncio
import signal

import structlog

from pons.config import get_settings
from pons.kernel.logging import configure_logging
from pons.services import build_services

logger = structlog.get_logger()


async def _run() -> None:
    settings = get_settings()
    services = build_services(settings)

    # Sleep forever until signal
    stop_event = asyncio.Event()

    def _handle_signal(*_args):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except NotImplementedError:
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    try:
        await services.startup()
        logger.info("Scheduler runner started", state_path=settings.state_path)
        await stop_event.wait()
    finally:
        await services.shutdown()
        logger.info("Scheduler runner stopped")


def main() -> None:
    configure_logging()
    asyncio.run(_run())


if __name__ == "__main__":
    main()
