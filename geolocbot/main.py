"""geolocbot main entry point."""

import asyncio
import logging
import os
from typing import Optional

from .config import BotSettings, load_settings
from .matrix import MatrixGateway
from .router import MessageRouter
from .tasks import BackgroundTasks

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("geolocbot")


def configure_logging(settings: BotSettings):
    """Log to stderr and, unless disabled, to the configured log file."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(os.path.expanduser(settings.log_file), encoding="utf-8"))

    logging.basicConfig(level=logging.INFO, format=_log_format, handlers=handlers)
    if settings.debug:
        logging.getLogger("geolocbot").setLevel(logging.DEBUG)


async def run(settings: Optional[BotSettings] = None):
    """Log in, skip old history, then process events until cancelled."""
    settings = settings or load_settings()
    gateway = MatrixGateway(settings)
    tasks = BackgroundTasks()

    try:
        await gateway.login()

        # An initial sync so the bot doesn't respond to messages sent before it was running
        next_batch = await gateway.initial_sync()

        router = MessageRouter(gateway, settings, tasks)
        router.register()
        logger.info(
            f"geolocbot is running as {gateway.user_id} "
            f"(autojoin: {settings.autojoin}). Press Ctrl+C to stop."
        )

        await gateway.sync_forever(since=next_batch)

    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
        raise
    finally:
        await tasks.shutdown()
        await gateway.close()


def main(settings: Optional[BotSettings] = None):
    """Configure logging and run the bot until interrupted."""
    settings = settings or load_settings()
    configure_logging(settings)
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("Stopped.")


if __name__ == "__main__":
    main()
