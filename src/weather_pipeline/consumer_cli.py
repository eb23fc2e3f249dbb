"""Consumer CLI: persist weather records from Kafka into PostgreSQL."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from .config import Settings, load_settings
from .exceptions import ConfigError, DeliveryError
from .log_setup import setup_logger
from .storage import WeatherStore
from .stream.consumer import WeatherConsumer


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse consumer CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Consume the weather topic and upsert records into PostgreSQL."
    )
    return parser.parse_args(argv)


def _build_components(
    settings: Settings, logger: logging.Logger
) -> tuple[WeatherStore, WeatherConsumer]:
    store = WeatherStore(settings=settings, logger=logger)
    consumer = WeatherConsumer(settings=settings, store=store, logger=logger)
    return store, consumer


def _install_signal_handlers(stop_event: asyncio.Event, logger: logging.Logger) -> None:
    loop = asyncio.get_running_loop()

    def _handle_signal(signum: int) -> None:
        logger.info("Received signal %s, shutting down consumer...", signum)
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _handle_signal, signum)
        except NotImplementedError:  # pragma: no cover - Windows event loops
            signal.signal(signum, lambda s, _frame: loop.call_soon_threadsafe(_handle_signal, s))


async def _wait_for_store(
    store: WeatherStore, stop_event: asyncio.Event
) -> bool:
    """Wait for PostgreSQL; returns False if shutdown was requested first."""
    connect_task = asyncio.create_task(store.connect())
    stop_task = asyncio.create_task(stop_event.wait())
    done, _ = await asyncio.wait(
        {connect_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
    )
    if connect_task in done:
        stop_task.cancel()
        connect_task.result()
        return True
    connect_task.cancel()
    try:
        await connect_task
    except asyncio.CancelledError:
        pass
    return False


async def _run(
    settings: Settings,
    logger: logging.Logger,
    stop_event: asyncio.Event | None = None,
) -> int:
    stop_event = stop_event or asyncio.Event()
    _install_signal_handlers(stop_event, logger)
    store, consumer = _build_components(settings, logger)
    exit_code = 0
    try:
        if not await _wait_for_store(store, stop_event):
            return exit_code
        await consumer.connect()
        await consumer.run(stop_event)
    except DeliveryError as exc:
        exit_code = 1
        logger.error("Kafka consumer failure: %s", exc)
    finally:
        await consumer.close()
        await store.close()
        logger.info(
            "Consumer shut down (processed=%d dropped=%d)",
            consumer.processed,
            consumer.dropped,
        )
    return exit_code


def main(argv: list[str] | None = None) -> int:
    """Run the consumer until SIGINT/SIGTERM."""
    parse_args(argv)
    logger = setup_logger(process="consumer")

    try:
        settings = load_settings()
    except ConfigError as exc:
        logger.error("Configuration failure: %s", exc)
        return 2
    logger.setLevel(settings.log_level)
    logger.info("Consumer starting with config %s", settings.safe_summary())

    return asyncio.run(_run(settings, logger))


if __name__ == "__main__":
    sys.exit(main())
