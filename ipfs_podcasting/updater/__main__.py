"""CLI entry point for the updater service."""

import argparse
import asyncio
import signal
import sys

import structlog

from ipfs_podcasting.core.config import Settings, parse_duration, settings
from ipfs_podcasting.core.logging import configure_logging
from ipfs_podcasting.kubo.address import api_base_url
from ipfs_podcasting.kubo.client import KuboClient
from ipfs_podcasting.updater.coordinator import CoordinatorClient
from ipfs_podcasting.updater.fetch import ContentFetcher
from ipfs_podcasting.updater.metrics import (
    NullSink,
    PrometheusSink,
    parse_listen_address,
    serve_metrics,
)
from ipfs_podcasting.updater.worker import UpdaterWorker

logger = structlog.get_logger(__name__)


def build_parser(config: Settings) -> argparse.ArgumentParser:
    """Command line flags; defaults come from the environment."""
    parser = argparse.ArgumentParser(
        prog="ipfs-podcasting-updater",
        description="Fetch, pin and unpin podcast episodes for ipfspodcasting.net",
    )

    # Required, but may come from the environment
    parser.add_argument(
        "--api-address",
        default=config.KUBO_API_ADDRESS,
        help="Kubo RPC API address as a multiaddr or URL (env: KUBO_API_ADDRESS)",
    )
    parser.add_argument(
        "--email",
        default=config.PODCASTING_EMAIL,
        help="Email address registered with ipfspodcasting.net (env: PODCASTING_EMAIL)",
    )

    # Scheduling and timeouts
    parser.add_argument(
        "--update-frequency",
        type=parse_duration,
        default=config.UPDATE_FREQUENCY,
        help="Minimum time between the start of two work cycles, e.g. 10m",
    )
    parser.add_argument(
        "--idle-interval",
        type=parse_duration,
        default=config.IDLE_POLL_INTERVAL,
        help="Wait after the coordinator had no work, e.g. 60s",
    )
    parser.add_argument(
        "--http-timeout",
        type=parse_duration,
        default=config.HTTP_TIMEOUT,
        help="Timeout for downloads and coordinator calls, e.g. 10m",
    )
    parser.add_argument(
        "--kubo-timeout",
        type=parse_duration,
        default=config.KUBO_TIMEOUT,
        help="Timeout for Kubo RPC calls, e.g. 6h",
    )

    # Endpoints
    parser.add_argument(
        "--metrics-address",
        default=config.METRICS_ADDRESS,
        help="Listen address for Prometheus metrics; empty disables (default: %(default)s)",
    )
    parser.add_argument(
        "--coordinator-url",
        default=config.COORDINATOR_URL,
        help="Coordinator base URL (default: %(default)s)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )
    return parser


def apply_arguments(config: Settings, args: argparse.Namespace) -> Settings:
    """Settings with the command line flags applied."""
    update = {
        "KUBO_API_ADDRESS": args.api_address.strip(),
        "PODCASTING_EMAIL": args.email.strip(),
        "UPDATE_FREQUENCY": args.update_frequency,
        "IDLE_POLL_INTERVAL": args.idle_interval,
        "HTTP_TIMEOUT": args.http_timeout,
        "KUBO_TIMEOUT": args.kubo_timeout,
        "METRICS_ADDRESS": args.metrics_address.strip(),
        "COORDINATOR_URL": args.coordinator_url.rstrip("/"),
    }
    if args.verbose:
        update["LOG_LEVEL"] = "DEBUG"
    return config.model_copy(update=update)


async def run(config: Settings) -> None:
    """Run the worker until SIGINT or SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    sink: PrometheusSink | NullSink
    if config.METRICS_ADDRESS:
        sink = PrometheusSink()
        serve_metrics(config.METRICS_ADDRESS, sink)
    else:
        sink = NullSink()

    kubo = KuboClient.from_address(
        config.KUBO_API_ADDRESS,
        timeout=config.KUBO_TIMEOUT,
        upload_buffer_chunks=config.UPLOAD_BUFFER_CHUNKS,
    )
    coordinator = CoordinatorClient.create(
        timeout=config.HTTP_TIMEOUT,
        base_url=config.COORDINATOR_URL,
        max_retries=config.COORDINATOR_MAX_RETRIES,
        retry_delay=config.COORDINATOR_RETRY_DELAY,
    )
    fetcher = ContentFetcher.create(kubo, timeout=config.HTTP_TIMEOUT)

    worker = UpdaterWorker(
        kubo,
        coordinator,
        fetcher,
        email=config.PODCASTING_EMAIL,
        version=config.CLIENT_VERSION,
        sink=sink,
        update_frequency=config.UPDATE_FREQUENCY,
        idle_interval=config.IDLE_POLL_INTERVAL,
    )

    try:
        await worker.run_forever(stop)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await fetcher.aclose()
        await coordinator.aclose()
        await kubo.aclose()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the updater CLI."""
    parser = build_parser(settings)
    args = parser.parse_args(argv)
    config = apply_arguments(settings, args)

    configure_logging(level=config.LOG_LEVEL, json_logs=config.JSON_LOGS)

    if not config.KUBO_API_ADDRESS:
        parser.error("--api-address is required")
    if not config.PODCASTING_EMAIL:
        parser.error("--email is required")

    try:
        api_base_url(config.KUBO_API_ADDRESS)
    except ValueError as e:
        logger.error("Invalid Kubo API address", address=config.KUBO_API_ADDRESS, error=str(e))
        return 1

    if config.METRICS_ADDRESS:
        try:
            parse_listen_address(config.METRICS_ADDRESS)
        except ValueError as e:
            logger.error("Invalid metrics address", error=str(e))
            return 1

    logger.info(
        "Starting IPFS Podcasting updater",
        version=config.CLIENT_VERSION,
        api_address=config.KUBO_API_ADDRESS,
        coordinator=config.COORDINATOR_URL,
    )
    asyncio.run(run(config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
