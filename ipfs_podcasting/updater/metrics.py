"""Prometheus metrics for the updater service."""

import logging
from typing import Protocol

from prometheus_client import CollectorRegistry, Gauge, Histogram, start_http_server

from ipfs_podcasting.updater.models import JobEvent, RepoUsage

logger = logging.getLogger(__name__)

NAMESPACE = "ipfspodcasting_updater"


class ObservabilitySink(Protocol):
    """Receives job timings and node gauges from the worker."""

    def observe_job(self, event: JobEvent) -> None: ...

    def set_peers(self, count: int) -> None: ...

    def set_repo_usage(self, usage: RepoUsage) -> None: ...


class NullSink:
    """Sink used when metrics are disabled."""

    def observe_job(self, event: JobEvent) -> None:
        pass

    def set_peers(self, count: int) -> None:
        pass

    def set_repo_usage(self, usage: RepoUsage) -> None:
        pass


class PrometheusSink:
    """Records worker events into its own collector registry."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        # Job metrics
        self.job_seconds = Histogram(
            "job_seconds",
            "Duration of the work cycle that ran a job",
            ["job_type", "status"],
            namespace=NAMESPACE,
            registry=self.registry,
        )

        # Node metrics
        self.peers = Gauge(
            "peers",
            "Number of connected swarm peers",
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.repo_disk_used_bytes = Gauge(
            "repo_disk_used_bytes",
            "Size of the node repository in bytes",
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.repo_storage_max_bytes = Gauge(
            "repo_storage_max_bytes",
            "Configured maximum repository size in bytes",
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.repo_objects = Gauge(
            "repo_objects",
            "Number of objects in the node repository",
            namespace=NAMESPACE,
            registry=self.registry,
        )

    def observe_job(self, event: JobEvent) -> None:
        status = "success" if event.success else "error"
        self.job_seconds.labels(job_type=event.job_type, status=status).observe(
            event.duration_seconds
        )

    def set_peers(self, count: int) -> None:
        self.peers.set(count)

    def set_repo_usage(self, usage: RepoUsage) -> None:
        self.repo_disk_used_bytes.set(usage.used_bytes)
        self.repo_storage_max_bytes.set(usage.capacity_bytes)
        self.repo_objects.set(usage.object_count)


def parse_listen_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (host optional) into the exporter's bind pair.

    Raises:
        ValueError: If the port is missing or not a number
    """
    host, sep, port = address.strip().rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid metrics address: {address!r}")
    host = host.strip("[]")
    return host or "0.0.0.0", int(port)


def serve_metrics(address: str, sink: PrometheusSink) -> bool:
    """Expose ``sink``'s registry over HTTP; an empty address disables it.

    Returns:
        True if the exporter was started
    """
    if not address:
        logger.info("Metrics endpoint disabled")
        return False

    host, port = parse_listen_address(address)
    start_http_server(port, addr=host, registry=sink.registry)
    logger.info(f"Serving metrics on {host}:{port}")
    return True
