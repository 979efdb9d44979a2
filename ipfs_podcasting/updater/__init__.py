"""Updater service for ipfspodcasting.net storage nodes.

The updater repeatedly reports its node's status to the coordinator, runs the
job it receives and reports the outcome.

Main Components:
- UpdaterWorker: Runs the work cycle against one node
- CoordinatorClient: Form-encoded request/response protocol with the coordinator
- ContentFetcher: Streams downloads into the node and pins references
- FallbackResolver: Pins gateway URLs directly when their download fails
- PrometheusSink: Job timings and node gauges

Usage:
    python -m ipfs_podcasting.updater --api-address /ip4/127.0.0.1/tcp/5001 --email me@example.com
"""

from ipfs_podcasting.updater.coordinator import CoordinatorClient
from ipfs_podcasting.updater.fallback import FallbackResolver
from ipfs_podcasting.updater.fetch import ContentFetcher
from ipfs_podcasting.updater.metrics import NullSink, PrometheusSink
from ipfs_podcasting.updater.worker import UpdaterWorker

__all__ = [
    "ContentFetcher",
    "CoordinatorClient",
    "FallbackResolver",
    "NullSink",
    "PrometheusSink",
    "UpdaterWorker",
]
