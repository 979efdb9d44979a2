"""The updater's work cycle: report status, run the job, report the outcome."""

import asyncio
import time
from collections.abc import Callable

import structlog

from ipfs_podcasting.core.exceptions import UpdaterError
from ipfs_podcasting.kubo.client import KuboClient
from ipfs_podcasting.updater.coordinator import CoordinatorClient
from ipfs_podcasting.updater.fallback import FallbackResolver
from ipfs_podcasting.updater.fetch import ContentFetcher
from ipfs_podcasting.updater.metrics import NullSink, ObservabilitySink
from ipfs_podcasting.updater.models import (
    CycleResult,
    Job,
    JobEvent,
    JobOutcome,
    NodeStatus,
    RepoUsage,
    WorkRequest,
)

logger = structlog.get_logger(__name__)


class UpdaterWorker:
    """Runs work cycles against one storage node, one at a time.

    A cycle reads the node status, asks the coordinator for a job, runs its
    download, pin and delete directives in that order and reports back. A
    failed directive does not stop the others; it only marks the report as
    an error.
    """

    def __init__(
        self,
        kubo: KuboClient,
        coordinator: CoordinatorClient,
        fetcher: ContentFetcher,
        *,
        email: str,
        version: str,
        resolver: FallbackResolver | None = None,
        sink: ObservabilitySink | None = None,
        update_frequency: float = 600.0,
        idle_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.kubo = kubo
        self.coordinator = coordinator
        self.fetcher = fetcher
        self.resolver = resolver if resolver is not None else FallbackResolver(fetcher)
        self.email = email
        self.version = version
        self.sink = sink if sink is not None else NullSink()
        self.update_frequency = update_frequency
        self.idle_interval = idle_interval
        self._clock = clock

    async def node_status(self) -> NodeStatus:
        """Read identity, version, connectivity and peer count from the node.

        Raises:
            NodeUnreachable: If any of the status calls fails
        """
        identity = await self.kubo.identity()
        diagnostics = await self.kubo.diagnostics()
        peers = await self.kubo.peer_count()
        return NodeStatus(
            identity=identity.id,
            software_version=diagnostics.ipfs_version,
            online=diagnostics.net.online,
            peer_count=peers,
        )

    async def repo_usage(self) -> RepoUsage | None:
        """Repository usage, or None when the node cannot report it."""
        try:
            stats = await self.kubo.repo_stats()
        except UpdaterError as e:
            logger.warning("Reading repository usage failed", error=str(e))
            return None
        return RepoUsage(
            used_bytes=stats.repo_size,
            capacity_bytes=stats.storage_max,
            object_count=stats.num_objects,
        )

    async def execute(self, job: Job) -> JobOutcome:
        """Run every directive in ``job``; failures only set the error flag."""
        outcome = JobOutcome()

        if job.has_download:
            try:
                outcome.downloaded = await self.resolver.fetch_or_pin(
                    job.download, job.filename
                )
            except UpdaterError as e:
                outcome.error = True
                logger.error("Download failed", url=job.download, error=str(e))

        if job.has_pin:
            try:
                outcome.pinned = await self.fetcher.pin_reference(job.pin)
            except UpdaterError as e:
                outcome.error = True
                logger.error("Pin failed", reference=job.pin, error=str(e))

        if job.has_delete:
            try:
                await self.kubo.pin_remove(job.delete)
                outcome.deleted = job.delete
            except UpdaterError as e:
                outcome.error = True
                logger.error("Delete failed", reference=job.delete, error=str(e))

        return outcome

    async def run_cycle(self) -> CycleResult:
        """Run one work cycle.

        Raises:
            NodeUnreachable: If the node status could not be read; the
                coordinator is not contacted in that case
            CoordinatorUnreachable: If asking for work or reporting failed
            ProtocolDecodeError: If the coordinator's job could not be decoded
        """
        started = self._clock()

        status = await self.node_status()
        self.sink.set_peers(status.peer_count)

        job = await self.coordinator.request_work(
            WorkRequest(email=self.email, version=self.version, status=status)
        )
        if job.is_idle:
            logger.info("No work available")
            return CycleResult.IDLE

        logger.info(
            "Starting job",
            show=job.show,
            episode=job.episode,
            download=job.download or None,
            pin=job.pin or None,
            delete=job.delete or None,
        )
        outcome = await self.execute(job)

        usage = await self.repo_usage()
        if usage is not None:
            self.sink.set_repo_usage(usage)

        try:
            await self.coordinator.report(
                WorkRequest(
                    email=self.email,
                    version=self.version,
                    status=status,
                    outcome=outcome,
                    usage=usage,
                )
            )
        finally:
            for event in self._job_events(job, outcome, self._clock() - started):
                self.sink.observe_job(event)

        result = CycleResult.INCOMPLETE if outcome.error else CycleResult.COMPLETE
        logger.info("Job reported", result=result.value, length=outcome.length)
        return result

    def next_delay(self, result: CycleResult | None, started: float) -> float:
        """Seconds to wait before the next cycle.

        ``result`` is None when the cycle raised.
        """
        if result is CycleResult.IDLE:
            return self.idle_interval
        elapsed = self._clock() - started
        return max(0.0, self.update_frequency - elapsed)

    async def run_forever(self, stop: asyncio.Event) -> None:
        """Run cycles back to back until ``stop`` is set."""
        logger.info(
            "Starting updater",
            update_frequency=self.update_frequency,
            idle_interval=self.idle_interval,
        )
        while not stop.is_set():
            started = self._clock()
            result: CycleResult | None = None
            try:
                result = await self.run_cycle()
            except Exception as e:
                logger.error("Work cycle failed", error=str(e), exc_info=True)

            delay = self.next_delay(result, started)
            logger.debug("Waiting for next cycle", seconds=round(delay, 3))
            if await self._wait(stop, delay):
                break

        logger.info("Updater stopped")

    @staticmethod
    async def _wait(stop: asyncio.Event, delay: float) -> bool:
        """Sleep up to ``delay`` seconds; True if ``stop`` was set meanwhile."""
        try:
            await asyncio.wait_for(stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    @staticmethod
    def _job_events(job: Job, outcome: JobOutcome, duration: float) -> list[JobEvent]:
        events = []
        if job.has_download:
            events.append(
                JobEvent(
                    job_type="download",
                    success=outcome.downloaded is not None,
                    duration_seconds=duration,
                )
            )
        if job.has_pin:
            events.append(
                JobEvent(
                    job_type="pin",
                    success=outcome.pinned is not None,
                    duration_seconds=duration,
                )
            )
        if job.has_delete:
            events.append(
                JobEvent(
                    job_type="delete",
                    success=outcome.deleted is not None,
                    duration_seconds=duration,
                )
            )
        return events
