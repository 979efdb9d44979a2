"""Client for the ipfspodcasting.net work coordinator."""

import json

import httpx
import structlog

from ipfs_podcasting.core.exceptions import CoordinatorUnreachable, ProtocolDecodeError
from ipfs_podcasting.updater.models import Job, WorkRequest
from ipfs_podcasting.updater.retry import with_transport_retry

logger = structlog.get_logger(__name__)

DEFAULT_COORDINATOR_URL = "https://ipfspodcasting.net"
REQUEST_PATH = "/request"
RESPONSE_PATH = "/response"

# Fixed policy rather than a backoff algorithm
DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_DELAY = 5.0


class CoordinatorClient:
    """Posts node status to the coordinator and decodes the job it returns.

    Both endpoints take a form-encoded :class:`WorkRequest`. A connection
    dropped before the answer is retried with a fixed delay; any other
    transport error fails at once.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        base_url: str = DEFAULT_COORDINATOR_URL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self._http = http
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @classmethod
    def create(
        cls,
        *,
        timeout: float,
        base_url: str = DEFAULT_COORDINATOR_URL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> "CoordinatorClient":
        http = httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        return cls(http, base_url=base_url, max_retries=max_retries, retry_delay=retry_delay)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request_work(self, request: WorkRequest) -> Job:
        """Ask for one unit of work.

        Raises:
            CoordinatorUnreachable: If the request could not be delivered
            ProtocolDecodeError: If the answer is not a single JSON object
        """
        response = await self._post(REQUEST_PATH, request)
        try:
            data = json.loads(response.text)
        except ValueError as e:
            raise ProtocolDecodeError(f"decoding work failed: {e}") from e
        if not isinstance(data, dict):
            raise ProtocolDecodeError(f"expected a JSON object, got {type(data).__name__}")

        job = Job.model_validate(data)
        logger.info("Received work", job=job.model_dump(exclude_defaults=True))
        return job

    async def report(self, request: WorkRequest) -> None:
        """Send the outcome of a job; the response body is ignored."""
        await self._post(RESPONSE_PATH, request)

    async def _post(self, path: str, request: WorkRequest) -> httpx.Response:
        url = f"{self.base_url}{path}"
        data = request.form_data()
        logger.info("Posting work request", endpoint=url, data=data)

        attempts = 0

        @with_transport_retry(
            max_retries=self.max_retries,
            base_delay=self.retry_delay,
            max_delay=self.retry_delay,
        )
        async def send() -> httpx.Response:
            nonlocal attempts
            attempts += 1
            return await self._http.post(url, data=data)

        try:
            return await send()
        except httpx.HTTPError as e:
            raise CoordinatorUnreachable(url, str(e) or type(e).__name__, attempts) from e
