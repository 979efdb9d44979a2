"""Tests for the coordinator client."""

from urllib.parse import parse_qs

import httpx
import pytest
import respx
from httpx import Response
from pytest_mock import MockerFixture

from ipfs_podcasting.core.exceptions import CoordinatorUnreachable, ProtocolDecodeError
from ipfs_podcasting.updater.coordinator import CoordinatorClient
from ipfs_podcasting.updater.models import (
    JobOutcome,
    NodeStatus,
    StoredContent,
    WorkRequest,
)
from ipfs_podcasting.updater.retry import is_premature_close

BASE_URL = "https://coordinator.test"

STATUS = NodeStatus(
    identity="12D3KooWnode", software_version="0.29.0", online=True, peer_count=3
)


@pytest.fixture
def coordinator() -> CoordinatorClient:
    """Create a client that does not wait between retries."""
    return CoordinatorClient(
        httpx.AsyncClient(), base_url=BASE_URL, max_retries=5, retry_delay=0
    )


@pytest.fixture
def request_payload() -> WorkRequest:
    return WorkRequest(email="node@example.com", version="0.6p", status=STATUS)


def form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestRequestWork:
    """Test asking the coordinator for work."""

    @pytest.mark.asyncio
    async def test_decodes_job(self, coordinator, request_payload):
        """Should post the status form and decode the job."""
        with respx.mock:
            route = respx.post(f"{BASE_URL}/request").mock(
                return_value=Response(
                    200,
                    json={
                        "download": "https://cdn.example.com/ep1.mp3",
                        "filename": "ep1.mp3",
                        "message": "Request Accepted",
                    },
                )
            )

            job = await coordinator.request_work(request_payload)

        assert job.has_download
        assert job.filename == "ep1.mp3"

        sent = route.calls.last.request
        assert sent.headers["content-type"] == "application/x-www-form-urlencoded"
        assert form(sent) == {
            "email": "node@example.com",
            "version": "0.6p",
            "ipfs_id": "12D3KooWnode",
            "ipfs_ver": "0.29.0",
            "online": "true",
            "peers": "3",
        }

    @pytest.mark.asyncio
    async def test_idle_job(self, coordinator, request_payload):
        """Should decode the no-work answer."""
        with respx.mock:
            respx.post(f"{BASE_URL}/request").mock(
                return_value=Response(200, json={"message": "No Work"})
            )

            job = await coordinator.request_work(request_payload)

        assert job.is_idle

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["<html>Bad Gateway</html>", "[1, 2]", ""])
    async def test_malformed_answer(self, coordinator, request_payload, body):
        """Should raise ProtocolDecodeError for anything but a JSON object."""
        with respx.mock:
            respx.post(f"{BASE_URL}/request").mock(return_value=Response(200, text=body))

            with pytest.raises(ProtocolDecodeError):
                await coordinator.request_work(request_payload)

    @pytest.mark.asyncio
    async def test_retries_premature_close(self, coordinator, request_payload):
        """Should retry a dropped connection and succeed once it answers."""
        with respx.mock:
            route = respx.post(f"{BASE_URL}/request").mock(
                side_effect=[
                    httpx.RemoteProtocolError("Server disconnected without sending a response."),
                    httpx.ReadError("unexpected EOF"),
                    Response(200, json={"message": "No Work"}),
                ]
            )

            job = await coordinator.request_work(request_payload)

        assert job.is_idle
        assert route.call_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, coordinator, request_payload):
        """Should make one attempt plus five retries, then fail."""
        with respx.mock:
            route = respx.post(f"{BASE_URL}/request").mock(
                side_effect=httpx.ReadError("unexpected EOF")
            )

            with pytest.raises(CoordinatorUnreachable) as exc_info:
                await coordinator.request_work(request_payload)

        assert route.call_count == 6
        assert exc_info.value.attempts == 6

    @pytest.mark.asyncio
    async def test_other_errors_fail_immediately(self, coordinator, request_payload):
        """Should not retry errors that are not a premature close."""
        with respx.mock:
            route = respx.post(f"{BASE_URL}/request").mock(
                side_effect=httpx.ConnectError("Name or service not known")
            )

            with pytest.raises(CoordinatorUnreachable) as exc_info:
                await coordinator.request_work(request_payload)

        assert route.call_count == 1
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_attempts_count_retries_before_other_error(self, coordinator, request_payload):
        """Should report every attempt made when a retry ends in a different error."""
        with respx.mock:
            route = respx.post(f"{BASE_URL}/request").mock(
                side_effect=[
                    httpx.ReadError("unexpected EOF"),
                    httpx.ConnectError("Name or service not known"),
                ]
            )

            with pytest.raises(CoordinatorUnreachable) as exc_info:
                await coordinator.request_work(request_payload)

        assert route.call_count == 2
        assert exc_info.value.attempts == 2
        assert "Name or service not known" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_retry_waits_between_attempts(self, request_payload, mocker: MockerFixture):
        """Should sleep the configured delay before each retry."""
        sleep = mocker.patch("ipfs_podcasting.updater.retry.asyncio.sleep")
        client = CoordinatorClient(
            httpx.AsyncClient(), base_url=BASE_URL, max_retries=2, retry_delay=5.0
        )

        with respx.mock:
            respx.post(f"{BASE_URL}/request").mock(
                side_effect=httpx.ReadError("unexpected EOF")
            )

            with pytest.raises(CoordinatorUnreachable):
                await client.request_work(request_payload)

        assert [c.args[0] for c in sleep.await_args_list] == [5.0, 5.0]


class TestReport:
    """Test reporting a job outcome."""

    @pytest.mark.asyncio
    async def test_posts_outcome(self, coordinator):
        """Should post the outcome form and ignore the response body."""
        payload = WorkRequest(
            email="node@example.com",
            version="0.6p",
            status=STATUS,
            outcome=JobOutcome(
                downloaded=StoredContent(reference="QmFile/QmDir", length=1000),
                error=True,
            ),
        )

        with respx.mock:
            route = respx.post(f"{BASE_URL}/response").mock(
                return_value=Response(200, text="not json")
            )

            await coordinator.report(payload)

        data = form(route.calls.last.request)
        assert data["downloaded"] == "QmFile/QmDir"
        assert data["length"] == "1000"
        assert data["error"] == "1"

    @pytest.mark.asyncio
    async def test_report_failure(self, coordinator, request_payload):
        """Should raise CoordinatorUnreachable when the report is not delivered."""
        with respx.mock:
            respx.post(f"{BASE_URL}/response").mock(
                side_effect=httpx.ConnectTimeout("timed out")
            )

            with pytest.raises(CoordinatorUnreachable):
                await coordinator.report(request_payload)


class TestPrematureClose:
    """Test classification of transport errors."""

    @pytest.mark.parametrize(
        "error,expected",
        [
            (httpx.RemoteProtocolError("peer closed connection without response"), True),
            (httpx.ReadError("unexpected EOF"), True),
            (httpx.ReadError("[Errno 104] Connection reset by peer"), True),
            (httpx.ConnectError("[Errno 111] Connection refused"), False),
            (httpx.ReadTimeout("timed out"), False),
        ],
    )
    def test_is_premature_close(self, error, expected):
        assert is_premature_close(error) is expected
