"""Incremental multipart encoder feeding a streaming request body.

The producer runs as its own task and writes the encoded body into a bounded
queue; the HTTP client consumes the queue through :meth:`MultipartPipe.body`.
The queue size bounds memory and gives backpressure in both directions.

The producer never raises into the request. Its terminal status is delivered
once, through a future, and must be checked after the request returns.
"""

import asyncio
import secrets
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

OPEN = "open"
COPY = "copy"
CLOSE = "close"

_EOF = None


def escape_quotes(value: str) -> str:
    """Escape backslashes and double quotes for a quoted header parameter."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


@dataclass(frozen=True)
class PipeStatus:
    """Terminal status of a producer run."""

    stage: str | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class MultipartPipe:
    """Encodes a single file part as ``multipart/form-data``."""

    def __init__(
        self, filename: str, *, max_chunks: int = 16, boundary: str | None = None
    ) -> None:
        self.filename = filename
        self.boundary = boundary or secrets.token_hex(16)
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=max_chunks)
        self._status: asyncio.Future[PipeStatus] | None = None
        self._task: asyncio.Task[None] | None = None
        self.bytes_copied = 0

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    def start(self, source: AsyncIterable[bytes]) -> asyncio.Task[None]:
        """Start the producer task reading from ``source``."""
        if self._task is not None:
            raise RuntimeError("MultipartPipe can only be started once")
        loop = asyncio.get_running_loop()
        self._status = loop.create_future()
        self._task = loop.create_task(self._produce(source))
        return self._task

    async def body(self) -> AsyncIterator[bytes]:
        """Yield encoded chunks until the producer closes the pipe."""
        while True:
            chunk = await self._queue.get()
            if chunk is _EOF:
                return
            yield chunk

    async def status(self) -> PipeStatus:
        """Wait for the producer and return its terminal status."""
        if self._task is None or self._status is None:
            raise RuntimeError("MultipartPipe was never started")
        await self._task
        return self._status.result()

    async def abort(self) -> None:
        """Cancel the producer, used when the consuming request failed."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    def _entry_header(self) -> bytes:
        if "\r" in self.filename or "\n" in self.filename:
            raise ValueError(f"Filename not allowed in a form part: {self.filename!r}")
        filename = escape_quotes(self.filename)
        return (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
            "Content-Type: application/octet-stream\r\n"
            "\r\n"
        ).encode("utf-8")

    def _closing(self) -> bytes:
        return f"\r\n--{self.boundary}--\r\n".encode("ascii")

    async def _produce(self, source: AsyncIterable[bytes]) -> None:
        assert self._status is not None
        stage = OPEN
        try:
            await self._queue.put(self._entry_header())
            stage = COPY
            async for chunk in source:
                if chunk:
                    await self._queue.put(chunk)
                    self.bytes_copied += len(chunk)
            stage = CLOSE
            await self._queue.put(self._closing())
        except Exception as e:
            self._status.set_result(PipeStatus(stage, e))
        else:
            self._status.set_result(PipeStatus())

        # The pipe is closed only after every write has finished or failed
        await self._queue.put(_EOF)
