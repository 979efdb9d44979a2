"""Typed facade over the Kubo RPC API."""

import json
from collections.abc import AsyncIterable
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from ipfs_podcasting.core.exceptions import FetchFailed, MalformedLinks, NodeUnreachable
from ipfs_podcasting.kubo.address import api_base_url
from ipfs_podcasting.kubo.models import (
    AddedEntry,
    DiagSys,
    Link,
    LsResult,
    NodeIdentity,
    RepoStat,
)
from ipfs_podcasting.kubo.multipart import MultipartPipe, PipeStatus

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Delete jobs may target content this node never had
NOT_PINNED_MARKER = "not pinned or pinned indirectly"


class KuboClient:
    """Calls the storage node over its HTTP RPC API.

    Every method is a single round trip without caching. Any transport
    error, error envelope or undecodable body raises
    :class:`~ipfs_podcasting.core.exceptions.NodeUnreachable`.
    """

    def __init__(self, http: httpx.AsyncClient, *, upload_buffer_chunks: int = 16) -> None:
        self._http = http
        self._upload_buffer_chunks = upload_buffer_chunks

    @classmethod
    def from_address(
        cls, address: str, *, timeout: float, upload_buffer_chunks: int = 16
    ) -> "KuboClient":
        """Build a client for a multiaddr or URL node address."""
        http = httpx.AsyncClient(
            base_url=f"{api_base_url(address)}/api/v0",
            timeout=httpx.Timeout(timeout),
        )
        return cls(http, upload_buffer_chunks=upload_buffer_chunks)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def identity(self) -> NodeIdentity:
        return self._decode("id", await self._call("id"), NodeIdentity)

    async def diagnostics(self) -> DiagSys:
        return self._decode("diag/sys", await self._call("diag/sys"), DiagSys)

    async def peer_count(self) -> int:
        """Number of open swarm connections."""
        data = self._json("swarm/peers", await self._call("swarm/peers"))
        peers = data.get("Peers") if isinstance(data, dict) else None
        if peers is None:
            return 0
        if not isinstance(peers, list):
            raise NodeUnreachable("swarm/peers", "Peers is not a list")
        return len(peers)

    async def repo_stats(self) -> RepoStat:
        return self._decode("repo/stat", await self._call("repo/stat"), RepoStat)

    async def add_stream(
        self, source: AsyncIterable[bytes], filename: str
    ) -> list[AddedEntry]:
        """Stream ``source`` into the node as ``filename`` wrapped in a directory.

        Returns:
            The decoded add records; the first is the file entry and the
            second is the wrapping directory.

        Raises:
            FetchFailed: If producing the upload body failed
            NodeUnreachable: If the add request itself failed
        """
        pipe = MultipartPipe(filename, max_chunks=self._upload_buffer_chunks)
        task = pipe.start(source)

        try:
            response = await self._http.post(
                "/add",
                params={"wrap-with-directory": "true", "progress": "false"},
                headers={"Content-Type": pipe.content_type},
                content=pipe.body(),
            )
        except httpx.HTTPError as e:
            if task.done():
                self._raise_for_pipe(await pipe.status(), filename)
            await pipe.abort()
            raise NodeUnreachable("add", f"request failed: {e}") from e

        status = await pipe.status()
        self._raise_for_pipe(status, filename)
        self._check_envelope("add", response)

        entries = self._decode_records(response.text)
        if len(entries) < 2:
            raise NodeUnreachable(
                "add", f"expected file and directory records, got {len(entries)}"
            )

        logger.debug(
            "Added content",
            filename=filename,
            file_hash=entries[0].hash,
            directory_hash=entries[1].hash,
            bytes_copied=pipe.bytes_copied,
        )
        return entries

    async def pin_add(self, reference: str) -> None:
        self._json("pin/add", await self._call("pin/add", {"arg": reference}))

    async def pin_remove(self, reference: str) -> None:
        """Unpin ``reference``; content that is not pinned counts as removed."""
        try:
            self._json("pin/rm", await self._call("pin/rm", {"arg": reference}))
        except NodeUnreachable as e:
            if NOT_PINNED_MARKER in e.message:
                logger.info("Reference was not pinned", reference=reference)
                return
            raise

    async def list_links(self, reference: str) -> list[Link]:
        """Links of the single object listed for ``reference``."""
        result = self._decode("ls", await self._call("ls", {"arg": reference}), LsResult)
        objects = result.objects or []
        if len(objects) != 1:
            raise MalformedLinks("ls", f"expected 1 object for {reference}, got {len(objects)}")
        return list(objects[0].links or [])

    async def single_link(self, reference: str) -> Link:
        """The only link of ``reference``, the shape of a wrapping directory."""
        links = await self.list_links(reference)
        if len(links) != 1:
            raise MalformedLinks("ls", f"expected 1 link for {reference}, got {len(links)}")
        return links[0]

    async def _call(self, method: str, params: dict[str, str] | None = None) -> httpx.Response:
        try:
            response = await self._http.post(f"/{method}", params=params)
        except httpx.HTTPError as e:
            raise NodeUnreachable(method, f"request failed: {e}") from e
        self._check_envelope(method, response)
        return response

    @staticmethod
    def _check_envelope(method: str, response: httpx.Response) -> None:
        if response.is_success:
            # Streaming commands report late failures in a trailer header
            stream_error = response.headers.get("X-Stream-Error")
            if stream_error:
                raise NodeUnreachable(method, stream_error)
            return

        message = response.text.strip()
        try:
            envelope = response.json()
        except ValueError:
            envelope = None
        if isinstance(envelope, dict) and envelope.get("Message"):
            message = str(envelope["Message"])
        raise NodeUnreachable(method, message or f"HTTP {response.status_code}")

    @staticmethod
    def _json(method: str, response: httpx.Response) -> Any:
        try:
            data = response.json()
        except ValueError as e:
            raise NodeUnreachable(method, f"decoding json failed: {e}") from e
        if isinstance(data, dict) and data.get("Type") == "error":
            raise NodeUnreachable(method, str(data.get("Message", "unknown error")))
        return data

    def _decode(self, method: str, response: httpx.Response, model: type[ModelT]) -> ModelT:
        data = self._json(method, response)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise NodeUnreachable(method, f"unexpected response: {e}") from e

    @staticmethod
    def _decode_records(text: str) -> list[AddedEntry]:
        entries: list[AddedEntry] = []
        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(AddedEntry.model_validate(json.loads(line)))
            except (ValueError, ValidationError) as e:
                raise NodeUnreachable("add", f"json decode failed: {e}") from e
        return entries

    @staticmethod
    def _raise_for_pipe(status: PipeStatus, filename: str) -> None:
        if status.ok:
            return
        messages = {
            "open": "creating form file failed",
            "copy": "copy download failed",
            "close": "closing multipart writer failed",
        }
        raise FetchFailed(
            filename,
            f"{messages.get(status.stage, 'upload failed')}: {status.error}",
            stage=status.stage,
        ) from status.error
