"""Error taxonomy shared by the storage client, the coordinator codec and the worker."""


class UpdaterError(Exception):
    """Base class for every failure raised by the updater."""


class NodeUnreachable(UpdaterError):
    """Raised when a storage node RPC call fails.

    Covers transport errors, error envelopes returned by the node and
    response bodies that cannot be decoded.
    """

    def __init__(self, method: str, message: str) -> None:
        self.method = method
        self.message = message
        super().__init__(f"{method}: {message}")


class MalformedLinks(NodeUnreachable):
    """Raised when an ``ls`` result does not have the expected shape."""


class FetchFailed(UpdaterError):
    """Raised when downloading content or streaming it into the node fails.

    ``stage`` names the step that failed: ``download`` for the HTTP GET
    itself, or one of the upload producer stages (``open``, ``copy``,
    ``close``).
    """

    def __init__(self, url: str, message: str, stage: str = "download") -> None:
        self.url = url
        self.message = message
        self.stage = stage
        super().__init__(f"{stage} failed for {url}: {message}")


class CoordinatorUnreachable(UpdaterError):
    """Raised when the coordinator cannot be reached, after any retries."""

    def __init__(self, endpoint: str, message: str, attempts: int = 1) -> None:
        self.endpoint = endpoint
        self.attempts = attempts
        super().__init__(f"{endpoint} failed after {attempts} attempt(s): {message}")


class ProtocolDecodeError(UpdaterError):
    """Raised when the coordinator answers with something that is not a job."""
