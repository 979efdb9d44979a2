"""Data exchanged between the worker, the storage node and the coordinator."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

NO_WORK_MESSAGE = "No Work"


class CycleResult(str, Enum):
    """How a work cycle ended."""

    IDLE = "idle"
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


class NodeStatus(BaseModel):
    """Storage node status, read fresh every cycle."""

    identity: str
    software_version: str
    online: bool
    peer_count: int


class RepoUsage(BaseModel):
    used_bytes: int
    capacity_bytes: int
    object_count: int = 0


class StoredContent(BaseModel):
    """A content reference and its byte length."""

    reference: str
    length: int


class Job(BaseModel):
    """Instruction returned by the coordinator.

    The directives are independent and may arrive together.
    """

    model_config = ConfigDict(extra="ignore")

    show: str = ""
    episode: str = ""
    download: str = ""
    filename: str = ""
    pin: str = ""
    delete: str = ""
    message: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def stringify(cls, value: Any) -> str:
        """The coordinator is loose with types; treat null as absent."""
        if value is None:
            return ""
        return str(value).strip()

    @property
    def is_idle(self) -> bool:
        return self.message == NO_WORK_MESSAGE

    @property
    def has_download(self) -> bool:
        return bool(self.download and self.filename)

    @property
    def has_pin(self) -> bool:
        return bool(self.pin)

    @property
    def has_delete(self) -> bool:
        return bool(self.delete)


class JobOutcome(BaseModel):
    """Result of executing one job, built and discarded within a cycle."""

    downloaded: StoredContent | None = None
    pinned: StoredContent | None = None
    deleted: str | None = None
    error: bool = False

    @property
    def length(self) -> int | None:
        # The coordinator takes a single length; the pin directive runs last
        if self.pinned is not None:
            return self.pinned.length
        if self.downloaded is not None:
            return self.downloaded.length
        return None


class WorkRequest(BaseModel):
    """Payload posted to the coordinator, both to ask for work and to report."""

    email: str
    version: str
    status: NodeStatus
    outcome: JobOutcome | None = None
    usage: RepoUsage | None = None

    def form_data(self) -> dict[str, str]:
        """Encode as the coordinator's form fields."""
        data = {
            "email": self.email,
            "version": self.version,
            "ipfs_id": self.status.identity,
            "ipfs_ver": self.status.software_version,
            "online": "true" if self.status.online else "false",
            "peers": str(self.status.peer_count),
        }

        outcome = self.outcome
        if outcome is not None:
            if outcome.downloaded is not None:
                data["downloaded"] = outcome.downloaded.reference
            if outcome.length is not None:
                data["length"] = str(outcome.length)
            if outcome.error:
                data["error"] = "1"
            if outcome.pinned is not None:
                data["pinned"] = outcome.pinned.reference
            if outcome.deleted is not None:
                data["deleted"] = outcome.deleted

        if self.usage is not None:
            data["used"] = str(self.usage.used_bytes)
            data["avail"] = str(self.usage.capacity_bytes)

        return data


class JobEvent(BaseModel):
    """One executed directive, as reported to the observability sink."""

    job_type: str
    success: bool
    duration_seconds: float
