"""Response models for the Kubo RPC API.

Field names follow the JSON emitted by Kubo; only the fields the updater reads
are required; everything else is optional or ignored.
"""

from pydantic import BaseModel, ConfigDict, Field


class KuboModel(BaseModel):
    """Base model accepting Kubo's field names and ignoring unknown keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class NodeIdentity(KuboModel):
    """Response of ``/api/v0/id``."""

    id: str = Field(alias="ID")
    public_key: str = Field(default="", alias="PublicKey")
    addresses: list[str] | None = Field(default=None, alias="Addresses")
    agent_version: str = Field(default="", alias="AgentVersion")
    protocols: list[str] | None = Field(default=None, alias="Protocols")


class DiskInfo(KuboModel):
    free_space: int = 0
    fstype: str = ""
    total_space: int = 0


class NetInfo(KuboModel):
    interface_addresses: list[str] | None = None
    online: bool = False


class DiagSys(KuboModel):
    """Response of ``/api/v0/diag/sys``."""

    ipfs_version: str
    ipfs_commit: str = ""
    diskinfo: DiskInfo = Field(default_factory=DiskInfo)
    net: NetInfo = Field(default_factory=NetInfo)


class RepoStat(KuboModel):
    """Response of ``/api/v0/repo/stat``."""

    repo_size: int = Field(alias="RepoSize")
    storage_max: int = Field(alias="StorageMax")
    num_objects: int = Field(default=0, alias="NumObjects")
    repo_path: str = Field(default="", alias="RepoPath")
    version: str = Field(default="", alias="Version")


class AddedEntry(KuboModel):
    """One NDJSON record of ``/api/v0/add``.

    Kubo encodes ``Size`` as a string.
    """

    name: str = Field(default="", alias="Name")
    hash: str = Field(alias="Hash")
    size: int = Field(default=0, alias="Size")


class Link(KuboModel):
    name: str = Field(default="", alias="Name")
    hash: str = Field(alias="Hash")
    size: int = Field(default=0, alias="Size")
    type: int = Field(default=0, alias="Type")
    target: str = Field(default="", alias="Target")


class LsObject(KuboModel):
    hash: str = Field(default="", alias="Hash")
    links: list[Link] | None = Field(default=None, alias="Links")


class LsResult(KuboModel):
    """Response of ``/api/v0/ls``."""

    objects: list[LsObject] | None = Field(default=None, alias="Objects")
