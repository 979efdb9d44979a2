"""Client for the Kubo (go-ipfs) HTTP RPC API."""

from ipfs_podcasting.kubo.address import api_base_url
from ipfs_podcasting.kubo.client import KuboClient

__all__ = ["KuboClient", "api_base_url"]
