"""Test fixture package for the IPFS Podcasting updater.

Contains fixtures for:
- A fake Kubo node served through httpx.MockTransport
"""

from .kubo import FakeKubo, fake_kubo, kubo_client, make_kubo_client

__all__ = [
    # Kubo
    "FakeKubo",
    "fake_kubo",
    "kubo_client",
    "make_kubo_client",
]
