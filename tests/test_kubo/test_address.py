"""Tests for storage node address resolution."""

import pytest

from ipfs_podcasting.kubo.address import api_base_url


class TestMultiaddr:
    """Test multiaddr forms of the RPC address."""

    @pytest.mark.parametrize(
        "address,expected",
        [
            ("/ip4/127.0.0.1/tcp/5001", "http://127.0.0.1:5001"),
            ("/ip4/10.1.2.3/tcp/5002/http", "http://10.1.2.3:5002"),
            ("/ip6/::1/tcp/5001", "http://[::1]:5001"),
            ("/dns/ipfs.local/tcp/5001", "http://ipfs.local:5001"),
            ("/dns4/node.example.com/tcp/443/https", "https://node.example.com:443"),
            ("/dns6/node.example.com/tcp/443/tls", "https://node.example.com:443"),
        ],
    )
    def test_should_resolve_supported_multiaddrs(self, address, expected):
        """Test ip and dns multiaddrs resolve to an HTTP base URL."""
        assert api_base_url(address) == expected

    @pytest.mark.parametrize(
        "address",
        [
            "/ip4/127.0.0.1",
            "/ip4/127.0.0.1/udp/5001",
            "/unix/tmp/ipfs.sock/tcp/1",
            "/ip4/127.0.0.1/tcp/http",
            "/ip4/127.0.0.1/tcp/70000",
            "/ip4/127.0.0.1/tcp/5001/ws",
        ],
    )
    def test_should_reject_unusable_multiaddrs(self, address):
        """Test multiaddrs that cannot describe an HTTP endpoint are rejected."""
        with pytest.raises(ValueError):
            api_base_url(address)


class TestUrl:
    """Test URL forms of the RPC address."""

    @pytest.mark.parametrize(
        "address,expected",
        [
            ("http://127.0.0.1:5001", "http://127.0.0.1:5001"),
            ("http://127.0.0.1:5001/", "http://127.0.0.1:5001"),
            ("https://ipfs.example.com", "https://ipfs.example.com:5001"),
            ("localhost:5005", "http://localhost:5005"),
            ("  http://[::1]:5001  ", "http://[::1]:5001"),
        ],
    )
    def test_should_resolve_urls(self, address, expected):
        """Test URLs default the scheme to http and the port to 5001."""
        assert api_base_url(address) == expected

    @pytest.mark.parametrize("address", ["", "   ", "ftp://127.0.0.1:5001", "http://"])
    def test_should_reject_invalid_urls(self, address):
        """Test empty and non-HTTP addresses are rejected."""
        with pytest.raises(ValueError):
            api_base_url(address)
