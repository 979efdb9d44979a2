"""Resolve the configured storage node address to an HTTP base URL.

Kubo advertises its RPC endpoint as a multiaddr (``/ip4/127.0.0.1/tcp/5001``)
while most tooling expects a URL. Both forms are accepted. Only the
multiaddr protocols that can describe an HTTP endpoint are understood; this is
not a general multiaddr parser.
"""

from urllib.parse import urlsplit

DEFAULT_API_PORT = 5001

_HOST_PROTOCOLS = {"ip4", "ip6", "dns", "dns4", "dns6"}


def api_base_url(address: str) -> str:
    """Return the ``scheme://host:port`` base URL for a node address.

    Args:
        address: A multiaddr such as ``/ip4/127.0.0.1/tcp/5001`` or a URL
            such as ``http://127.0.0.1:5001``

    Returns:
        Base URL without a trailing slash

    Raises:
        ValueError: If the address cannot be interpreted
    """
    address = (address or "").strip()
    if not address:
        raise ValueError("Storage node address is empty")

    if address.startswith("/"):
        return _from_multiaddr(address)

    parts = urlsplit(address if "://" in address else f"http://{address}")
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValueError(f"Unsupported storage node address: {address}")
    port = parts.port or DEFAULT_API_PORT
    return f"{parts.scheme}://{_format_host(parts.hostname)}:{port}"


def _from_multiaddr(address: str) -> str:
    segments = [s for s in address.split("/") if s]
    if len(segments) < 4:
        raise ValueError(f"Incomplete multiaddr: {address}")

    host_proto, host, transport, port_text = segments[:4]
    if host_proto not in _HOST_PROTOCOLS:
        raise ValueError(f"Unsupported multiaddr host protocol: {host_proto}")
    if transport != "tcp":
        raise ValueError(f"Storage node RPC requires tcp, got: {transport}")

    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Invalid port in multiaddr: {port_text}") from None
    if not 0 < port < 65536:
        raise ValueError(f"Invalid port in multiaddr: {port}")

    scheme = "http"
    rest = segments[4:]
    if rest:
        if rest[0] in ("https", "tls"):
            scheme = "https"
        elif rest[0] != "http":
            raise ValueError(f"Unsupported multiaddr suffix: /{'/'.join(rest)}")

    return f"{scheme}://{_format_host(host)}:{port}"


def _format_host(host: str) -> str:
    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host
