"""Connector factories for outbound GitHub traffic.

aiohttp connectors are bound to the running event loop, so the client receives
a factory and builds its connector when the HTTP session is first opened.
"""

from collections.abc import Callable
from urllib.parse import urlparse

import aiohttp
from aiohttp_socks import ProxyConnector

ConnectorFactory = Callable[[], aiohttp.BaseConnector]


def normalize_socks5_url(endpoint: str) -> str:
    """Turn ``host:port`` or ``socks5://host:port`` into a proxy URL.

    Raises:
        ValueError: If the endpoint has no host or no valid port
    """
    endpoint = endpoint.strip()
    if "://" not in endpoint:
        endpoint = f"socks5://{endpoint}"

    parsed = urlparse(endpoint)
    if parsed.scheme not in ("socks5", "socks5h"):
        raise ValueError(f"unsupported proxy scheme: {parsed.scheme}")
    if not parsed.hostname:
        raise ValueError(f"missing proxy host in {endpoint!r}")
    # .port raises ValueError for out of range values
    if parsed.port is None:
        raise ValueError(f"missing proxy port in {endpoint!r}")
    return endpoint


def socks5_connector_factory(endpoint: str) -> ConnectorFactory:
    """Build a connector factory tunnelling every connection through SOCKS5.

    Raises:
        ValueError: If the endpoint cannot be parsed
    """
    url = normalize_socks5_url(endpoint)

    def factory() -> aiohttp.BaseConnector:
        return ProxyConnector.from_url(url, rdns=True)

    return factory
