"""Run the card server on one or more listen addresses.

Addresses are comma separated; each entry is one of::

    host:port     127.0.0.1:8000
    host          0.0.0.0          (default port)
    :port / port  :9000            (default host)
    [v6]:port     [::1]:8000

All sockets are served by a single uvicorn server and a single app, so the
card cache and in-flight fetches are shared across addresses.
"""

from __future__ import annotations

import logging
import socket
from typing import NamedTuple

import uvicorn

from glim.core.errors import InvalidBindAddressError
from glim.pipeline.generator import CardPipeline
from glim.server.app import create_app
from glim.server.config import Settings

logger = logging.getLogger(__name__)


class BindAddress(NamedTuple):
    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def _parse_port(text: str, entry: str) -> int:
    if not text.isdigit():
        raise InvalidBindAddressError(f"Invalid port in address {entry!r}")
    port = int(text)
    if not 0 < port < 65536:
        raise InvalidBindAddressError(f"Port out of range in address {entry!r}")
    return port


def _parse_one(entry: str, default_host: str, default_port: int) -> BindAddress:
    if entry.startswith("["):
        host, bracket, rest = entry[1:].partition("]")
        if not bracket or not host:
            raise InvalidBindAddressError(f"Unterminated IPv6 address {entry!r}")
        if not rest:
            return BindAddress(host, default_port)
        if not rest.startswith(":"):
            raise InvalidBindAddressError(f"Unexpected text after IPv6 address {entry!r}")
        return BindAddress(host, _parse_port(rest[1:], entry))

    if entry.isdigit():
        return BindAddress(default_host, _parse_port(entry, entry))

    if entry.count(":") > 1:
        # Bare IPv6 without brackets: host only
        return BindAddress(entry, default_port)

    host, colon, port_text = entry.partition(":")
    if not colon:
        return BindAddress(host, default_port)
    return BindAddress(host or default_host, _parse_port(port_text, entry))


def parse_addresses(raw: str | None, default_host: str, default_port: int) -> list[BindAddress]:
    """Parse a comma separated address list.

    An empty or missing *raw* yields ``[(default_host, default_port)]``.
    Duplicates are dropped, order is kept.

    Raises:
        InvalidBindAddressError: An entry has a malformed host or port.
    """
    if raw is None or not raw.strip():
        return [BindAddress(default_host, default_port)]

    addresses: list[BindAddress] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        address = _parse_one(entry, default_host, default_port)
        if address not in addresses:
            addresses.append(address)

    if not addresses:
        return [BindAddress(default_host, default_port)]
    return addresses


def bind_socket(address: BindAddress) -> socket.socket:
    """Create a listening socket for *address*."""
    try:
        infos = socket.getaddrinfo(
            address.host, address.port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
        )
    except socket.gaierror as e:
        raise InvalidBindAddressError(f"Cannot resolve {address}: {e}") from e

    family, socktype, proto, _, sockaddr = infos[0]
    sock = socket.socket(family, socktype, proto)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    if family == socket.AF_INET6:
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
    try:
        sock.bind(sockaddr)
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def create_server(settings: Settings, pipeline: CardPipeline | None = None) -> uvicorn.Server:
    """Build the uvicorn server around one card app."""
    config = uvicorn.Config(
        create_app(settings, pipeline=pipeline),
        log_level=settings.log_level.lower(),
        proxy_headers=True,
    )
    return uvicorn.Server(config)


def run_server(
    addresses: list[BindAddress],
    settings: Settings | None = None,
    pipeline: CardPipeline | None = None,
) -> None:
    """Serve the card app on every address until interrupted."""
    if settings is None:
        settings = Settings()

    sockets: list[socket.socket] = []
    try:
        for address in addresses:
            sock = bind_socket(address)
            sockets.append(sock)
            logger.info("Listening on http://%s", BindAddress(address.host, sock.getsockname()[1]))
        create_server(settings, pipeline).run(sockets=sockets)
    finally:
        for sock in sockets:
            sock.close()
