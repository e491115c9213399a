"""Listening socket creation for one address family."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from enum import Enum


class AddressFamily(str, Enum):
    IPV4 = "ipv4"
    IPV6 = "ipv6"

    @property
    def socket_family(self) -> socket.AddressFamily:
        return socket.AF_INET if self is AddressFamily.IPV4 else socket.AF_INET6


@dataclass(frozen=True)
class ListenSpec:
    """Where a single listener binds."""

    family: AddressFamily
    host: str
    port: int

    @property
    def display(self) -> str:
        if self.family is AddressFamily.IPV6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


class BindError(Exception):
    """A listener could not be bound. Always fatal at startup."""

    def __init__(self, spec: ListenSpec, reason: str) -> None:
        super().__init__(f"Cannot listen on {spec.display}: {reason}")
        self.spec = spec
        self.reason = reason


def bind_listener(spec: ListenSpec, backlog: int = 100) -> socket.socket:
    """Open a non-blocking listening TCP socket for *spec*.

    Raises BindError for an address in use, missing permission or an
    address that does not belong to the requested family.
    """
    try:
        sock = socket.socket(spec.family.socket_family, socket.SOCK_STREAM)
    except OSError as exc:
        raise BindError(spec, exc.strerror or str(exc)) from exc
    try:
        if os.name != "nt":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if spec.family is AddressFamily.IPV6:
            # The v4 listener owns IPv4 traffic on the same port
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
        sock.bind((spec.host, spec.port))
        sock.listen(backlog)
        sock.setblocking(False)
    except (OSError, OverflowError) as exc:
        sock.close()
        reason = getattr(exc, "strerror", None) or str(exc)
        raise BindError(spec, reason) from exc
    return sock


def bound_spec(sock: socket.socket, spec: ListenSpec) -> ListenSpec:
    """Return *spec* with the port the OS actually assigned (for port 0)."""
    port = sock.getsockname()[1]
    if port == spec.port:
        return spec
    return ListenSpec(family=spec.family, host=spec.host, port=port)
