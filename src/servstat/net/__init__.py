"""Listening sockets and the acceptors built on them."""

from servstat.net.acceptor import (
    Acceptor,
    AcceptorClosed,
    CompositeAcceptor,
    DualStackAcceptor,
    ListenerAcceptor,
    PendingConnection,
    TransientAcceptError,
    build_acceptor,
)
from servstat.net.binder import AddressFamily, BindError, ListenSpec, bind_listener

__all__ = [
    "Acceptor",
    "AcceptorClosed",
    "AddressFamily",
    "BindError",
    "CompositeAcceptor",
    "DualStackAcceptor",
    "ListenSpec",
    "ListenerAcceptor",
    "PendingConnection",
    "TransientAcceptError",
    "bind_listener",
    "build_acceptor",
]
