"""Single- and multi-listener connection acceptors.

An acceptor hands out accepted sockets one at a time. ``try_accept()`` never
blocks; ``accept()`` suspends on event-loop readiness notifications until a
connection is available. ``CompositeAcceptor`` checks its children in a fixed
order on every call and waits on all of them at once, so a listener with a
pending connection is never held up by another one.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from servstat.config.models import ListenStack
from servstat.net.binder import AddressFamily, BindError, ListenSpec, bind_listener, bound_spec

logger = logging.getLogger(__name__)


@dataclass
class PendingConnection:
    """An accepted connection not yet handed to the HTTP layer."""

    sock: socket.socket
    peer: Any
    spec: ListenSpec


class AcceptorClosed(Exception):
    """Raised by accept() once the acceptor has been closed."""


class TransientAcceptError(Exception):
    """A single accept attempt failed on one listener.

    The listener stays open; the caller should call accept() again.
    """

    def __init__(self, spec: ListenSpec, error: OSError) -> None:
        super().__init__(f"accept failed on {spec.display}: {error}")
        self.spec = spec
        self.error = error

    @property
    def errno(self) -> int | None:
        return self.error.errno


class Acceptor(Protocol):
    """Anything that yields inbound connections."""

    @property
    def listen_specs(self) -> tuple[ListenSpec, ...]: ...

    @property
    def sockets(self) -> tuple[socket.socket, ...]: ...

    def try_accept(self) -> PendingConnection | None: ...

    async def accept(self) -> PendingConnection: ...

    def close(self) -> None: ...


class _ReadinessAcceptor:
    """Shared accept()/close() on top of a subclass's try_accept()."""

    def __init__(self) -> None:
        self._closed = False
        self._waiter: asyncio.Future[None] | None = None
        self._watched: list[int] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def sockets(self) -> tuple[socket.socket, ...]:
        raise NotImplementedError

    def try_accept(self) -> PendingConnection | None:
        raise NotImplementedError

    async def accept(self) -> PendingConnection:
        """Return the next connection, suspending until one is ready."""
        while True:
            conn = self.try_accept()
            if conn is not None:
                return conn
            await self._wait_ready()

    async def _wait_ready(self) -> None:
        if self._closed:
            raise AcceptorClosed()
        if self._waiter is not None:
            raise RuntimeError("accept() is already being awaited")
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        self._loop = loop
        self._waiter = waiter
        self._watched = [sock.fileno() for sock in self.sockets]
        for fd in self._watched:
            loop.add_reader(fd, _wake)
        try:
            await waiter
        finally:
            self._unwatch()

    def _unwatch(self) -> None:
        if self._loop is not None:
            for fd in self._watched:
                self._loop.remove_reader(fd)
        self._watched = []
        self._waiter = None
        self._loop = None

    def close(self) -> None:
        """Release every listener. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        waiter = self._waiter
        self._unwatch()
        if waiter is not None and not waiter.done():
            waiter.set_exception(AcceptorClosed())
        self._close_sockets()

    def _close_sockets(self) -> None:
        raise NotImplementedError


class ListenerAcceptor(_ReadinessAcceptor):
    """Accepts from exactly one listening socket."""

    def __init__(self, sock: socket.socket, spec: ListenSpec) -> None:
        super().__init__()
        self._sock = sock
        self._spec = spec

    @property
    def listen_specs(self) -> tuple[ListenSpec, ...]:
        return (self._spec,)

    @property
    def sockets(self) -> tuple[socket.socket, ...]:
        return (self._sock,)

    def try_accept(self) -> PendingConnection | None:
        if self._closed:
            raise AcceptorClosed()
        try:
            conn, peer = self._sock.accept()
        except (BlockingIOError, InterruptedError):
            return None
        except OSError as exc:
            raise TransientAcceptError(self._spec, exc) from exc
        return PendingConnection(sock=conn, peer=peer, spec=self._spec)

    def _close_sockets(self) -> None:
        self._sock.close()


class CompositeAcceptor(_ReadinessAcceptor):
    """Presents several acceptors as one, checked in a fixed order.

    If one child fails while a later child has a connection ready, the
    connection is returned first and the failure is raised on the next call.
    """

    def __init__(self, children: Sequence[Acceptor]) -> None:
        super().__init__()
        if not children:
            raise ValueError("CompositeAcceptor needs at least one child")
        self._children = tuple(children)
        self._deferred: TransientAcceptError | None = None

    @property
    def children(self) -> tuple[Acceptor, ...]:
        return self._children

    @property
    def listen_specs(self) -> tuple[ListenSpec, ...]:
        return tuple(spec for child in self._children for spec in child.listen_specs)

    @property
    def sockets(self) -> tuple[socket.socket, ...]:
        return tuple(sock for child in self._children for sock in child.sockets)

    def try_accept(self) -> PendingConnection | None:
        if self._closed:
            raise AcceptorClosed()
        if self._deferred is not None:
            error, self._deferred = self._deferred, None
            raise error
        failure: TransientAcceptError | None = None
        for child in self._children:
            try:
                conn = child.try_accept()
            except TransientAcceptError as exc:
                if failure is None:
                    failure = exc
                continue
            if conn is not None:
                self._deferred = failure
                return conn
        if failure is not None:
            raise failure
        return None

    def _close_sockets(self) -> None:
        for child in self._children:
            child.close()


class DualStackAcceptor(CompositeAcceptor):
    """An IPv4 listener and an IPv6 listener behind one accept stream."""

    def __init__(self, v4: Acceptor, v6: Acceptor) -> None:
        super().__init__([v4, v6])


def listen_specs_for(
    stack: ListenStack,
    port: int,
    v4_host: str = "127.0.0.1",
    v6_host: str = "::1",
) -> list[ListenSpec]:
    """Resolve the listeners a stack mode asks for, in checking order."""
    specs: list[ListenSpec] = []
    if stack in (ListenStack.V4, ListenStack.BOTH):
        specs.append(ListenSpec(AddressFamily.IPV4, v4_host, port))
    if stack in (ListenStack.V6, ListenStack.BOTH):
        specs.append(ListenSpec(AddressFamily.IPV6, v6_host, port))
    return specs


def build_acceptor(
    stack: ListenStack,
    port: int,
    v4_host: str = "127.0.0.1",
    v6_host: str = "::1",
    backlog: int = 100,
) -> Acceptor:
    """Bind every listener *stack* requires and return one acceptor.

    Single-stack modes get the bare ListenerAcceptor. Any bind failure
    closes what was already bound and re-raises BindError.
    """
    acceptors: list[ListenerAcceptor] = []
    for spec in listen_specs_for(stack, port, v4_host, v6_host):
        try:
            sock = bind_listener(spec, backlog=backlog)
        except BindError:
            for acceptor in acceptors:
                acceptor.close()
            raise
        acceptors.append(ListenerAcceptor(sock, bound_spec(sock, spec)))
        logger.debug("Bound listener on %s", acceptors[-1].listen_specs[0].display)

    if len(acceptors) == 1:
        return acceptors[0]
    return DualStackAcceptor(acceptors[0], acceptors[1])
