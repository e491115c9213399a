"""uvicorn server that takes its connections from an Acceptor."""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
import socket
from collections.abc import Callable

import uvicorn

from servstat.net.acceptor import Acceptor, AcceptorClosed, TransientAcceptError

logger = logging.getLogger(__name__)

# Pause after running out of descriptors or buffers, as asyncio's own
# accept loop does.
ACCEPT_RETRY_DELAY = 1.0
# Back-off step and ceiling for other accept errors that keep repeating.
ACCEPT_ERROR_BACKOFF = 0.05
ACCEPT_ERROR_BACKOFF_MAX = 0.25

_RESOURCE_ERRNOS = frozenset({errno.EMFILE, errno.ENFILE, errno.ENOBUFS, errno.ENOMEM})


class AcceptLoop:
    """Feeds accepted sockets into an asyncio protocol factory.

    Quacks like ``asyncio.Server`` as far as uvicorn's shutdown needs:
    ``close()`` and ``wait_closed()``.
    """

    def __init__(
        self,
        acceptor: Acceptor,
        protocol_factory: Callable[[], asyncio.Protocol],
    ) -> None:
        self._acceptor = acceptor
        self._protocol_factory = protocol_factory
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run(), name="servstat-accept")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        failures = 0
        while True:
            try:
                pending = await self._acceptor.accept()
            except AcceptorClosed:
                return
            except TransientAcceptError as exc:
                logger.warning("%s", exc)
                failures += 1
                await asyncio.sleep(self._retry_delay(exc, failures))
                continue
            failures = 0
            logger.debug("Accepted %s on %s", pending.peer, pending.spec.display)
            try:
                await loop.connect_accepted_socket(self._protocol_factory, pending.sock)
            except OSError:
                logger.exception("Could not start connection from %s", pending.peer)
                pending.sock.close()

    @staticmethod
    def _retry_delay(exc: TransientAcceptError, failures: int) -> float:
        # try_accept() raises without suspending, so every error must yield
        # to the loop; a listener that keeps failing backs off further.
        if exc.errno in _RESOURCE_ERRNOS:
            return ACCEPT_RETRY_DELAY
        if failures <= 1:
            return 0
        return min(ACCEPT_ERROR_BACKOFF * (failures - 1), ACCEPT_ERROR_BACKOFF_MAX)

    def close(self) -> None:
        self._acceptor.close()

    async def wait_closed(self) -> None:
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class AcceptorServer(uvicorn.Server):
    """uvicorn.Server whose listeners are an already-bound Acceptor."""

    def __init__(self, config: uvicorn.Config, acceptor: Acceptor) -> None:
        super().__init__(config)
        self.acceptor = acceptor

    async def startup(self, sockets: list[socket.socket] | None = None) -> None:
        await self.lifespan.startup()
        if self.lifespan.should_exit:
            self.should_exit = True
            return

        config = self.config

        def create_protocol(_loop: asyncio.AbstractEventLoop | None = None) -> asyncio.Protocol:
            return config.http_protocol_class(  # type: ignore[call-arg]
                config=config,
                server_state=self.server_state,
                app_state=self.lifespan.state,
                _loop=_loop,
            )

        accept_loop = AcceptLoop(self.acceptor, create_protocol)
        accept_loop.start()
        self.servers = [accept_loop]  # type: ignore[list-item]

        for spec in self.acceptor.listen_specs:
            logger.info("Listening on http://%s", spec.display)
        self.started = True


def make_server(app: object, acceptor: Acceptor, log_level: str = "info") -> AcceptorServer:
    """Build an AcceptorServer for *app*.

    Proxy header rewriting is off so the transport peer stays visible to the
    app; X-Forwarded-For is interpreted by the route that needs it.
    """
    config = uvicorn.Config(app, log_level=log_level.lower(), proxy_headers=False)  # type: ignore[arg-type]
    return AcceptorServer(config, acceptor)
