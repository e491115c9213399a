"""Probe implementations, one per check type.

A probe takes a service entry and a timeout and returns ``(state, detail)``.
It may raise; check_health() turns anything it raises into an outcome.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Optional
from urllib.parse import urlsplit

import httpx

from servstat.config.models import ServiceEntry
from servstat.registry.models import ServiceState

ProbeResult = tuple[ServiceState, Optional[str]]
Probe = Callable[[ServiceEntry, float], Awaitable[ProbeResult]]


def resolve_check(entry: ServiceEntry, default_check: str = "systemd") -> str:
    """Pick the check type for *entry*: explicit, inferred from scheme, or default."""
    if entry.check:
        return entry.check.strip().lower()
    address = entry.address
    if "://" in address:
        scheme = address.split("://", 1)[0].lower()
        if scheme in ("http", "https"):
            return "http"
        if scheme == "tcp":
            return "tcp"
    return default_check.strip().lower()


def parse_host_port(address: str) -> tuple[str, int]:
    """Split ``host:port``, ``[v6]:port`` or ``tcp://host:port``."""
    if "://" not in address:
        address = "tcp://" + address
    parts = urlsplit(address)
    try:
        port = parts.port
    except ValueError as exc:
        raise ValueError(f"Invalid port in {address!r}") from exc
    if not parts.hostname or port is None:
        raise ValueError(f"Expected host:port, got {address!r}")
    return parts.hostname, port


async def probe_http(entry: ServiceEntry, timeout: float) -> ProbeResult:
    url = entry.address
    if "://" not in url:
        url = "http://" + url
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.get(url)
    except httpx.ConnectError as exc:
        return ServiceState.DOWN, f"Connection refused: {exc}"
    except httpx.TimeoutException:
        return ServiceState.UNKNOWN, "timeout"
    except httpx.HTTPError as exc:
        return ServiceState.DOWN, str(exc) or type(exc).__name__
    if resp.status_code < 400:
        return ServiceState.UP, f"HTTP {resp.status_code}"
    return ServiceState.DOWN, f"HTTP {resp.status_code}"


async def probe_tcp(entry: ServiceEntry, timeout: float) -> ProbeResult:
    host, port = parse_host_port(entry.address)
    try:
        _reader, writer = await asyncio.open_connection(host, port)
    except ConnectionRefusedError:
        return ServiceState.DOWN, "Connection refused"
    except OSError as exc:
        return ServiceState.DOWN, exc.strerror or str(exc)
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
    return ServiceState.UP, None


async def probe_systemd(entry: ServiceEntry, timeout: float) -> ProbeResult:
    unit = entry.address
    try:
        proc = await asyncio.create_subprocess_exec(
            "systemctl",
            "is-active",
            unit,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except FileNotFoundError:
        return ServiceState.UNKNOWN, "systemctl not available"
    try:
        stdout, _ = await proc.communicate()
    finally:
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
    status = stdout.decode(errors="replace").strip() or "unknown"
    if status == "active":
        return ServiceState.UP, status
    return ServiceState.DOWN, status


PROBE_REGISTRY: dict[str, Probe] = {
    "http": probe_http,
    "tcp": probe_tcp,
    "systemd": probe_systemd,
}
