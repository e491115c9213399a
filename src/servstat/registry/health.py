"""Async health check utilities."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence

from servstat.config.models import ServiceEntry
from servstat.registry.models import ServiceOutcome, ServiceState, StatusReport
from servstat.registry.probes import PROBE_REGISTRY, resolve_check

logger = logging.getLogger(__name__)

TIMEOUT_DETAIL = "timeout"


async def check_health(
    entry: ServiceEntry,
    timeout: float = 5.0,
    default_check: str = "systemd",
) -> ServiceOutcome:
    """Probe a single service. Failures become outcomes, never exceptions."""
    kind = resolve_check(entry, default_check)
    probe = PROBE_REGISTRY.get(kind)
    if probe is None:
        return ServiceOutcome(
            identifier=entry.name,
            state=ServiceState.UNKNOWN,
            detail=f"Unknown check type: {kind}",
        )
    start = time.monotonic()
    try:
        state, detail = await asyncio.wait_for(probe(entry, timeout), timeout=timeout)
    except TimeoutError:
        state, detail = ServiceState.UNKNOWN, TIMEOUT_DETAIL
    except Exception as exc:
        logger.debug("Probe %s for %s failed", kind, entry.name, exc_info=True)
        state, detail = ServiceState.DOWN, str(exc) or type(exc).__name__
    latency = (time.monotonic() - start) * 1000
    return ServiceOutcome(
        identifier=entry.name,
        state=state,
        detail=detail,
        latency_ms=round(latency, 1),
    )


async def check_all_services(
    services: Sequence[ServiceEntry],
    timeout: float = 5.0,
    deadline: float | None = None,
    default_check: str = "systemd",
) -> StatusReport:
    """Run health checks for all services concurrently.

    Every probe is bounded by *timeout* and the whole round by *deadline*
    (default ``timeout + 1``). The report lists one outcome per service in
    the order given, whatever order the probes finish in.
    """
    if not services:
        return StatusReport()
    if deadline is None:
        deadline = timeout + 1.0

    tasks = [
        asyncio.create_task(
            check_health(entry, timeout=timeout, default_check=default_check),
            name=f"probe-{entry.name}",
        )
        for entry in services
    ]
    try:
        _done, pending = await asyncio.wait(tasks, timeout=deadline)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        raise
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
        logger.warning("%d probe(s) still running at the %.1fs deadline", len(pending), deadline)

    outcomes: list[ServiceOutcome] = []
    for entry, task in zip(services, tasks):
        if task in pending or task.cancelled():
            outcomes.append(
                ServiceOutcome(identifier=entry.name, state=ServiceState.UNKNOWN, detail=TIMEOUT_DETAIL)
            )
            continue
        exc = task.exception()
        if exc is not None:
            outcomes.append(ServiceOutcome(identifier=entry.name, state=ServiceState.DOWN, detail=str(exc)))
        else:
            outcomes.append(task.result())
    return StatusReport(outcomes=tuple(outcomes))
