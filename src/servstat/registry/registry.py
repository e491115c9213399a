"""Service registry over the configured, ordered service list."""

from __future__ import annotations

import asyncio
from typing import List, Optional

from servstat.config.models import ServiceEntry, ServStatConfig
from servstat.registry.health import check_all_services, check_health
from servstat.registry.models import ServiceOutcome, ServiceState, StatusReport


class ServiceRegistry:
    """Ordered set of upstream services with health-check support."""

    def __init__(self, config: ServStatConfig) -> None:
        self._config = config
        self._services: tuple[ServiceEntry, ...] = tuple(config.services)

    @property
    def service_ids(self) -> List[str]:
        return [entry.name for entry in self._services]

    @property
    def services(self) -> tuple[ServiceEntry, ...]:
        return self._services

    def get_entry(self, name: str) -> Optional[ServiceEntry]:
        for entry in self._services:
            if entry.name == name:
                return entry
        return None

    async def check_one(self, name: str, timeout: float | None = None) -> ServiceOutcome:
        entry = self.get_entry(name)
        if entry is None:
            return ServiceOutcome(identifier=name, state=ServiceState.UNKNOWN, detail=f"Unknown service: {name}")
        return await check_health(
            entry,
            timeout=timeout or self._config.probe_timeout,
            default_check=self._config.default_check,
        )

    async def get_report(self, timeout: float | None = None) -> StatusReport:
        probe_timeout = timeout or self._config.probe_timeout
        deadline = self._config.aggregation_deadline if timeout is None else None
        return await check_all_services(
            self._services,
            timeout=probe_timeout,
            deadline=deadline,
            default_check=self._config.default_check,
        )

    def get_report_sync(self, timeout: float | None = None) -> StatusReport:
        return asyncio.run(self.get_report(timeout=timeout))
