"""Data models for service outcomes and status reports."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional


class ServiceState(str, Enum):
    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ServiceOutcome:
    """Result of probing one service once."""

    identifier: str
    state: ServiceState
    detail: Optional[str] = None
    latency_ms: float = 0.0

    @property
    def status_label(self) -> str:
        return self.state.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.identifier,
            "state": self.state.value,
            "detail": self.detail,
            "latency_ms": self.latency_ms,
        }


@dataclass(frozen=True)
class StatusReport:
    """Outcomes for every configured service, in configuration order."""

    outcomes: tuple[ServiceOutcome, ...] = ()
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[ServiceOutcome]:
        return iter(self.outcomes)

    @property
    def all_up(self) -> bool:
        return all(o.state is ServiceState.UP for o in self.outcomes)

    def count(self, state: ServiceState) -> int:
        return sum(1 for o in self.outcomes if o.state is state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "all_up": self.all_up,
            "services": [o.to_dict() for o in self.outcomes],
        }
