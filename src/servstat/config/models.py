"""Pydantic models for servstat configuration."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr, field_validator, model_validator

LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


class ListenStack(str, Enum):
    """Which address families the server listens on."""

    V4 = "v4"
    V6 = "v6"
    BOTH = "both"


class ServiceEntry(BaseModel):
    """A configured upstream service.

    ``name`` is the identifier shown on the status page. ``target`` is what
    the probe talks to (a URL, ``host:port`` or unit name) and falls back to
    the name. ``check`` selects the probe kind; when empty it is inferred
    from the target.
    """

    model_config = {"frozen": True}

    name: str
    check: str = ""
    target: str = ""

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("service name must not be empty")
        return value

    @property
    def address(self) -> str:
        return self.target or self.name


class ServStatConfig(BaseModel):
    """Root configuration model for servstat.yaml."""

    title: str = "Service status"
    listen_port: int = Field(default=8080, ge=0, le=65535)
    listen_stack: ListenStack = ListenStack.BOTH
    listen_v4: str = "127.0.0.1"
    listen_v6: str = "::1"
    backlog: int = Field(default=100, gt=0)
    probe_timeout: float = Field(default=5.0, gt=0)
    deadline: float | None = Field(default=None, gt=0)
    default_check: str = "systemd"
    log_level: str = "info"
    services: list[ServiceEntry] = Field(default_factory=list)

    _source: Path | None = PrivateAttr(default=None)

    @field_validator("services", mode="before")
    @classmethod
    def _coerce_services(cls, value: Any) -> Any:
        # Bare strings are shorthand for {"name": <string>}
        if value is None:
            return []
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    @field_validator("default_check")
    @classmethod
    def _lower_check(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("listen_stack", mode="before")
    @classmethod
    def _lower_stack(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def _deadline_covers_timeout(self) -> ServStatConfig:
        if self.deadline is not None and self.deadline < self.probe_timeout:
            raise ValueError("deadline must not be shorter than probe_timeout")
        return self

    @model_validator(mode="after")
    def _known_checks(self) -> ServStatConfig:
        from servstat.registry.probes import PROBE_REGISTRY

        expected = ", ".join(sorted(PROBE_REGISTRY))
        if self.default_check not in PROBE_REGISTRY:
            raise ValueError(f"default_check: unknown check type '{self.default_check}' (expected one of {expected})")
        for entry in self.services:
            kind = entry.check.strip().lower()
            if kind and kind not in PROBE_REGISTRY:
                raise ValueError(f"service '{entry.name}': unknown check type '{entry.check}' (expected one of {expected})")
        return self

    @property
    def source(self) -> Path | None:
        """File this configuration was loaded from, if any."""
        return self._source

    @property
    def aggregation_deadline(self) -> float:
        """Upper bound for one full status round."""
        if self.deadline is not None:
            return self.deadline
        return self.probe_timeout + 1.0
