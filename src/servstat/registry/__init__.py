"""Service probes and status aggregation."""

from servstat.registry.health import check_all_services, check_health
from servstat.registry.models import ServiceOutcome, ServiceState, StatusReport
from servstat.registry.registry import ServiceRegistry

__all__ = [
    "ServiceOutcome",
    "ServiceRegistry",
    "ServiceState",
    "StatusReport",
    "check_all_services",
    "check_health",
]
