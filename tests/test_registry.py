"""Tests for service probes, status aggregation and the registry."""

from __future__ import annotations

import asyncio
import socket
import time
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from servstat.config.models import ServiceEntry, ServStatConfig
from servstat.registry.health import check_all_services, check_health
from servstat.registry.models import ServiceOutcome, ServiceState, StatusReport
from servstat.registry.probes import parse_host_port, resolve_check
from servstat.registry.registry import ServiceRegistry


def _fake_client(**get_kwargs):
    mock_client = AsyncMock()
    for key, value in get_kwargs.items():
        setattr(mock_client.get, key, value)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


async def _scripted_probe(entry: ServiceEntry, timeout: float):
    """Probe whose behaviour is encoded in the service target: '<delay>:<state>'."""
    delay, state = entry.target.split(":")
    await asyncio.sleep(float(delay))
    if state == "up":
        return ServiceState.UP, None
    return ServiceState.DOWN, "Connection refused"


def _scripted(name: str, delay: float, state: str = "up") -> ServiceEntry:
    return ServiceEntry(name=name, check="scripted", target=f"{delay}:{state}")


# ─── Models ───


class TestModels:
    def test_outcome_to_dict(self):
        o = ServiceOutcome(identifier="nginx", state=ServiceState.UP, detail="active", latency_ms=3.2)
        assert o.to_dict() == {"service": "nginx", "state": "up", "detail": "active", "latency_ms": 3.2}
        assert o.status_label == "up"

    def test_report_counts(self):
        report = StatusReport(
            outcomes=(
                ServiceOutcome("a", ServiceState.UP),
                ServiceOutcome("b", ServiceState.DOWN),
                ServiceOutcome("c", ServiceState.UNKNOWN),
            )
        )
        assert len(report) == 3
        assert [o.identifier for o in report] == ["a", "b", "c"]
        assert report.count(ServiceState.UP) == 1
        assert not report.all_up
        assert [s["service"] for s in report.to_dict()["services"]] == ["a", "b", "c"]

    def test_empty_report(self):
        report = StatusReport()
        assert len(report) == 0
        assert report.all_up


# ─── Check type resolution ───


class TestResolveCheck:
    def test_explicit_check_wins(self):
        assert resolve_check(ServiceEntry(name="x", check="TCP", target="http://h")) == "tcp"

    def test_inferred_from_scheme(self):
        assert resolve_check(ServiceEntry(name="https://example.org")) == "http"
        assert resolve_check(ServiceEntry(name="db", target="tcp://db:5432")) == "tcp"

    def test_falls_back_to_default(self):
        assert resolve_check(ServiceEntry(name="nginx")) == "systemd"
        assert resolve_check(ServiceEntry(name="nginx"), default_check="tcp") == "tcp"


class TestParseHostPort:
    def test_plain(self):
        assert parse_host_port("db.local:5432") == ("db.local", 5432)

    def test_scheme_and_ipv6(self):
        assert parse_host_port("tcp://[::1]:6379") == ("::1", 6379)

    def test_missing_port(self):
        with pytest.raises(ValueError):
            parse_host_port("db.local")


# ─── check_health ───


class TestCheckHealthHttp:
    @pytest.mark.asyncio
    async def test_healthy_service(self):
        entry = ServiceEntry(name="web", target="http://localhost:8080/health")
        with patch("servstat.registry.probes.httpx.AsyncClient") as mock_cls:
            mock_cls.return_value = _fake_client(return_value=httpx.Response(200, json={"status": "ok"}))
            result = await check_health(entry)
        assert result.state is ServiceState.UP
        assert result.identifier == "web"
        assert result.detail == "HTTP 200"

    @pytest.mark.asyncio
    async def test_server_error_is_down(self):
        entry = ServiceEntry(name="web", target="http://localhost:8080")
        with patch("servstat.registry.probes.httpx.AsyncClient") as mock_cls:
            mock_cls.return_value = _fake_client(return_value=httpx.Response(503))
            result = await check_health(entry)
        assert result.state is ServiceState.DOWN
        assert result.detail == "HTTP 503"

    @pytest.mark.asyncio
    async def test_connection_refused_is_down(self):
        entry = ServiceEntry(name="web", check="http", target="localhost:8080")
        with patch("servstat.registry.probes.httpx.AsyncClient") as mock_cls:
            mock_cls.return_value = _fake_client(side_effect=httpx.ConnectError("Connection refused"))
            result = await check_health(entry)
        assert result.state is ServiceState.DOWN
        assert "Connection refused" in result.detail

    @pytest.mark.asyncio
    async def test_http_timeout_is_unknown(self):
        entry = ServiceEntry(name="web", target="http://localhost:8080")
        with patch("servstat.registry.probes.httpx.AsyncClient") as mock_cls:
            mock_cls.return_value = _fake_client(side_effect=httpx.ReadTimeout("slow"))
            result = await check_health(entry)
        assert result.state is ServiceState.UNKNOWN
        assert result.detail == "timeout"


class TestCheckHealthTcp:
    @pytest.mark.asyncio
    async def test_listening_port_is_up(self):
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            result = await check_health(ServiceEntry(name="local", check="tcp", target=f"127.0.0.1:{port}"))
        finally:
            server.close()
            await server.wait_closed()
        assert result.state is ServiceState.UP

    @pytest.mark.asyncio
    async def test_closed_port_is_down(self):
        with socket.socket() as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]
        result = await check_health(ServiceEntry(name="gone", check="tcp", target=f"127.0.0.1:{port}"))
        assert result.state is ServiceState.DOWN

    @pytest.mark.asyncio
    async def test_bad_target_is_down_not_raised(self):
        result = await check_health(ServiceEntry(name="oops", check="tcp", target="no-port-here"))
        assert result.state is ServiceState.DOWN
        assert "host:port" in result.detail


class TestCheckHealthSystemd:
    @pytest.mark.asyncio
    async def test_active_unit(self):
        proc = MagicMock()
        proc.communicate = AsyncMock(return_value=(b"active\n", None))
        proc.returncode = 0
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as mock_exec:
            result = await check_health(ServiceEntry(name="nginx"))
        assert result.state is ServiceState.UP
        assert mock_exec.call_args.args[:3] == ("systemctl", "is-active", "nginx")

    @pytest.mark.asyncio
    async def test_failed_unit(self):
        proc = MagicMock()
        proc.communicate = AsyncMock(return_value=(b"failed\n", None))
        proc.returncode = 3
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await check_health(ServiceEntry(name="nginx"))
        assert result.state is ServiceState.DOWN
        assert result.detail == "failed"

    @pytest.mark.asyncio
    async def test_systemctl_missing(self):
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError())):
            result = await check_health(ServiceEntry(name="nginx"))
        assert result.state is ServiceState.UNKNOWN


class TestCheckHealthContract:
    @pytest.mark.asyncio
    async def test_unknown_check_type(self):
        result = await check_health(ServiceEntry(name="x", check="carrier-pigeon"))
        assert result.state is ServiceState.UNKNOWN
        assert "carrier-pigeon" in result.detail

    @pytest.mark.asyncio
    async def test_slow_probe_times_out_as_unknown(self):
        async def never(entry, timeout):
            await asyncio.sleep(10)

        with patch.dict("servstat.registry.probes.PROBE_REGISTRY", {"never": never}):
            start = time.monotonic()
            result = await check_health(ServiceEntry(name="x", check="never"), timeout=0.05)
            elapsed = time.monotonic() - start
        assert result.state is ServiceState.UNKNOWN
        assert result.detail == "timeout"
        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_probe_exception_is_down(self):
        async def broken(entry, timeout):
            raise RuntimeError("protocol error")

        with patch.dict("servstat.registry.probes.PROBE_REGISTRY", {"broken": broken}):
            result = await check_health(ServiceEntry(name="x", check="broken"))
        assert result.state is ServiceState.DOWN
        assert result.detail == "protocol error"


# ─── check_all_services ───


class TestCheckAllServices:
    @pytest.mark.asyncio
    async def test_empty_list(self):
        report = await check_all_services([])
        assert isinstance(report, StatusReport)
        assert len(report) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [1, 2, 7])
    async def test_order_matches_configuration(self, count):
        # Later services finish first
        services = [_scripted(f"svc{i}", 0.01 * (count - i)) for i in range(count)]
        with patch.dict("servstat.registry.probes.PROBE_REGISTRY", {"scripted": _scripted_probe}):
            report = await check_all_services(services, timeout=1.0)
        assert [o.identifier for o in report] == [f"svc{i}" for i in range(count)]
        assert all(o.state is ServiceState.UP for o in report)

    @pytest.mark.asyncio
    async def test_mixed_outcomes_scenario(self):
        services = [_scripted("a", 0.01, "up"), _scripted("b", 5.0, "up"), _scripted("c", 0.005, "down")]
        with patch.dict("servstat.registry.probes.PROBE_REGISTRY", {"scripted": _scripted_probe}):
            start = time.monotonic()
            report = await check_all_services(services, timeout=0.2)
            elapsed = time.monotonic() - start
        assert [(o.identifier, o.state) for o in report] == [
            ("a", ServiceState.UP),
            ("b", ServiceState.UNKNOWN),
            ("c", ServiceState.DOWN),
        ]
        assert report.outcomes[1].detail == "timeout"
        assert elapsed < 0.6

    @pytest.mark.asyncio
    async def test_many_unresponsive_services_take_one_timeout(self):
        services = [_scripted(f"slow{i}", 10.0) for i in range(50)]
        with patch.dict("servstat.registry.probes.PROBE_REGISTRY", {"scripted": _scripted_probe}):
            start = time.monotonic()
            report = await check_all_services(services, timeout=0.1)
            elapsed = time.monotonic() - start
        assert len(report) == 50
        assert all(o.state is ServiceState.UNKNOWN for o in report)
        assert elapsed < 1.5

    @pytest.mark.asyncio
    async def test_deadline_records_pending_as_unknown(self):
        async def stuck(entry, timeout, default_check):
            if entry.name == "fast":
                return ServiceOutcome(entry.name, ServiceState.UP)
            await asyncio.sleep(10)

        services = [ServiceEntry(name="fast"), ServiceEntry(name="stuck")]
        with patch("servstat.registry.health.check_health", stuck):
            report = await check_all_services(services, timeout=5.0, deadline=0.05)
        assert [(o.identifier, o.state) for o in report] == [
            ("fast", ServiceState.UP),
            ("stuck", ServiceState.UNKNOWN),
        ]

    @pytest.mark.asyncio
    async def test_crashing_check_is_recorded_down(self):
        async def crash(entry, timeout, default_check):
            raise RuntimeError("boom")

        with patch("servstat.registry.health.check_health", crash):
            report = await check_all_services([ServiceEntry(name="x")])
        assert report.outcomes[0].state is ServiceState.DOWN
        assert report.outcomes[0].detail == "boom"


# ─── ServiceRegistry ───


class TestServiceRegistry:
    def test_service_ids(self, sample_config: ServStatConfig):
        reg = ServiceRegistry(sample_config)
        assert reg.service_ids == ["nginx", "https://example.org/health", "postgres"]

    def test_get_entry(self, sample_config: ServStatConfig):
        reg = ServiceRegistry(sample_config)
        assert reg.get_entry("postgres").target == "127.0.0.1:5432"
        assert reg.get_entry("unknown") is None

    @pytest.mark.asyncio
    async def test_check_one_unknown(self, sample_config: ServStatConfig):
        reg = ServiceRegistry(sample_config)
        result = await reg.check_one("nonexistent")
        assert result.state is ServiceState.UNKNOWN
        assert "Unknown service" in result.detail

    @pytest.mark.asyncio
    async def test_get_report_uses_config_timeouts(self, sample_config: ServStatConfig):
        reg = ServiceRegistry(sample_config)
        with patch("servstat.registry.registry.check_all_services", AsyncMock(return_value=StatusReport())) as mock_all:
            await reg.get_report()
        kwargs = mock_all.call_args.kwargs
        assert kwargs["timeout"] == 2.0
        assert kwargs["deadline"] == 3.0
        assert kwargs["default_check"] == "systemd"
        assert [s.name for s in mock_all.call_args.args[0]] == reg.service_ids

    def test_get_report_sync(self):
        reg = ServiceRegistry(ServStatConfig())
        report = reg.get_report_sync()
        assert len(report) == 0
