"""Shared fixtures for servstat tests."""

from __future__ import annotations

import socket
from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from servstat.config.models import ServStatConfig

SAMPLE_CONFIG: Dict[str, Any] = {
    "title": "Home server",
    "listen_port": 8080,
    "listen_stack": "both",
    "probe_timeout": 2.0,
    "services": [
        "nginx",
        "https://example.org/health",
        {"name": "postgres", "check": "tcp", "target": "127.0.0.1:5432"},
    ],
}


def _ipv6_loopback_available() -> bool:
    if not socket.has_ipv6:
        return False
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_STREAM) as sock:
            sock.bind(("::1", 0))
    except OSError:
        return False
    return True


HAS_IPV6 = _ipv6_loopback_available()

requires_ipv6 = pytest.mark.skipif(not HAS_IPV6, reason="IPv6 loopback not available")


@pytest.fixture()
def sample_config() -> ServStatConfig:
    """Return a parsed ServStatConfig from sample data."""
    return ServStatConfig(**SAMPLE_CONFIG)


@pytest.fixture()
def sample_config_dict() -> Dict[str, Any]:
    """Return raw sample config dict."""
    return dict(SAMPLE_CONFIG)


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
    """Write sample config to a temp servstat.yaml and return the path."""
    path = tmp_path / "servstat.yaml"
    with path.open("w") as fh:
        yaml.dump(SAMPLE_CONFIG, fh)
    return path
