"""servstat: upstream service status over a dual-stack HTTP listener."""

__version__ = "0.1.0"
