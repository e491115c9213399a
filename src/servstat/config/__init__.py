"""servstat configuration system."""

from servstat.config.loader import find_config_file, load_config, resolve_config_path
from servstat.config.models import ListenStack, ServiceEntry, ServStatConfig

__all__ = [
    "ListenStack",
    "ServStatConfig",
    "ServiceEntry",
    "load_config",
    "find_config_file",
    "resolve_config_path",
]
