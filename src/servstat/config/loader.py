"""Locate, read and validate servstat.yaml."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from servstat.config.models import ServStatConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "servstat.yaml"

# ${VAR} or ${VAR:-default}
_ENV_REFERENCE = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def expand_env(data: Any, where: str = "") -> Any:
    """Substitute environment references in every string of *data*.

    ``${VAR:-default}`` falls back to the default. A bare ``${VAR}`` that is
    not set is an error naming the key it appears under, so a missing
    variable cannot silently become a service name or port.
    """
    if isinstance(data, str):

        def _replace(match: re.Match[str]) -> str:
            name, default = match.group(1), match.group(2)
            value = os.environ.get(name, default)
            if value is None:
                raise ValueError(f"{where or 'value'}: environment variable {name} is not set")
            return value

        return _ENV_REFERENCE.sub(_replace, data)
    if isinstance(data, dict):
        return {key: expand_env(value, f"{where}.{key}" if where else str(key)) for key, value in data.items()}
    if isinstance(data, list):
        return [expand_env(item, f"{where}[{i}]") for i, item in enumerate(data)]
    return data


def find_config_file(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default cwd) looking for servstat.yaml."""
    current = (start or Path.cwd()).resolve()
    for ancestor in [current, *current.parents]:
        candidate = ancestor / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def resolve_config_path(path: Path | None = None, start: Path | None = None) -> Path:
    """Return the file a ``serve``/``status`` argument refers to.

    No argument searches upward from *start*; a directory means the
    servstat.yaml inside it.
    """
    if path is None:
        found = find_config_file(start)
        if found is None:
            searched = (start or Path.cwd()).resolve()
            raise FileNotFoundError(
                f"Could not find {CONFIG_FILENAME} in {searched} or its parents. Create one or pass its path."
            )
        return found
    candidate = path.expanduser()
    if candidate.is_dir():
        candidate = candidate / CONFIG_FILENAME
    if not candidate.is_file():
        raise FileNotFoundError(f"Could not find {candidate}. Create one or pass its path.")
    return candidate.resolve()


def load_config(path: Path | None = None) -> ServStatConfig:
    """Load servstat.yaml into a validated ServStatConfig.

    Raises FileNotFoundError when no file resolves, yaml.YAMLError for
    unparsable YAML and ValueError (naming the file) for anything the
    model rejects, including unknown check kinds and unset variables.
    """
    config_path = resolve_config_path(path)
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid configuration in {config_path}: top level must be a mapping")
    try:
        config = ServStatConfig.model_validate(expand_env(raw))
    except ValueError as exc:
        raise ValueError(f"Invalid configuration in {config_path}: {exc}") from exc
    config._source = config_path
    logger.debug("Loaded %d service(s) from %s", len(config.services), config_path)
    return config
