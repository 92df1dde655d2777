"""Load run configuration from a YAML file."""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from unitcheck.errors import ConfigError
from unitcheck.models.config import RunConfig

log = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "unitcheck.yaml"


def read_config_file(path: Path) -> Mapping[str, Any]:
    """Read the raw settings mapping from a YAML file.

    An empty file yields an empty mapping.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the file is not valid YAML or not a mapping

    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config schema in {path}: expected a mapping")
    return data


def load_config(
    path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RunConfig:
    """Build the run configuration.

    Args:
        path: Explicit config file. When omitted, ``unitcheck.yaml`` in the
            working directory is used if it exists.
        overrides: Values that take precedence over the file (CLI flags)

    Returns:
        Validated run configuration

    Raises:
        FileNotFoundError: If an explicit config file does not exist
        ConfigError: If the file is malformed or fails validation

    """
    values: dict[str, Any] = {}
    if path is not None:
        values.update(read_config_file(path))
    elif (default := Path(DEFAULT_CONFIG_FILE)).is_file():
        log.info("Using config file %s", default)
        values.update(read_config_file(default))
        path = default

    if overrides:
        values.update(overrides)

    try:
        return RunConfig.model_validate(values)
    except ValidationError as e:
        source = path if path is not None else "command line"
        raise ConfigError(f"Invalid config schema in {source}: {e}") from e
