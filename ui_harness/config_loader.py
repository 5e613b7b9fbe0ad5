"""Loading of harness configuration from YAML."""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ui_harness.errors import ConfigurationError
from ui_harness.models.config import HarnessConfig

log = logging.getLogger(__name__)

TRUTHY = {"1", "true", "yes", "on"}


def parse_config(
    data: Mapping[str, Any] | None,
    environ: Mapping[str, str] | None = None,
    *,
    base_dir: Path | None = None,
) -> HarnessConfig:
    """Build a configuration from raw data and environment overrides.

    ``CI`` selects CI defaults and ``BASE_URL`` replaces ``base_url``.
    A relative ``test_dir`` resolves against base_dir.

    Raises:
        ConfigurationError: If the configuration is invalid

    """
    environ = environ or {}
    values = dict(data or {})

    if "ci" not in values and environ.get("CI", "").strip().lower() in TRUTHY:
        values["ci"] = True
    if environ.get("BASE_URL"):
        values["base_url"] = environ["BASE_URL"]

    try:
        config = HarnessConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    if base_dir is not None and not config.test_dir.is_absolute():
        config = config.model_copy(update={"test_dir": base_dir / config.test_dir})
    return config


def load_config(
    path: Path, environ: Mapping[str, str] | None = None
) -> HarnessConfig:
    """Load and validate a harness.yaml file.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid

    """
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}") from e

    if data is not None and not isinstance(data, Mapping):
        raise ConfigurationError(f"{path} must contain a mapping")

    log.debug("Loaded configuration from %s", path)
    return parse_config(data, environ, base_dir=path.parent)
