"""Discover spec modules and collect their test units."""

import importlib.util
import logging
import re
from collections.abc import Sequence
from pathlib import Path

from ui_harness.errors import ConfigurationError
from ui_harness.registry import TestRegistry, TestUnit

log = logging.getLogger(__name__)


def load_spec_module(path: Path, test_dir: Path) -> Sequence[TestUnit]:
    """Import one spec module and let it register its tests.

    The module must define ``register(registry)``.

    Raises:
        ConfigurationError: If the module cannot be imported, has no register
            function, or its register function fails

    """
    relative = path.relative_to(test_dir).as_posix()
    module_name = "ui_harness_specs." + re.sub(r"\W", "_", relative.removesuffix(".py"))

    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot load spec module {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise ConfigurationError(f"Error importing {relative}: {e}") from e

    register = getattr(module, "register", None)
    if not callable(register):
        raise ConfigurationError(f"{relative} does not define register(registry)")

    registry = TestRegistry(file=relative)
    try:
        register(registry)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Error registering tests from {relative}: {e}") from e
    return registry.freeze()


def discover(test_dir: Path, pattern: str = "*_spec.py") -> Sequence[TestUnit]:
    """Collect test units from every spec module under test_dir.

    Raises:
        ConfigurationError: If test_dir is missing or test ids collide

    """
    if not test_dir.is_dir():
        raise ConfigurationError(f"Test directory not found: {test_dir}")

    units: list[TestUnit] = []
    for path in sorted(test_dir.rglob(pattern)):
        loaded = load_spec_module(path, test_dir)
        log.info("Loaded %d test(s) from %s", len(loaded), path.relative_to(test_dir))
        units.extend(loaded)

    ids = [unit.id for unit in units]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate test ids: {duplicates}")
    return units
