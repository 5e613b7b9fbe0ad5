"""Loading of browser engines from entry points."""

from importlib.metadata import entry_points
from typing import Any

from ui_harness.engines.manifest import EngineManifest

ENTRY_POINT_GROUP = "ui_harness.engines"

# What each bundled engine needs beyond the package itself.
REQUIREMENTS = {
    "playwright": "the playwright package and its browsers (`playwright install`)",
    "memory": "nothing; it is bundled for the harness's own test suite",
}


class EngineNotFoundError(Exception):
    """Raised when an engine is not registered or cannot be imported."""


def load_engine_manifest(key: str) -> EngineManifest[Any]:
    """Load an engine manifest by key.

    Args:
        key: The engine key as registered in the ``ui_harness.engines``
             entry point group (e.g., "playwright", "memory")

    Returns:
        The engine manifest instance

    Raises:
        EngineNotFoundError: If no engine is registered under key, or its
            module fails to import

    """
    entries = entry_points(group=ENTRY_POINT_GROUP)

    for entry in entries:
        if entry.name == key:
            try:
                manifest: EngineManifest[Any] = entry.load()
            except ImportError as e:
                needs = REQUIREMENTS.get(key, f"the package providing {entry.value}")
                raise EngineNotFoundError(
                    f"Engine '{key}' is registered at {entry.value} but cannot be "
                    f"imported ({e}); it requires {needs}"
                ) from e
            return manifest

    available = sorted(e.name for e in entries)
    raise EngineNotFoundError(
        f"Engine '{key}' not found. Available engines: {available}. Third-party "
        f"engines register an EngineManifest under the '{ENTRY_POINT_GROUP}' "
        "entry point group"
    )
