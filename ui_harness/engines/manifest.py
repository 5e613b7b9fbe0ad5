"""Engine manifest definition for the plugin system."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

from pydantic import BaseModel

from ui_harness.engines.base import BrowserEngine


@dataclass(frozen=True, kw_only=True)
class EngineManifest[ConfigT: BaseModel]:
    """Manifest describing a browser engine plugin.

    The manifest contains references to the configuration class and the
    engine factory function for lazy loading of engines based on their key.
    """

    config_cls: type[ConfigT]
    engine_factory: Callable[[ConfigT], AbstractAsyncContextManager[BrowserEngine]]
