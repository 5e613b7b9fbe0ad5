"""Playwright engine manifest."""

from ui_harness.engines.manifest import EngineManifest
from ui_harness.engines.playwright.config import PlaywrightConfig
from ui_harness.engines.playwright.engine import PlaywrightEngine

playwright_manifest = EngineManifest(
    config_cls=PlaywrightConfig,
    engine_factory=PlaywrightEngine.from_config,
)
