"""Playwright engine module."""

from ui_harness.engines.playwright.config import PlaywrightConfig
from ui_harness.engines.playwright.engine import PlaywrightEngine
from ui_harness.engines.playwright.manifest import playwright_manifest

__all__ = ["PlaywrightConfig", "PlaywrightEngine", "playwright_manifest"]
