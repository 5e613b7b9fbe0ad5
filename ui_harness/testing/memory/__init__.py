"""In-memory browser engine for exercising the harness without a browser."""

from ui_harness.testing.memory.config import MemoryConfig
from ui_harness.testing.memory.dom import FakeElement, el
from ui_harness.testing.memory.engine import (
    FetchFailed,
    MemoryContext,
    MemoryEngine,
    MemoryPage,
    MemoryResponse,
)
from ui_harness.testing.memory.manifest import memory_manifest
from ui_harness.testing.memory.site import MemorySite

__all__ = [
    "FakeElement",
    "FetchFailed",
    "MemoryConfig",
    "MemoryContext",
    "MemoryEngine",
    "MemoryPage",
    "MemoryResponse",
    "MemorySite",
    "el",
    "memory_manifest",
]
