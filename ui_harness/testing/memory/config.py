"""Configuration for the in-memory engine."""

from pydantic import BaseModel, Field


class MemoryConfig(BaseModel):
    """Configuration for the in-memory engine."""

    site: str | None = Field(
        default=None,
        description="Import path of a MemorySite to serve, e.g. 'myapp.fake:site'",
    )
