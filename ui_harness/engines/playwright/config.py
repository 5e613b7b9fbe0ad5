"""Configuration for the Playwright engine."""

from pydantic import BaseModel, Field


class PlaywrightConfig(BaseModel):
    """Configuration for the Playwright engine."""

    headless: bool = True
    slow_mo_ms: float = Field(default=0, ge=0)
    # Upper bound for Playwright's own actionability checks once an element
    # has already been found visible.
    action_timeout_ms: int = Field(default=5_000, gt=0)
    axe_script_url: str = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.9.1/axe.min.js"
