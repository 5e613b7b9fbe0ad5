"""Browser/viewport projects that the test matrix is expanded across."""

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import Field, model_validator

from ui_harness.models.base import Model

type BrowserEngineKind = Literal["chromium", "firefox", "webkit"]


class Viewport(Model):
    """Page viewport size in CSS pixels."""

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class ProjectConfig(Model):
    """A named browser/viewport configuration.

    A project may reference a preset from ``DEVICES`` by name; explicit fields
    override the preset.
    """

    name: str = Field(..., min_length=1)
    viewport: Viewport = Field(default_factory=lambda: Viewport(width=1280, height=720))
    user_agent_profile: str | None = Field(
        default=None, description="User agent string sent by the browser"
    )
    browser_engine: BrowserEngineKind = "chromium"
    is_mobile: bool = False
    has_touch: bool = False
    device_scale_factor: float = Field(default=1.0, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _expand_device(cls, data: Any) -> Any:
        if not isinstance(data, Mapping) or "device" not in data:
            return data

        values = dict(data)
        device_name = values.pop("device")
        try:
            preset = DEVICES[device_name]
        except KeyError:
            raise ValueError(
                f"Unknown device '{device_name}'. Known devices: {sorted(DEVICES)}"
            ) from None
        return {**preset, **values}


_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36"
)
_FIREFOX_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:131.0) Gecko/20100101 Firefox/131.0"
)
_SAFARI_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/18.0 Safari/605.1.15"
)

DEVICES: Mapping[str, Mapping[str, Any]] = {
    "Desktop Chrome": {
        "viewport": {"width": 1280, "height": 720},
        "user_agent_profile": _CHROME_UA,
        "browser_engine": "chromium",
    },
    "Desktop Firefox": {
        "viewport": {"width": 1280, "height": 720},
        "user_agent_profile": _FIREFOX_UA,
        "browser_engine": "firefox",
    },
    "Desktop Safari": {
        "viewport": {"width": 1280, "height": 720},
        "user_agent_profile": _SAFARI_UA,
        "browser_engine": "webkit",
    },
    "Pixel 5": {
        "viewport": {"width": 393, "height": 851},
        "user_agent_profile": (
            "Mozilla/5.0 (Linux; Android 11; Pixel 5) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/130.0.0.0 Mobile Safari/537.36"
        ),
        "browser_engine": "chromium",
        "is_mobile": True,
        "has_touch": True,
        "device_scale_factor": 2.75,
    },
    "iPhone 12": {
        "viewport": {"width": 390, "height": 664},
        "user_agent_profile": (
            "Mozilla/5.0 (iPhone; CPU iPhone OS 14_4 like Mac OS X) "
            "AppleWebKit/605.1.15 (KHTML, like Gecko) Version/14.0.3 "
            "Mobile/15E148 Safari/604.1"
        ),
        "browser_engine": "webkit",
        "is_mobile": True,
        "has_touch": True,
        "device_scale_factor": 3,
    },
    "iPad Pro": {
        "viewport": {"width": 834, "height": 1194},
        "user_agent_profile": (
            "Mozilla/5.0 (iPad; CPU OS 12_2 like Mac OS X) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/12.0 Mobile/15E148 Safari/604.1"
        ),
        "browser_engine": "webkit",
        "is_mobile": True,
        "has_touch": True,
        "device_scale_factor": 2,
    },
}
