"""Harness configuration surface."""

import os
import re
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator

from ui_harness.models.base import Model
from ui_harness.models.project import ProjectConfig

type FormatKind = Literal["html", "json", "junit", "list"]
type UxAuditMode = Literal["strict", "lenient"]
type ScreenshotMode = Literal["off", "on", "only-on-failure"]
type TraceMode = Literal["off", "on", "on-first-retry", "retain-on-failure"]


class WebServerConfig(Model):
    """Application server the tests run against."""

    command: str | None = Field(
        default=None, description="Command operators use to start the server"
    )
    url: str = Field(..., description="URL that answers once the server is ready")
    reuse_existing_server: bool = True
    timeout_ms: int = Field(default=120_000, gt=0)


class HarnessConfig(Model):
    """Complete harness configuration.

    ``retries``, ``workers``, ``forbid_only`` and the web server's
    ``reuse_existing_server`` default differently when ``ci`` is set: CI runs
    trade speed for determinism.
    """

    ci: bool = False
    test_dir: Path = Path("tests")
    test_match: str = "*_spec.py"
    fully_parallel: bool = True
    forbid_only: bool = False
    retries: int = Field(default=0, ge=0)
    workers: int = Field(default=1, gt=0)
    reporters: Sequence[FormatKind] = ("list",)
    base_url: str | None = None
    action_timeout_ms: int = Field(default=10_000, gt=0)
    navigation_timeout_ms: int = Field(default=30_000, gt=0)
    test_timeout_ms: int = Field(default=60_000, gt=0)
    expect_timeout_ms: int = Field(default=5_000, gt=0)
    poll_interval_ms: int = Field(default=100, gt=0)
    ux_audit_mode: UxAuditMode = "lenient"
    screenshot: ScreenshotMode = "only-on-failure"
    trace: TraceMode = "on-first-retry"
    grep: str | None = Field(
        default=None, description="Regex selecting tests by title or tag"
    )
    projects: Sequence[ProjectConfig] = Field(
        default_factory=lambda: [ProjectConfig(name="Desktop Chrome")]
    )
    web_server: WebServerConfig | None = None
    engine: str = "playwright"
    engine_config: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _apply_ci_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        values = dict(data)
        ci = bool(values.get("ci", False))
        if values.get("retries") is None:
            values["retries"] = 2 if ci else 0
        if values.get("workers") is None:
            values["workers"] = 1 if ci else (os.cpu_count() or 1)
        if values.get("forbid_only") is None:
            values["forbid_only"] = ci

        web_server = values.get("web_server")
        if isinstance(web_server, dict) and web_server.get("reuse_existing_server") is None:
            values["web_server"] = {**web_server, "reuse_existing_server": not ci}
        return values

    @field_validator("grep")
    @classmethod
    def _check_grep(cls, value: str | None) -> str | None:
        if value:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"grep is not a valid regular expression: {e}") from e
        return value

    @model_validator(mode="after")
    def _check_projects(self) -> "HarnessConfig":
        names = [project.name for project in self.projects]
        if not names:
            raise ValueError("At least one project is required")
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate project names: {duplicates}")
        return self
