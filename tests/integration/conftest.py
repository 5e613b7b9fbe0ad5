"""Fixtures for integration tests: a small shop served by the in-memory engine."""

import json
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import pytest

from ui_harness.models.config import HarnessConfig
from ui_harness.models.project import ProjectConfig
from ui_harness.network import json_response
from ui_harness.orchestrator import RunResult, TestOrchestrator
from ui_harness.registry import TestUnit
from ui_harness.session import SessionManager
from ui_harness.testing.memory import FakeElement, FetchFailed, MemoryPage, MemorySite, el

VALID_EMAIL = "test@example.com"
VALID_PASSWORD = "password123"


type RunSuite = Callable[..., Awaitable[RunResult]]


@pytest.fixture
def credentials() -> tuple[str, str]:
    """Email and password the login endpoint accepts."""
    return VALID_EMAIL, VALID_PASSWORD


@pytest.fixture
def login_attempts() -> list[str]:
    """Emails submitted to the login endpoint, across sessions."""
    return []


@pytest.fixture(autouse=True)
def shop(site: MemorySite, login_attempts: list[str]) -> MemorySite:
    """Login, dashboard and item list pages."""

    async def submit_login(page: MemoryPage, form: FakeElement) -> None:
        email = page.query_one("#email")
        password = page.query_one("#password")
        assert email is not None and password is not None
        login_attempts.append(email.value or "")

        response = await page.fetch(
            "/api/login",
            method="POST",
            body=json.dumps({"email": email.value, "password": password.value}),
        )
        if response.ok and email.value == VALID_EMAIL and password.value == VALID_PASSWORD:
            await page.goto("/dashboard", timeout_ms=1_000)
            return

        error = page.query_one("#login-error")
        assert error is not None
        error.text = "Invalid email or password"
        error.hidden = False
        email.attributes["aria-invalid"] = "true"

    @site.page("/login", title="Sign in")
    def login(page: MemoryPage) -> FakeElement:
        return el(
            "main",
            el("h1", "Sign in"),
            el(
                "form",
                el("label", "Email", for_="email"),
                el("input", id="email", type="email", required=True),
                el("label", "Password", for_="password"),
                el("input", id="password", type="password", required=True),
                el(
                    "button",
                    "Sign in",
                    type="submit",
                    focus_style={"outline-style": "solid"},
                ),
                el("div", id="login-error", role="alert", hidden=True),
                on_submit=submit_login,
            ),
        )

    @site.page("/dashboard", title="Dashboard")
    def dashboard(page: MemoryPage) -> FakeElement:
        return el("main", el("h1", "Dashboard"), el("a", "Items", href="/items"))

    @site.page("/items", title="Items")
    def items(page: MemoryPage) -> FakeElement:
        return el(
            "main",
            el("h1", "Items"),
            el("div", "Loading...", class_="spinner", role="progressbar", hidden=True),
            el("div", id="items-error", role="alert", hidden=True),
            el("ul", id="items"),
        )

    @site.on_load("/items")
    async def load_items(page: MemoryPage) -> None:
        spinner = page.query_one(".spinner")
        error = page.query_one("#items-error")
        listing = page.query_one("#items")
        assert spinner is not None and error is not None and listing is not None

        spinner.hidden = False
        try:
            response = await page.fetch("/api/items")
        except FetchFailed:
            error.text = "Network error. Check your connection and try again."
            error.hidden = False
            return
        finally:
            spinner.hidden = True

        if not response.ok:
            error.text = "Something went wrong loading items."
            error.hidden = False
            return
        for item in json.loads(response.text)["items"]:
            listing.append(el("li", item["name"]))

    site.resource("/api/login", json_response({"ok": True}))
    site.resource("/api/items", json_response({"items": [{"name": "Default item"}]}))
    return site


@pytest.fixture
def run_suite(sessions: SessionManager) -> RunSuite:
    """Run units across desktop and mobile projects with fast timeouts."""

    async def _run(units: Sequence[TestUnit], **overrides: Any) -> RunResult:
        values: dict[str, Any] = {
            "base_url": "http://memory.test",
            "workers": 2,
            "retries": 0,
            "expect_timeout_ms": 1_000,
            "action_timeout_ms": 1_000,
            "poll_interval_ms": 10,
            "projects": [
                ProjectConfig.model_validate({"name": "Desktop Chrome", "device": "Desktop Chrome"}),
                ProjectConfig.model_validate({"name": "Mobile Safari", "device": "iPhone 12"}),
            ],
        }
        values.update(overrides)
        orchestrator = TestOrchestrator(sessions=sessions, config=HarnessConfig(**values))
        return await orchestrator.run_tests(units)

    return _run
