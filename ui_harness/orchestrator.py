"""Test orchestrator: expands units across projects and runs them in parallel."""

import asyncio
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from ui_harness.context import TestContext
from ui_harness.errors import (
    ConfigurationError,
    InfrastructureFailure,
    TestFailure,
    WaitTimeout,
)
from ui_harness.models.config import HarnessConfig
from ui_harness.models.outcome import FailureDetail, OutcomeRecord, OutcomeStatus
from ui_harness.models.project import ProjectConfig
from ui_harness.registry import TestUnit
from ui_harness.session import SessionHandle, SessionManager, SessionSettings

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class PlannedRun:
    """One (test unit, project) pair of the execution plan."""

    unit: TestUnit
    project: ProjectConfig


@dataclass(frozen=True, kw_only=True)
class RunResult:
    """Records of a run, and whether it was aborted before finishing."""

    records: Sequence[OutcomeRecord]
    planned: int
    aborted: bool = False
    abort_reason: str | None = None

    @property
    def incomplete(self) -> bool:
        return self.aborted or len(self.records) < self.planned


def select_units(units: Sequence[TestUnit], grep: str | None) -> list[TestUnit]:
    """Keep units whose title, describe path or tags match grep."""
    if not grep:
        return list(units)
    pattern = re.compile(grep)
    return [
        unit
        for unit in units
        if pattern.search(unit.full_title) or any(pattern.search(t) for t in unit.tags)
    ]


def build_plan(
    units: Sequence[TestUnit], projects: Sequence[ProjectConfig]
) -> list[PlannedRun]:
    """Expand units across every project (project-major order)."""
    return [PlannedRun(unit=unit, project=project) for project in projects for unit in units]


@dataclass(kw_only=True)
class OutcomeCollector:
    """Append-only, lock-guarded record collection shared by workers."""

    _records: list[OutcomeRecord] = field(default_factory=list)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def append(self, record: OutcomeRecord) -> None:
        async with self._lock:
            self._records.append(record)

    def snapshot(self) -> list[OutcomeRecord]:
        return list(self._records)


@dataclass(kw_only=True)
class _RunState:
    collector: OutcomeCollector
    semaphore: asyncio.Semaphore
    exclusive: bool
    tasks: list[asyncio.Task[None]] = field(default_factory=list)
    abort_reason: str | None = None

    def abort(self, reason: str) -> None:
        if self.abort_reason is None:
            self.abort_reason = reason
            current = asyncio.current_task()
            for task in self.tasks:
                if task is not current:
                    task.cancel()


@dataclass(frozen=True, kw_only=True)
class TestOrchestrator:
    """Runs the execution plan under a concurrency bound and retry policy."""

    __test__ = False

    sessions: SessionManager
    config: HarnessConfig

    async def run_tests(self, units: Sequence[TestUnit]) -> RunResult:
        """Run every selected unit on every configured project.

        Args:
            units: Registered test units

        Returns:
            Outcome records (one per planned run unless aborted)

        Raises:
            ConfigurationError: If an exclusive unit is registered while forbidden

        """
        selected = select_units(units, self.config.grep)
        exclusive = [unit for unit in selected if unit.only]
        if exclusive and self.config.forbid_only:
            titles = ", ".join(unit.full_title for unit in exclusive)
            raise ConfigurationError(f"Exclusive tests are forbidden here: {titles}")

        plan = build_plan(selected, self.config.projects)
        if not plan:
            log.info("No tests to run")
            return RunResult(records=[], planned=0)

        log.info(
            "Running %d test(s) across %d project(s) using %d worker(s)...",
            len(selected),
            len(self.config.projects),
            self.config.workers,
        )
        state = _RunState(
            collector=OutcomeCollector(),
            semaphore=asyncio.Semaphore(self.config.workers),
            exclusive=bool(exclusive),
        )
        for group in self._group(plan):
            state.tasks.append(asyncio.create_task(self._run_group(group, state)))

        results = await asyncio.gather(*state.tasks, return_exceptions=True)
        self._process_results(results, state)

        records = state.collector.snapshot()
        log.info("Test execution completed: %d of %d run(s) reported", len(records), len(plan))
        return RunResult(
            records=records,
            planned=len(plan),
            aborted=state.abort_reason is not None,
            abort_reason=state.abort_reason,
        )

    def _group(self, plan: Sequence[PlannedRun]) -> list[list[PlannedRun]]:
        """Split the plan into chains that run sequentially.

        Fully parallel runs are independent; otherwise the units of one file
        run in order within each project.
        """
        if self.config.fully_parallel:
            return [[planned] for planned in plan]

        groups: dict[tuple[str, str | None], list[PlannedRun]] = {}
        for planned in plan:
            key = (planned.project.name, planned.unit.file)
            groups.setdefault(key, []).append(planned)
        return list(groups.values())

    def _process_results(
        self, results: Sequence[None | BaseException], state: _RunState
    ) -> None:
        """Surface exceptions that escaped a run group."""
        for result in results:
            if isinstance(result, asyncio.CancelledError) and state.abort_reason:
                continue
            if isinstance(result, InfrastructureFailure):
                state.abort_reason = state.abort_reason or str(result)
            elif isinstance(result, BaseException):
                log.error("Test group failed unexpectedly: %s", result, exc_info=result)

    async def _run_group(self, group: Sequence[PlannedRun], state: _RunState) -> None:
        for planned in group:
            try:
                await self._run_planned(planned, state)
            except InfrastructureFailure as e:
                log.error(
                    "Infrastructure failure in %s [%s], aborting run: %s",
                    planned.unit.full_title,
                    planned.project.name,
                    e,
                )
                state.abort(str(e))
                raise

    async def _run_planned(self, planned: PlannedRun, state: _RunState) -> None:
        unit = planned.unit
        if unit.skip or (state.exclusive and not unit.only):
            await state.collector.append(
                OutcomeRecord(
                    test_id=unit.id,
                    title=unit.full_title,
                    project_name=planned.project.name,
                    status="skipped",
                    duration_ms=0.0,
                    file=unit.file,
                )
            )
            return

        attempt = 0
        while True:
            async with state.semaphore:
                record = await self._attempt(planned, attempt)

            if record.status == "passed" or attempt >= self.config.retries:
                await state.collector.append(record)
                return

            log.info(
                "Retrying %s [%s] after %s (attempt %d of %d)",
                unit.full_title,
                planned.project.name,
                record.status,
                attempt + 1,
                self.config.retries,
            )
            attempt += 1

    def _settings(self, attempt: int) -> SessionSettings:
        trace = self.config.trace
        return SessionSettings(
            base_url=self.config.base_url,
            action_timeout_ms=self.config.action_timeout_ms,
            navigation_timeout_ms=self.config.navigation_timeout_ms,
            expect_timeout_ms=self.config.expect_timeout_ms,
            poll_interval_ms=self.config.poll_interval_ms,
            record_trace=(
                trace in ("on", "retain-on-failure")
                or (trace == "on-first-retry" and attempt == 1)
            ),
        )

    async def _attempt(self, planned: PlannedRun, attempt: int) -> OutcomeRecord:
        """Execute one attempt in a fresh session and convert its outcome.

        Raises:
            InfrastructureFailure: If the session cannot be acquired or the
                engine disconnects

        """
        unit, project = planned.unit, planned.project
        loop = asyncio.get_running_loop()
        started = loop.time()
        timeout_s = self.config.test_timeout_ms / 1000

        async with self.sessions.session(project, self._settings(attempt)) as handle:
            ctx = TestContext(
                session=handle,
                unit=unit,
                attempt=attempt,
                ux_audit_mode=self.config.ux_audit_mode,
            )
            status: OutcomeStatus = "passed"
            failure: BaseException | None = None
            try:
                async with asyncio.timeout(timeout_s):
                    await unit.body(ctx)
            except InfrastructureFailure:
                raise
            except (WaitTimeout, TimeoutError) as e:
                status, failure = "timedOut", e
            except Exception as e:
                status, failure = "failed", e

            duration_ms = (loop.time() - started) * 1000
            detail = None
            if failure is not None:
                detail = await self._failure_detail(handle, failure, status)
            screenshot = await self._screenshot(handle, failed=failure is not None)

        log.info(
            "Test completed: %s [%s] status=%s duration=%.0fms",
            unit.full_title,
            project.name,
            status,
            duration_ms,
        )
        return OutcomeRecord(
            test_id=unit.id,
            title=unit.full_title,
            project_name=project.name,
            status=status,
            duration_ms=round(duration_ms, 1),
            retry_attempt=attempt,
            failure_detail=detail,
            annotations=tuple(ctx.annotations),
            screenshot=screenshot,
            file=unit.file,
        )

    async def _failure_detail(
        self, handle: SessionHandle, failure: BaseException, status: OutcomeStatus
    ) -> FailureDetail:
        if isinstance(failure, TestFailure):
            kind = "timeout" if status == "timedOut" else "assertion"
            message = failure.message
            context = {
                "selector": failure.selector,
                "observed": failure.observed,
                "url": failure.url,
                "dom_excerpt": failure.dom_excerpt,
            }
        elif status == "timedOut":
            kind = "timeout"
            message = f"Test timeout of {self.config.test_timeout_ms}ms exceeded"
            context = {}
        else:
            kind = "error"
            message = f"{type(failure).__name__}: {failure}"
            context = {"selector": getattr(failure, "selector", None)}

        if context.get("url") is None:
            try:
                context["url"] = await handle.current_url()
            except Exception as e:
                log.debug("Could not read URL after failure: %s", e)

        keep_trace = self.config.trace != "off" and handle.settings.record_trace
        return FailureDetail(
            kind=kind,
            message=message,
            console_errors=tuple(handle.console_errors()),
            trace=tuple(handle.trace) if keep_trace else None,
            **context,
        )

    async def _screenshot(self, handle: SessionHandle, *, failed: bool) -> bytes | None:
        mode = self.config.screenshot
        if mode == "off" or (mode == "only-on-failure" and not failed):
            return None
        try:
            return await handle.screenshot()
        except Exception as e:
            log.warning("Could not capture screenshot: %s", e)
            return None
