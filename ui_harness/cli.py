"""CLI entry point for the UI verification harness."""

import argparse
import asyncio
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from contextlib import AsyncExitStack
from enum import IntEnum
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ui_harness.config_loader import load_config
from ui_harness.discovery import discover
from ui_harness.engines.loading import EngineNotFoundError, load_engine_manifest
from ui_harness.errors import (
    ConfigurationError,
    HarnessError,
    InfrastructureFailure,
    SessionUnavailable,
)
from ui_harness.models.config import FormatKind, HarnessConfig
from ui_harness.orchestrator import RunResult, TestOrchestrator
from ui_harness.reporters import emit
from ui_harness.session import SessionManager
from ui_harness.web_server import wait_until_ready


class ExitCode(IntEnum):
    """Process exit statuses."""

    OK = 0
    TEST_FAILURES = 1
    INFRASTRUCTURE_ABORT = 2
    CONFIGURATION_ERROR = 3


def exit_code_for(result: RunResult) -> ExitCode:
    """Infrastructure aborts take precedence over test failures."""
    if result.aborted:
        return ExitCode.INFRASTRUCTURE_ABORT
    if any(record.status in ("failed", "timedOut") for record in result.records):
        return ExitCode.TEST_FAILURES
    return ExitCode.OK


def apply_overrides(config: HarnessConfig, **overrides: Any) -> HarnessConfig:
    """Return config with command-line overrides applied (None means unset).

    Raises:
        ConfigurationError: If an override is invalid

    """
    update = {key: value for key, value in overrides.items() if value is not None}
    if not update:
        return config
    try:
        return HarnessConfig.model_validate({**config.model_dump(), **update})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid command-line override: {e}") from e


def write_reports(log: logging.Logger, reports: Mapping[FormatKind, str]) -> None:
    """Log the console summary and print the other reports to stdout."""
    for kind, report in reports.items():
        if kind == "list":
            for line in report.splitlines():
                log.info("%s", line)
        else:
            print(report)


async def run(config: HarnessConfig) -> ExitCode:
    """Run the configured test suite and return the exit code.

    Raises:
        ConfigurationError: If the engine or test modules are unusable
        SessionUnavailable: If the web server never answers or the engine cannot start

    """
    log = logging.getLogger("ui_harness")

    log.info("Discovering tests in %s", config.test_dir)
    units = discover(config.test_dir, config.test_match)
    if not units:
        log.info("No tests found")
        write_reports(log, emit([], config.reporters))
        return ExitCode.OK

    if config.web_server is not None:
        await wait_until_ready(config.web_server)

    log.info("Loading engine: %s", config.engine)
    try:
        manifest = load_engine_manifest(config.engine)
    except EngineNotFoundError as e:
        raise ConfigurationError(str(e)) from e

    try:
        engine_config = manifest.config_cls(**config.engine_config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid engine_config for '{config.engine}': {e}") from e

    async with AsyncExitStack() as stack:
        try:
            engine = await stack.enter_async_context(manifest.engine_factory(engine_config))
        except HarnessError:
            raise
        except Exception as e:
            raise SessionUnavailable(f"Cannot start engine '{config.engine}': {e}") from e

        orchestrator = TestOrchestrator(sessions=SessionManager(engine=engine), config=config)
        result = await orchestrator.run_tests(units)

    if result.aborted:
        log.error("Run aborted by infrastructure failure: %s", result.abort_reason)

    write_reports(
        log,
        emit(
            result.records,
            config.reporters,
            incomplete=result.incomplete,
            abort_reason=result.abort_reason,
        ),
    )
    return exit_code_for(result)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run browser UI tests across projects")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("harness.yaml"),
        help="Path to harness configuration (default: harness.yaml)",
    )
    parser.add_argument(
        "--grep",
        default=None,
        help="Only run tests whose title or tags match this regex",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of concurrent sessions",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=None,
        help="Retries for failing tests",
    )
    parser.add_argument(
        "--reporter",
        action="append",
        choices=["html", "json", "junit", "list"],
        default=None,
        help="Report format (repeatable)",
    )
    parser.add_argument(
        "--engine",
        default=None,
        help="Browser engine key (playwright, memory)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    log = logging.getLogger("ui_harness")

    try:
        config = apply_overrides(
            load_config(args.config, os.environ),
            grep=args.grep,
            workers=args.workers,
            retries=args.retries,
            reporters=args.reporter,
            engine=args.engine,
        )
        exit_code = asyncio.run(run(config))
    except ConfigurationError as e:
        log.error("Configuration error: %s", e)
        exit_code = ExitCode.CONFIGURATION_ERROR
    except InfrastructureFailure as e:
        log.error("Infrastructure failure: %s", e)
        exit_code = ExitCode.INFRASTRUCTURE_ABORT

    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
