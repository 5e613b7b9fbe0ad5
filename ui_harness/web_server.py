"""Readiness probe for the application under test.

The harness does not start the server itself; operators start it with
``web_server.command`` and the probe waits until ``web_server.url`` answers.
"""

import logging

import aiohttp

from ui_harness.errors import ConfigurationError
from ui_harness.models.config import WebServerConfig
from ui_harness.waiting import Ok, wait_for

log = logging.getLogger(__name__)

PROBE_INTERVAL_MS = 500
REQUEST_TIMEOUT_S = 5


async def probe(session: aiohttp.ClientSession, url: str) -> bool:
    """Return whether url answers with a status below 404."""
    try:
        async with session.get(url, allow_redirects=True) as response:
            log.debug("Readiness probe %s returned %d", url, response.status)
            return response.status < 404
    except (aiohttp.ClientError, TimeoutError) as e:
        log.debug("Readiness probe %s failed: %s", url, e)
        return False


async def wait_until_ready(
    config: WebServerConfig, *, poll_interval_ms: int = PROBE_INTERVAL_MS
) -> None:
    """Wait for the web server to answer before any test executes.

    Raises:
        ConfigurationError: If the URL does not answer within timeout_ms

    """
    log.info("Waiting for web server at %s (timeout=%dms)", config.url, config.timeout_ms)
    timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_S)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        result = await wait_for(
            lambda: probe(session, config.url),
            timeout_ms=config.timeout_ms,
            poll_interval_ms=poll_interval_ms,
        )

    if isinstance(result, Ok):
        if result.polls == 1 and not config.reuse_existing_server:
            log.warning(
                "A server was already answering at %s; reusing it although "
                "reuse_existing_server is off",
                config.url,
            )
        log.info("Web server ready after %.0fms", result.elapsed_ms)
        return

    hint = f" Start it with: {config.command}" if config.command else ""
    raise ConfigurationError(
        f"Web server at {config.url} not ready within {config.timeout_ms}ms.{hint}"
    )
