"""Exception hierarchy for the UI verification harness.

The orchestrator handles these in three groups:

* ``TestFailure`` and anything else raised by a test body become an outcome
  record for that (test, project) pair and are subject to retries.
* ``InfrastructureFailure`` aborts the whole run; it is never retried.
* ``ConfigurationError`` is fatal before any test executes.
"""


class HarnessError(Exception):
    """Base class for all harness errors."""


class TestFailure(HarnessError):
    """A test body did not reach its expected state.

    Carries enough context to diagnose the failure without rerunning.
    """

    __test__ = False

    def __init__(
        self,
        message: str,
        *,
        selector: str | None = None,
        observed: str | None = None,
        url: str | None = None,
        dom_excerpt: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.selector = selector
        self.observed = observed
        self.url = url
        self.dom_excerpt = dom_excerpt


class AssertionFailure(TestFailure):
    """An expectation inside a test body did not hold."""


class WaitTimeout(TestFailure):
    """A wait or auto-wait elapsed before its condition held."""


class LocatorError(HarnessError):
    """Base class for element query errors."""


class MalformedQuery(LocatorError):
    """A locator query cannot be evaluated (bad selector, role or pattern)."""


class AmbiguousLocator(LocatorError):
    """A uniqueness-requiring operation matched more than one element."""

    def __init__(self, selector: str, count: int) -> None:
        super().__init__(f"Locator {selector} resolved to {count} elements")
        self.selector = selector
        self.count = count


class StaleElementRef(LocatorError):
    """An element reference was used after the page navigated."""


class InvalidAuditScope(HarnessError):
    """An accessibility audit scope is malformed."""


class AuditEngineError(HarnessError):
    """The accessibility engine returned a result that cannot be normalized."""


class InfrastructureFailure(HarnessError):
    """The environment broke, not the application under test."""


class SessionUnavailable(InfrastructureFailure):
    """A browser session could not be acquired."""


class ProtocolDisconnected(InfrastructureFailure):
    """The connection to the remote browser engine was lost."""


class ConfigurationError(HarnessError):
    """The harness configuration is invalid or its prerequisites are unmet."""
