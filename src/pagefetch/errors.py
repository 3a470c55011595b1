"""Exceptions raised while fetching a page."""


class FetchError(Exception):
    """Base class for page fetch failures."""


class InvalidInputError(FetchError):
    """The request was rejected before any attempt was made."""


class NavigationError(FetchError):
    """The browser failed to navigate to the target URL."""


class SelectorNotFoundError(FetchError):
    """The awaited selector did not appear within the budget."""

    def __init__(self, selector: str):
        super().__init__("Required selector not found")
        self.selector = selector


class UnsupportedBrowserError(FetchError):
    """The target served an "unsupported browser" gate page instead of content."""

    def __init__(self, phrase: str):
        super().__init__(f"Unsupported browser page detected: {phrase!r}")
        self.phrase = phrase


class FetchTimeoutError(FetchError, TimeoutError):
    """The shared time budget ran out."""


class RetryExhaustedError(FetchError):
    """All attempts failed; wraps the last error."""

    def __init__(self, name: str, attempts: int, elapsed_ms: float, last_error: BaseException):
        super().__init__(
            f'"{name}" failed after {attempts} attempt(s) in {elapsed_ms:.0f}ms: {last_error}'
        )
        self.name = name
        self.attempts = attempts
        self.elapsed_ms = elapsed_ms
        self.last_error = last_error
