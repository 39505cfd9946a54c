"""Exceptions raised by render sessions."""


class PrerenderError(Exception):
    """Base class for all errors raised by prerender."""

    def __init__(self, message: str) -> None:
        """Initialize PrerenderError.

        Args:
            message: Error description.
        """
        self.message = message
        super().__init__(message)


class BootError(PrerenderError):
    """Raised when a session cannot be booted.

    The session is unusable afterwards and must be discarded.
    """

    def __init__(self, message: str, messages: list[str] | None = None) -> None:
        """Initialize BootError.

        Args:
            message: Error description.
            messages: Console errors collected during the failed step.
        """
        self.messages = list(messages or [])
        if self.messages:
            message = f"{message}: {'; '.join(self.messages)}"
        super().__init__(message)


class RenderError(PrerenderError):
    """Raised when a visit fails but the session remains usable."""

    def __init__(self, messages: list[str], path: str = "") -> None:
        """Initialize RenderError.

        Args:
            messages: Script exceptions and console errors of the visit.
            path: The visited path.
        """
        self.messages = list(messages)
        self.path = path
        super().__init__("; ".join(self.messages))


class VisitTimeoutError(PrerenderError, TimeoutError):
    """Raised when a visit does not complete within its deadline."""

    def __init__(self, path: str, timeout: int) -> None:
        """Initialize VisitTimeoutError.

        Args:
            path: The visited path.
            timeout: The exceeded deadline in milliseconds.
        """
        self.path = path
        self.timeout = timeout
        super().__init__(f"visit of {path} timed out after {timeout}ms")


class ProtocolError(PrerenderError):
    """Raised when communication with the browser itself fails."""


class SessionClosedError(PrerenderError):
    """Raised when a closed session is used."""

    def __init__(self) -> None:
        super().__init__("session closed")


class ScriptError(PrerenderError):
    """Raised when a remote script throws."""


class ScriptTimeoutError(PrerenderError):
    """Raised when a remote task exceeds its deadline."""
