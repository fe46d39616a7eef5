"""
Error taxonomy for the browser tools.

Every failure a browser tool can hit is expressed as one of these types so the
dispatcher can decide on retry / eviction without looking at error text:

- ToolValidationError: malformed or out-of-range tool arguments (no side effects yet)
- ProvisioningError:   remote session or Stagehand handle could not be created
- TransientPageError:  page execution context was torn down mid-navigation
- SessionFatalError:   the remote session is gone; its pool entry must be evicted
- UnclassifiedError:   anything else, surfaced verbatim

Raw exceptions from Stagehand / Playwright / Browserbase are mapped onto these
by ``tools.browser_handle.as_tool_error``.
"""


class BrowserToolError(Exception):
    """Base class for classified browser tool failures."""

    #: True when the failing session's pool entry must be dropped
    evicts_session = False

    def __init__(self, message: str, *, cause: BaseException = None):
        super().__init__(message)
        self.message = message
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message


class ToolValidationError(BrowserToolError):
    """Tool arguments failed validation before any network call."""


class ProvisioningError(BrowserToolError):
    """Creating a Browserbase session or attaching a Stagehand handle failed.

    ``session_gone`` is set when the failure carries a dead-session signature,
    in which case the id is evicted just like a SessionFatalError.
    """

    def __init__(self, message: str, *, cause: BaseException = None, session_gone: bool = False):
        super().__init__(message, cause=cause)
        self.evicts_session = session_gone


class TransientPageError(BrowserToolError):
    """Execution context destroyed by a navigation racing the action."""


class SessionFatalError(BrowserToolError):
    """Remote session closed, inactive, or rejected the request (HTTP 409)."""

    evicts_session = True


class UnclassifiedError(BrowserToolError):
    """Any other failure."""
