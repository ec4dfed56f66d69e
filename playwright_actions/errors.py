"""Error taxonomy for action handlers and runtime components.

Every error here is converted into an error ``ExecutionResult`` by the
dispatcher; none of them is meant to escape a dispatched call.
"""

from __future__ import annotations


class ActionError(Exception):
    """Base class for faults raised by runtime components."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidArguments(ActionError):
    """Unknown action name or missing/invalid argument."""


class LaunchFailure(ActionError):
    """Browser, context or page could not be started."""


class NavigationFailure(ActionError):
    pass


class ElementNotFound(ActionError):
    """A selector or role/label/text lookup exceeded its timeout."""


class IframeNotFound(ActionError):
    pass


class UnknownSessionId(ActionError):
    pass


class InvalidSessionState(ActionError):
    """Operation not valid for the codegen session's current state."""


class UnknownWaitId(ActionError):
    pass


class ResponseTimeout(ActionError):
    pass


class ResponseAssertionMismatch(ActionError):
    """Captured response body does not contain the expected fragment."""
