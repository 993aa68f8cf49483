"""Error taxonomy for model invocation."""


class InvocationError(Exception):
    """Base error for model invocation failures."""

    pass


class TransportError(InvocationError):
    """Non-retryable transport failure, surfaced verbatim to the user."""

    pass


class TransientCapacityError(InvocationError):
    """Retryable capacity failure (throttling, overload) raised by a transport."""

    pass


class CapacityExceeded(InvocationError):
    """The model stayed over capacity for every allowed attempt."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class MalformedOutput(InvocationError):
    """Structured output could not be extracted from the model reply."""

    def __init__(self, message: str, excerpt: str = ""):
        super().__init__(message)
        self.excerpt = excerpt
