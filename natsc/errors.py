class NatscError(Exception):
    """Base class for errors raised by natsc"""


class ContextError(NatscError):
    """Base class for context store and resolver errors"""


class InvalidNameError(ContextError, ValueError):
    """A context name contains a path separator, NUL or '..'"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"invalid context name {name!r}")


class UnknownContextError(ContextError, LookupError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"unknown context {name!r}")


class ContextStorageError(ContextError, OSError):
    """Filesystem failure or corrupt context file"""


class NoSelectionError(ContextError):
    def __init__(self, message: str = "no default context and no name supplied"):
        super().__init__(message)


class RequestTimeoutError(NatscError, TimeoutError):
    def __init__(self, subject: str, timeout: float):
        self.subject = subject
        self.timeout = timeout
        super().__init__(f"no reply received on {subject!r} within {timeout:g}s")


class NoRespondersError(NatscError):
    """The server reported that nothing is subscribed to the request subject"""

    def __init__(self, subject: str):
        self.subject = subject
        super().__init__(f"no responders available for request on {subject!r}")
