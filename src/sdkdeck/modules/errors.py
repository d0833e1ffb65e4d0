"""Error taxonomy shared by the registries, the install pipeline and the controller."""

from typing import Optional


class SdkDeckError(Exception):
    """Base class for all errors raised by the SDK Deck core."""


class SourceUnavailableError(SdkDeckError):
    """Candidate or version listing could not be retrieved."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class OperationFailedError(SdkDeckError):
    """A download, install, uninstall or activate step failed."""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class CancelledError(SdkDeckError):
    """The user aborted a download.

    Kept distinct from OperationFailedError so callers do not treat an
    abort as something to retry.
    """


class BusyError(SdkDeckError):
    """Another install, uninstall or activate task is already in flight."""
