"""Exception hierarchy for the sync engine.

Only conditions the engine is expected to recover from or report are
modelled here.  Programming errors (``TypeError``, ``KeyError`` on
internal structures) are left to propagate.
"""


class SyncError(Exception):
    """Base class for all sync failures."""


class RemoteApiError(SyncError):
    """The remote sync API could not be reached or returned an error.

    Attributes:
        status_code: HTTP status code when the server answered, else
            ``None``.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BackupError(SyncError):
    """A backup could not be created, read, or restored."""


class SyncAbortedError(SyncError):
    """The operation was aborted by a ``Skip`` resolution or abort policy."""


class SyncCancelledError(SyncError):
    """The caller cancelled the operation before any local write."""
