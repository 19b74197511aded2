"""Error kinds raised by the statistics store and its callers."""


class RevisionError(Exception):
    """Base class for all revision backend errors."""


class NotInitialized(RevisionError):
    """A store operation was called before `init()` completed."""

    def __init__(self, operation: str = ""):
        msg = "statistics store is not initialized"
        if operation:
            msg = f"{msg} (called {operation})"
        super().__init__(msg)


class StorageError(RevisionError):
    """The persistence layer failed."""


class StorageUnavailable(StorageError):
    """The persistence layer cannot be opened or read."""


class RecordWriteFailure(StorageError):
    """A write (insert, upsert or clear) failed; it is not retried."""
