"""Exception hierarchy shared across the database, sync and state layers."""


class HarvestError(Exception):
    """Base exception for HarvestPro."""


class StorageFullError(HarvestError):
    """The on-device store has no room left; the write was not recorded."""


class BucketRejectedError(HarvestError):
    """A bucket scan failed local validation and was not queued."""

    def __init__(self, reason: str, picker_id: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.picker_id = picker_id


class UnknownOperationError(HarvestError):
    """A queue entry carries an operation type with no registered handler."""


class SyncError(HarvestError):
    """Base exception for sync operations."""


class RemoteError(SyncError):
    """The remote data service rejected a request."""

    def __init__(self, message: str, code: str = "", status: int = 0):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class RemoteNetworkError(RemoteError):
    """The remote data service could not be reached."""

    def __init__(self, message: str):
        super().__init__(message, code="NETWORK", status=0)
