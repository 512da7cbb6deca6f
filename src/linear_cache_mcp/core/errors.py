"""Error kinds raised by the cache, preview and apply services."""


class SyncError(Exception):
    """Base class for all sync engine errors."""


class RemoteFetchError(SyncError):
    """The Linear API call failed. Preview computation aborts entirely."""


class CacheStoreError(SyncError):
    """Local persistence failed for a single operation."""


class ChangeValidationError(SyncError):
    """An apply request references something the preview does not allow."""


class PreviewNotFoundError(ChangeValidationError):
    pass


class StalePreviewError(ChangeValidationError):
    pass
