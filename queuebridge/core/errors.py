"""Exception types shared by storage backends and the queue protocol."""


class StorageError(Exception):
    """Backend read/write/stat failed; callers retry on the next tick."""

    def __init__(self, message, *, path=None, backend=None):
        super().__init__(message)
        self.path = path
        self.backend = backend


class StorageNotFound(StorageError):
    """The requested file does not exist on the backend."""


class MalformedDocument(ValueError):
    """A queue/result file could not be decoded into a request list."""


class QueueError(Exception):
    """Base class for producer-side queue failures."""

    error_code = "queue_error"


class UnknownFeatureError(QueueError):
    error_code = "unknown_feature"


class PayloadValidationError(QueueError):
    error_code = "invalid_payload"


class DuplicateRequestError(QueueError):
    error_code = "duplicate_request"

    def __init__(self, request_id):
        super().__init__(f"Request id already exists: {request_id}")
        self.request_id = request_id


class EnqueueError(QueueError):
    """The record could not be confirmed in the queue file after writing."""

    error_code = "enqueue_failed"
