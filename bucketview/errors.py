class BucketViewError(Exception):
    """Base class for errors raised by the storage layer."""


class ValidationError(BucketViewError):
    """Missing or invalid input, e.g. an empty object name."""


class PayloadTooLargeError(ValidationError):
    pass


class NotFoundError(BucketViewError):
    """The object does not exist, or a share token is invalid or expired."""


class StorageError(BucketViewError):
    """The backing object store call failed."""
