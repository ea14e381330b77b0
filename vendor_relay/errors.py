class ServiceError(Exception):
    """Base class for errors raised by the job pipeline"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Client supplied something unusable: missing payload, malformed id, unknown vendor"""

    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class PersistenceError(ServiceError):
    """The job store is unavailable or rejected a write"""


class QueueError(ServiceError):
    """The queue store is unavailable"""


class RateLimiterError(ServiceError):
    """The rate limit counter store is unavailable"""


class RateLimitTimeout(ServiceError):
    """No rate limit slot became free within the wait bound"""


class VendorError(ServiceError):
    """The vendor call failed or returned something unusable"""
