class LockoutError(Exception):
    """Base class for lockout tracker errors."""


class InvalidIdentifier(LockoutError, ValueError):
    """Identifier or identifier type rejected before touching the store."""


class StoreUnavailable(LockoutError):
    """
    The lockout store timed out or failed.
    The original exception is kept on .cause (and __cause__).
    """

    def __init__(self, message: str = "Lockout store unavailable", cause: Exception = None):
        super().__init__(message)
        self.cause = cause
