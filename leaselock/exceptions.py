"""leaselock exception classes."""

class LeaseLockError(Exception):
    """Base exception for all leaselock errors."""
    pass


class StoreError(LeaseLockError):
    """Raised when the backing store fails an operation."""
    pass


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached or errors out."""
    pass


class AuthenticationError(StoreError):
    """Raised when the store rejects our credentials."""
    pass


class LockError(LeaseLockError):
    """Raised when a lock operation is rejected."""

    def __init__(self, message: str, name: str = None):
        super().__init__(message)
        self.name = name


class NotHeldError(LockError):
    """Raised when releasing a lock whose record does not exist."""
    pass


class WrongHolderError(LockError):
    """Raised when releasing a lock that belongs to a different holder."""
    pass


class LockHeldError(LockError):
    """Raised when entering a lock that another holder owns."""
    pass


class ConfigurationError(LeaseLockError):
    """Raised when a lock or store is constructed with invalid parameters."""
    pass
