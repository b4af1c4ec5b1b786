"""Custom exception classes for the Coordinator."""


class CoordinatorException(Exception):
    """
    Base exception class for all coordinator errors.
    """
    pass


class StorageError(CoordinatorException):
    """
    Raised when the object store fails while checking existence or
    building an upload capability.
    """
    pass


class ConfigurationError(CoordinatorException):
    """
    Raised when required coordinator settings are missing.
    """
    pass
