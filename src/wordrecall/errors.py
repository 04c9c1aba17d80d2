"""Exception types raised by the trainer."""


class WordRecallError(Exception):
    """Base class for all trainer errors."""


class ConfigurationError(WordRecallError, ValueError):
    """Raised when settings fail validation."""


class StorageError(WordRecallError):
    """Raised when a durable read or write fails."""


class SessionStateError(WordRecallError, RuntimeError):
    """Raised when a session method is called out of order."""
