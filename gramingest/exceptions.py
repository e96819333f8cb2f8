"""Custom exception hierarchy for gramingest."""


class GramingestError(Exception):
    """Base exception for all gramingest errors."""


class ConfigError(GramingestError):
    """Missing or invalid configuration, e.g. no active API credential."""


class RunnerError(GramingestError):
    """Actor platform request failed."""


class StorageError(GramingestError):
    """Object storage operation failed."""


class RepositoryError(GramingestError):
    """Database read or write failed."""


class ParseError(GramingestError):
    """Scraped payload could not be decoded."""


class AuthenticationError(GramingestError):
    """No authenticated acting user."""


class ProfileNotFoundError(RepositoryError):
    """Profile does not exist or belongs to another user."""
