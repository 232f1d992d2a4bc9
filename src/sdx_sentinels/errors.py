"""Shared error types for sdx_sentinels."""


class MissingArgumentError(ValueError):
    """Raised when a required collaborator or argument is absent."""


class OutOfRangeError(ValueError):
    """Raised when a numeric configuration value falls outside its domain."""
