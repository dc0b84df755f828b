"""This module defines the exceptions raised by the oblivious storage.

Every exception derives from OramError so callers can catch the whole family at once. Where a built-in exception
describes the same condition, it is used as a second base so existing handlers keep working.
"""


class OramError(Exception):
    """Base class for all errors raised by this library."""


class ConfigurationError(OramError, ValueError):
    """Raised when an oram is created with invalid parameters; no state is created."""


class StashOverflowError(OramError, MemoryError):
    """Raised when the stash is larger than its safety bound after an eviction; the tree is undersized."""


class BackingStoreError(OramError, IOError):
    """Raised when reading or writing a bucket on the backing store fails."""


class EncryptionError(OramError):
    """Raised when a slot fails authentication or decrypts to a malformed record."""


class OramClosedError(OramError):
    """Raised when an oram is used after it has been torn down."""
