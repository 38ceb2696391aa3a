"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class HfmdError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(HfmdError):
    """Raised for issues related to configuration loading or validation."""


class AuthenticationError(HfmdError):
    """Raised when the hub rejects the request (401/403), e.g. a gated repository."""


class RepositoryNotFoundError(HfmdError):
    """Raised when a repository, revision or path does not exist on the hub."""


class TransferError(HfmdError):
    """Base class for errors that fail a single file transfer."""


class MissingLengthHeaderError(TransferError):
    """
    Raised when the server response has no Content-Length, leaving nothing to
    size the transfer or check it against before finalizing.
    """


class IncompleteTransferError(TransferError):
    """Raised when the stream ends before the declared number of bytes arrived."""


class UnsafePathError(TransferError):
    """Raised when a remote path would resolve outside the destination root."""


class TransferCancelledError(HfmdError):
    """Raised inside a transfer when the job's cancellation token fires."""
