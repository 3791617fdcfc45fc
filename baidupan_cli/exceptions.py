"""
Defines custom exceptions for the application to allow for more specific error handling.
"""

from typing import Optional


class BaiduPanCliError(Exception):
    """Base exception for all application-specific errors."""


class InvalidLinkError(BaiduPanCliError):
    """Raised when a share link cannot be parsed. Not retryable."""


class NoUsableCredentialError(BaiduPanCliError):
    """Raised when every candidate credential failed to initialize a session."""


class RemoteOperationError(BaiduPanCliError):
    """
    Raised when a remote call reports a non-zero error code or the transport fails.

    Transport failures (network errors, timeouts, undecodable bodies) use code -1.
    """

    def __init__(self, code: int, message: str = "", action: Optional[str] = None):
        self.code = code
        self.message = message
        self.action = action
        prefix = f"{action} failed" if action else "Remote operation failed"
        detail = f" - {message}" if message else ""
        super().__init__(f"{prefix}: errno {code}{detail}")


class SessionNotInitializedError(BaiduPanCliError):
    """Raised when a mutating call is made on a session without a session token."""


class MappingUnresolvedError(BaiduPanCliError):
    """Raised when a transferred file cannot be joined back to a requested file."""


class SizeExceededError(BaiduPanCliError):
    """Raised when a file is larger than the direct-link size ceiling."""


class CleanupError(BaiduPanCliError):
    """Raised when deleting scratch state fails. Always swallowed by callers."""


class NothingTransferredError(BaiduPanCliError):
    """Raised when the scratch directory holds no files after a transfer."""


class ConfigurationError(BaiduPanCliError):
    """Raised for issues related to configuration loading or validation."""
