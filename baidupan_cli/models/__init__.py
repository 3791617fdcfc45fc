"""
Data Models Layer.

This package contains the Pydantic configuration model and the dataclasses
that describe credentials, share entries, and pipeline results.
"""

from .config import AppConfig
from .files import (
    Credential,
    CredentialSource,
    FileDescriptor,
    LinkResult,
    ShareDescriptor,
    TransferResult,
)

__all__ = [
    "AppConfig",
    "Credential",
    "CredentialSource",
    "FileDescriptor",
    "LinkResult",
    "ShareDescriptor",
    "TransferResult",
]
