"""
Storage Layer.

This package handles all data persistence: the INI configuration file and the
JSON blob store holding the credential pool, blocklist and cleanup history.
"""

from .blob_store import BlobStore, FileBlobStore, MemoryBlobStore
from .config_manager import ConfigManager
from .credential_store import CredentialStore

__all__ = [
    "BlobStore",
    "ConfigManager",
    "CredentialStore",
    "FileBlobStore",
    "MemoryBlobStore",
]
