"""
Baidu Netdisk API Layer.

This package handles all communication with the Baidu Netdisk web API.
"""

from .auth import SessionAuthenticator
from .client import RemoteSession, list_shared_files
from .cookies import CookieSnapshot, merge_set_cookies

__all__ = [
    "CookieSnapshot",
    "RemoteSession",
    "SessionAuthenticator",
    "list_shared_files",
    "merge_set_cookies",
]
