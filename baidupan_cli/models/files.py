"""
Data structures shared by the share listing, transfer pipeline and results.
"""

import hashlib
import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def credential_id(secret: str) -> str:
    """Stable short identifier for a credential: first 12 hex chars of SHA-256."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()[:12]


class CredentialSource(Enum):
    """Where a credential came from."""

    USER = "user"
    STORE = "store"
    CONFIG = "config"


@dataclass(frozen=True)
class Credential:
    """An opaque session cookie bundle. The secret itself is never logged."""

    secret: str = field(repr=False)
    source: CredentialSource = CredentialSource.CONFIG

    @property
    def id(self) -> str:
        return credential_id(self.secret)

    @property
    def is_user_supplied(self) -> bool:
        return self.source is CredentialSource.USER

    def is_plausible(self) -> bool:
        """A usable cookie bundle must carry the BDUSS auth token."""
        return "BDUSS" in self.secret


@dataclass(frozen=True)
class ShareDescriptor:
    """Identifies the source share for every transfer call of a request."""

    share_id: int
    owner_key: int
    share_key: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShareDescriptor":
        try:
            return cls(
                share_id=int(data.get("shareid", data.get("shareId"))),
                owner_key=int(data.get("uk", data.get("ownerKey"))),
                share_key=str(
                    data.get("seckey") or data.get("sekey") or data.get("shareKey") or ""
                ),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid share descriptor: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return {"shareid": self.share_id, "uk": self.owner_key, "seckey": self.share_key}


@dataclass
class FileDescriptor:
    """
    A file or directory as seen by the pipeline.

    `relative_path` is the client-visible identity used for result reporting;
    `path` is the current server-side location, which changes as the file moves.
    """

    fs_id: int
    display_name: str
    size: int = 0
    is_directory: bool = False
    relative_path: str = ""
    path: str = ""

    def __post_init__(self):
        if not self.relative_path:
            self.relative_path = self.display_name

    @classmethod
    def from_remote(cls, item: dict[str, Any]) -> "FileDescriptor":
        """Builds a descriptor from a Baidu listing entry."""
        path = item.get("path", "")
        name = item.get("server_filename") or posixpath.basename(path)
        return cls(
            fs_id=int(item.get("fs_id", 0)),
            display_name=name,
            size=int(item.get("size", 0) or 0),
            is_directory=str(item.get("isdir", 0)) == "1",
            path=path,
        )

    @classmethod
    def from_request(cls, item: dict[str, Any]) -> "FileDescriptor":
        """Builds a descriptor from a client download request entry."""
        fs_id = item.get("fs_id", item.get("fsId"))
        if fs_id is None:
            raise ValueError(f"File entry is missing fs_id: {item!r}")
        name = (
            item.get("server_filename")
            or item.get("filename")
            or item.get("displayName")
            or posixpath.basename(item.get("path", ""))
            or str(fs_id)
        )
        is_dir = item.get("isdir", item.get("isDirectory", 0))
        return cls(
            fs_id=int(fs_id),
            display_name=name,
            size=int(item.get("size", 0) or 0),
            is_directory=is_dir is True or str(is_dir) == "1",
            relative_path=item.get("relativePath") or item.get("relative_path") or "",
            path=item.get("path", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fs_id": self.fs_id,
            "server_filename": self.display_name,
            "size": self.size,
            "isdir": 1 if self.is_directory else 0,
            "path": self.path,
            "relativePath": self.relative_path,
        }


@dataclass
class ShareListing:
    """The result of listing a share (or one directory inside it)."""

    share: ShareDescriptor
    files: list[FileDescriptor] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {**self.share.to_dict(), "list": [f.to_dict() for f in self.files]}


@dataclass(frozen=True)
class TransferredItem:
    """One entry of the transfer call's per-item result."""

    from_fs_id: int
    to_path: str


@dataclass(frozen=True)
class LinkResult:
    relative_path: str
    direct_link: str
    size: int
    filename: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "relativePath": self.relative_path,
            "dlink": self.direct_link,
            "size": self.size,
            "filename": self.filename,
        }


@dataclass(frozen=True)
class FileIssue:
    """A per-file failure or skip, keyed by the client-visible path."""

    relative_path: str
    reason: str

    def __str__(self) -> str:
        return self.reason


@dataclass
class TransferResult:
    """Partitioned outcome of one download request."""

    succeeded: list[LinkResult] = field(default_factory=list)
    failed: list[FileIssue] = field(default_factory=list)
    skipped: list[FileIssue] = field(default_factory=list)

    def reported_paths(self) -> set[str]:
        return (
            {r.relative_path for r in self.succeeded}
            | {f.relative_path for f in self.failed}
            | {s.relative_path for s in self.skipped}
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "succeeded": [r.to_dict() for r in self.succeeded],
            "failed": [str(f) for f in self.failed],
            "skipped": [str(s) for s in self.skipped],
        }
