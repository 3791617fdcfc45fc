"""
Immutable Cookie header snapshots and the pure merge of server-issued cookies.
"""

from collections.abc import Iterable
from dataclasses import dataclass

_IGNORED_ATTRIBUTES = {"path", "domain"}


def _split_pair(text: str) -> tuple[str, str] | None:
    idx = text.find("=")
    if idx < 0:
        return None
    return text[:idx].strip(), text[idx + 1 :].strip()


@dataclass(frozen=True)
class CookieSnapshot:
    """The Cookie header a session sends, held by value."""

    header: str = ""

    def as_dict(self) -> dict[str, str]:
        cookies: dict[str, str] = {}
        for part in self.header.split(";"):
            if pair := _split_pair(part):
                cookies[pair[0]] = pair[1]
        return cookies

    def get(self, name: str) -> str | None:
        return self.as_dict().get(name)


def merge_set_cookies(
    snapshot: CookieSnapshot, set_cookie_headers: Iterable[str] | None
) -> CookieSnapshot:
    """
    Returns a snapshot with the name=value pair of each Set-Cookie header applied.

    Only the leading pair of each header is used; empty names and path/domain
    attributes are ignored. When nothing changes the original snapshot is
    returned so its raw header text is preserved.
    """
    if not set_cookie_headers:
        return snapshot

    cookies = snapshot.as_dict()
    changed = False
    for raw in set_cookie_headers:
        pair = _split_pair(raw.split(";", 1)[0])
        if pair is None:
            continue
        name, value = pair
        if not name or name.lower() in _IGNORED_ATTRIBUTES:
            continue
        if cookies.get(name) != value:
            cookies[name] = value
            changed = True

    if not changed:
        return snapshot
    return CookieSnapshot("; ".join(f"{k}={v}" for k, v in cookies.items()))
