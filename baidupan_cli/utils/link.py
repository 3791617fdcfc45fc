"""
Utilities for extracting the share id and password from share link text.
"""

import re
from typing import NamedTuple

from baidupan_cli.exceptions import InvalidLinkError

_SHORT_URL_REGEX = re.compile(
    r"(?:^|\s)(?:https?://)?(?:pan|yun)\.baidu\.com/s/(?P<surl>[\w-]+)"
)
_INIT_URL_REGEX = re.compile(
    r"(?:^|\s)(?:https?://)?(?:pan|yun)\.baidu\.com/share/init\?.*surl=(?P<surl>[\w-]+)"
)
_QUERY_PWD_REGEX = re.compile(r"[?&]pwd=(?P<pwd>[a-zA-Z0-9]{4})\b")
_TEXT_PWD_REGEX = re.compile(
    r"(?:pwd|码|code)[\s:：=]+(?P<pwd>[a-zA-Z0-9]{4})\b", re.IGNORECASE
)


class ShareLink(NamedTuple):
    short_url: str
    password: str


def parse_share_link(text: str) -> ShareLink:
    """
    Parses share link text, as users paste it, into its short url and password.

    Raises:
        InvalidLinkError: If no share id can be found.
    """
    text = (text or "").strip()

    short_url = ""
    if match := _SHORT_URL_REGEX.search(text):
        short_url = match.group("surl")
    elif match := _INIT_URL_REGEX.search(text):
        # The init?surl= form omits the leading '1' of the short url.
        short_url = "1" + match.group("surl")

    if not short_url:
        raise InvalidLinkError(f"Not a valid Baidu Netdisk share link: {text!r}")

    password = ""
    if match := _QUERY_PWD_REGEX.search(text) or _TEXT_PWD_REGEX.search(text):
        password = match.group("pwd")

    return ShareLink(short_url=short_url, password=password)
