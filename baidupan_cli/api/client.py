"""
Async client for the Baidu Netdisk web API, bound to a single credential.
"""

import asyncio
import base64
import json
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import aiohttp

from baidupan_cli.exceptions import (
    CleanupError,
    RemoteOperationError,
    SessionNotInitializedError,
)
from baidupan_cli.models.config import DEFAULT_CLIENT_IP
from baidupan_cli.models.files import (
    Credential,
    FileDescriptor,
    ShareDescriptor,
    ShareListing,
    TransferredItem,
)

from .auth import SessionAuthenticator
from .cookies import CookieSnapshot, merge_set_cookies

log = logging.getLogger(__name__)

BASE_URL = "https://pan.baidu.com"
WEB_APP_ID = "250528"
DEFAULT_USER_AGENT = "netdisk"

# Anonymous listing uses a fixed visitor cookie and the mobile-share UA.
SHARE_LIST_HEADERS = {
    "User-Agent": "pan.baidu.com",
    "Cookie": (
        "XFI=a5670f2f-f8ea-321f-0e65-2aa7030459eb; "
        "XFCS=945BEA7DFA30AC8B92389217A688C31B247D394739411C7F697F23C4660EB72F;"
    ),
}

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError)


async def list_shared_files(
    http: aiohttp.ClientSession,
    short_url: str,
    password: str,
    directory: Optional[str] = None,
) -> ShareListing:
    """
    Lists the root of a public share, or one directory inside it.

    This call is anonymous and does not consume a pool credential.
    """
    form = {
        "shorturl": short_url,
        "pwd": password,
        "root": "0" if directory else "1",
        "page": "1",
        "number": "1000",
        "order": "time",
    }
    if directory:
        form["dir"] = directory

    params = {
        "channel": "weixin",
        "version": "2.2.3",
        "clienttype": "25",
        "web": "1",
        "qq-pf-to": "pcqq.c2c",
    }
    try:
        async with http.post(
            f"{BASE_URL}/share/wxlist",
            params=params,
            data=form,
            headers=SHARE_LIST_HEADERS,
        ) as r:
            r.raise_for_status()
            data = await r.json(content_type=None)
    except _TRANSPORT_ERRORS as e:
        raise RemoteOperationError(-1, str(e), action="List share") from e

    if data.get("errno") != 0:
        raise RemoteOperationError(
            data.get("errno", -1), data.get("show_msg", ""), action="List share"
        )

    payload = data.get("data", {})
    share = ShareDescriptor.from_dict(payload)
    files = [FileDescriptor.from_remote(item) for item in payload.get("list", [])]
    log.debug(f"Share '{short_url}' listed {len(files)} entries.")
    return ShareListing(share=share, files=files)


class RemoteSession:
    """
    One credential's view of the remote service.

    Holds the latest cookie snapshot by value and the session token captured by
    `initialize()`. Intended for sequential use within a single transfer job.
    """

    def __init__(
        self,
        credential: Credential,
        http: aiohttp.ClientSession,
        client_ip: Optional[str] = None,
    ):
        """
        Args:
            credential: The cookie bundle this session authenticates with.
            http: The shared connection pool.
            client_ip: Caller IP forwarded to the service.
        """
        self.credential = credential
        self.client_ip = client_ip or DEFAULT_CLIENT_IP
        self.cookies = CookieSnapshot(credential.secret)
        self.session_token: Optional[str] = None
        self._http = http
        self._authenticator = SessionAuthenticator(self)

    @property
    def is_usable(self) -> bool:
        return bool(self.session_token)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Cookie": self.cookies.header,
            "Referer": f"{BASE_URL}/",
            "X-Forwarded-For": self.client_ip,
            "X-BS-Client-IP": self.client_ip,
            "X-Real-IP": self.client_ip,
        }
        if extra:
            headers.update(extra)
        return headers

    def _web_params(self, **extra: Any) -> Dict[str, Any]:
        """Common query parameters for mutating endpoints."""
        if not self.session_token:
            raise SessionNotInitializedError(
                f"Session for credential {self.credential.id} has no session token."
            )
        return {
            "channel": "chunlei",
            "web": "1",
            "app_id": WEB_APP_ID,
            "clienttype": "0",
            "bdstoken": self.session_token,
            **extra,
        }

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        action: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        update_cookies: bool = False,
    ) -> Dict[str, Any]:
        """
        Performs one API call and returns the decoded JSON body.

        Raises:
            RemoteOperationError: code -1 for any transport or decoding failure.
        """
        start_time = time.monotonic()
        try:
            async with self._http.request(
                method, url, params=params, data=data, headers=self._headers(headers)
            ) as r:
                if update_cookies:
                    self.cookies = merge_set_cookies(
                        self.cookies, r.headers.getall("Set-Cookie", [])
                    )
                r.raise_for_status()
                body = await r.json(content_type=None)
        except _TRANSPORT_ERRORS as e:
            log.debug(f"{action} call failed for {self.credential.id}: {e}")
            raise RemoteOperationError(-1, str(e), action=action) from e

        duration_ms = (time.monotonic() - start_time) * 1000
        log.debug(
            f"{action} for {self.credential.id} answered errno "
            f"{body.get('errno')} in {duration_ms:.0f}ms"
        )
        return body

    async def plant_cookie(self, url: str) -> None:
        """Hits an endpoint whose only effect is issuing session cookies."""
        try:
            async with self._http.get(url, headers=self._headers()) as r:
                self.cookies = merge_set_cookies(
                    self.cookies, r.headers.getall("Set-Cookie", [])
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteOperationError(-1, str(e), action="Plant cookie") from e

    @staticmethod
    def _check(body: Dict[str, Any], action: str) -> Dict[str, Any]:
        errno = body.get("errno", -1)
        if errno != 0:
            raise RemoteOperationError(errno, body.get("show_msg", ""), action=action)
        return body

    async def initialize(self) -> bool:
        """Captures a session token. Never raises; returns False on any failure."""
        return await self._authenticator.initialize()

    async def create_directory(self, path: str) -> str:
        body = await self.request_json(
            "POST",
            f"{BASE_URL}/api/create",
            action="Create directory",
            params=self._web_params(a="commit"),
            data={"path": path, "isdir": "1", "block_list": "[]"},
        )
        return self._check(body, "Create directory").get("path", path)

    async def transfer(
        self, fs_ids: List[int], share: ShareDescriptor, dest_path: str
    ) -> List[TransferredItem]:
        """Copies shared files into `dest_path` and returns where each one landed."""
        params = self._web_params(
            shareid=share.share_id,
            **{"from": share.owner_key},
            sekey=share.share_key,
            ondup="newcopy",
            **{"async": "1"},
        )
        body = await self.request_json(
            "POST",
            f"{BASE_URL}/share/transfer",
            action="Transfer",
            params=params,
            data={
                "fsidlist": "[" + ",".join(str(i) for i in fs_ids) + "]",
                "path": dest_path,
            },
        )
        self._check(body, "Transfer")

        items = []
        for entry in (body.get("extra") or {}).get("list") or []:
            if entry.get("from_fs_id") is None or not entry.get("to"):
                continue
            items.append(
                TransferredItem(from_fs_id=int(entry["from_fs_id"]), to_path=entry["to"])
            )
        return items

    async def list_directory(self, path: str) -> List[FileDescriptor]:
        """Lists one directory. Degrades to an empty list on any error."""
        params = {
            "clienttype": "0",
            "app_id": WEB_APP_ID,
            "web": "1",
            "order": "name",
            "desc": "0",
            "dir": path,
            "num": "1000",
            "page": "1",
        }
        try:
            body = await self.request_json(
                "GET", f"{BASE_URL}/api/list", action="List directory", params=params
            )
        except RemoteOperationError:
            return []
        if body.get("errno") != 0:
            log.debug(f"Listing '{path}' returned errno {body.get('errno')}.")
            return []
        return [FileDescriptor.from_remote(item) for item in body.get("list") or []]

    async def rename_batch(self, renames: List[Dict[str, str]]) -> bool:
        """Renames every `{path, newname}` entry in one all-or-nothing call."""
        body = await self.request_json(
            "POST",
            f"{BASE_URL}/api/filemanager",
            action="Rename",
            params=self._web_params(opera="rename", onnest="fail", **{"async": "2"}),
            data={"filelist": json.dumps(renames, ensure_ascii=False)},
        )
        return body.get("errno") == 0

    async def delete_batch(self, paths: List[str]) -> None:
        """
        Deletes paths. The service's answer is ignored; deleting a missing path
        is not an error.

        Raises:
            CleanupError: if the request itself could not be made.
        """
        try:
            await self.request_json(
                "POST",
                f"{BASE_URL}/api/filemanager",
                action="Delete",
                params=self._web_params(opera="delete", onnest="fail", **{"async": "2"}),
                data={"filelist": json.dumps(paths, ensure_ascii=False)},
            )
        except (RemoteOperationError, SessionNotInitializedError) as e:
            raise CleanupError(f"Could not delete {paths}: {e}") from e

    async def get_direct_link(self, path: str, user_agent: str) -> str:
        """Asks for a direct link, presenting the caller's user agent."""
        log_id = base64.b64encode(str(uuid.uuid4()).encode()).decode()
        params = {
            "clienttype": "0",
            "app_id": WEB_APP_ID,
            "web": "1",
            "channel": "chunlei",
            "logid": log_id,
            "path": path,
            "origin": "pdf",
            "use": "1",
        }
        body = await self.request_json(
            "GET",
            f"{BASE_URL}/api/locatedownload",
            action="Get link",
            params=params,
            headers={"User-Agent": user_agent},
        )
        self._check(body, "Get link")
        if not body.get("dlink"):
            raise RemoteOperationError(-1, "response carried no dlink", action="Get link")
        return body["dlink"]
