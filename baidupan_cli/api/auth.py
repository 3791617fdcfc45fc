"""
Handles session initialization for a borrowed credential: fetching the session
token and collecting the cookies the service plants for file operations.
"""

import logging
from typing import TYPE_CHECKING

from baidupan_cli.exceptions import RemoteOperationError

if TYPE_CHECKING:
    from .client import RemoteSession

log = logging.getLogger(__name__)

TEMPLATE_VARIABLE_URL = "https://pan.baidu.com/api/gettemplatevariable"
TEMPLATE_FIELDS = '["bdstoken","token","uk","isdocuser","servertime"]'
PLANT_COOKIE_URLS = (
    "https://pcs.baidu.com/rest/2.0/pcs/file?method=plantcookie&type=ett",
    "https://pcs.baidu.com/rest/2.0/pcs/file?method=plantcookie&type=stoken&source=pcs",
)


class SessionAuthenticator:
    """
    Manages the initialization flow for a RemoteSession.
    """

    def __init__(self, session: "RemoteSession"):
        """
        Args:
            session: The session whose token and cookies are populated.
        """
        self._session = session

    async def initialize(self) -> bool:
        """
        Fetches the session token, then plants the auxiliary session cookies.

        Returns:
            True when the session is usable. Any network, parse, or service
            failure yields False instead of an exception.
        """
        credential_id = self._session.credential.id
        try:
            body = await self._session.request_json(
                "GET",
                TEMPLATE_VARIABLE_URL,
                action="Session init",
                params={
                    "clienttype": "12",
                    "app_id": "250528",
                    "web": "1",
                    "fields": TEMPLATE_FIELDS,
                },
                update_cookies=True,
            )
        except RemoteOperationError as e:
            log.debug(f"Credential {credential_id} failed to initialize: {e}")
            return False

        token = (body.get("result") or {}).get("bdstoken")
        if body.get("errno") != 0 or not token:
            log.debug(
                f"Credential {credential_id} rejected "
                f"(errno {body.get('errno')}, token present: {bool(token)})."
            )
            return False

        try:
            for url in PLANT_COOKIE_URLS:
                await self._session.plant_cookie(url)
        except RemoteOperationError as e:
            log.debug(f"Cookie planting failed for {credential_id}: {e}")
            return False

        self._session.session_token = token
        log.debug(f"Credential {credential_id} initialized.")
        return True
