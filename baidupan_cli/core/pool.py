"""
Selects a live credential for a request and hands back an initialized session.
"""

import logging
import random
from collections.abc import Callable
from typing import Optional

from baidupan_cli.api.client import RemoteSession
from baidupan_cli.exceptions import NoUsableCredentialError
from baidupan_cli.models.files import Credential, CredentialSource
from baidupan_cli.storage.credential_store import CredentialStore

from .tasks import BackgroundTasks

log = logging.getLogger(__name__)

SessionFactory = Callable[[Credential, Optional[str]], RemoteSession]


class CredentialPool:
    """
    Picks credentials from the store, skipping blocked ones, and returns the
    first whose session initializes.

    Selection is a uniform shuffle per request. Credentials that fail to
    initialize are reported to the blocklist in the background.
    """

    def __init__(
        self,
        store: CredentialStore,
        session_factory: SessionFactory,
        tasks: BackgroundTasks,
    ):
        self._store = store
        self._session_factory = session_factory
        self._tasks = tasks

    async def acquire_session(
        self,
        user_credential: Optional[str] = None,
        client_ip: Optional[str] = None,
    ) -> RemoteSession:
        """
        Returns an initialized session.

        A plausible user-supplied credential is tried first and bypasses the
        pool; the pool is used only if it fails to initialize.

        Raises:
            NoUsableCredentialError: If no candidate initializes.
        """
        if user_credential and user_credential.strip():
            credential = Credential(user_credential.strip(), CredentialSource.USER)
            if credential.is_plausible():
                session = self._session_factory(credential, client_ip)
                if await session.initialize():
                    log.debug(f"Using user-supplied credential {credential.id}.")
                    return session
                log.warning(
                    "[yellow]User-supplied cookie failed to initialize; "
                    "falling back to the server pool.[/yellow]"
                )
            else:
                log.warning(
                    "[yellow]User-supplied cookie has no BDUSS field; ignoring it."
                    "[/yellow]"
                )

        return await self._acquire_from_pool(client_ip)

    async def _acquire_from_pool(self, client_ip: Optional[str]) -> RemoteSession:
        candidates = await self._store.load_candidates()
        if not candidates:
            raise NoUsableCredentialError(
                "No server credentials are configured. Add some with "
                "'baidupan-cli pool add' or the server_cookies setting."
            )

        blocked = await self._store.load_blocklist()
        available = [c for c in candidates if c.id not in blocked]
        if not available:
            log.warning(
                "[yellow]All credentials are blocked. Retrying with the full list..."
                "[/yellow]"
            )
            available = list(candidates)

        random.shuffle(available)

        for credential in available:
            session = self._session_factory(credential, client_ip)
            if await session.initialize():
                log.debug(f"Selected credential {credential.id}.")
                return session

            log.warning(
                f"[yellow]Credential {credential.id} is invalid, "
                "adding to blocklist...[/yellow]"
            )
            self._tasks.spawn(
                self._store.mark_blocked(credential.id), name=f"block-{credential.id}"
            )

        raise NoUsableCredentialError(
            f"All {len(available)} credentials failed to initialize."
        )
