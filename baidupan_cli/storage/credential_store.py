"""
Persistent credential state: the persisted pool, the blocklist and the cleanup
history, all keyed by CredentialID.
"""

import logging
import time
from typing import Any, Iterable, Optional

from baidupan_cli.exceptions import ConfigurationError
from baidupan_cli.models.files import Credential, CredentialSource, credential_id

from .blob_store import BlobStore

log = logging.getLogger(__name__)

POOL_KEY = "server_cookies"
BLOCKLIST_KEY = "blocked_cookies"
CLEAN_HISTORY_KEY = "clean_history"


class CredentialStore:
    """
    Reads and writes credential state in a blob store, with a static fallback list.

    Every read-modify-write here is non-atomic: concurrent writers race and the
    last writer wins. Without a blob store the pool runs statelessly: nothing is
    blocked, history is unavailable, and writes are no-ops.
    """

    def __init__(
        self, blob_store: Optional[BlobStore], static_credentials: Iterable[str] = ()
    ):
        """
        Args:
            blob_store: The persistent store, or None when persistence is disabled.
            static_credentials: Fallback secrets from configuration.
        """
        self._blob_store = blob_store
        self._static_credentials = list(static_credentials)

    @property
    def persistent(self) -> bool:
        return self._blob_store is not None

    async def _read(self, key: str, default: Any) -> Any:
        """Reads a key, degrading to `default` when unavailable or unreadable."""
        if self._blob_store is None:
            return default
        try:
            value = await self._blob_store.get(key)
        except Exception as e:
            log.warning(f"[yellow]Store read failed for '{key}': {e}[/yellow]")
            return default
        if value is None or not isinstance(value, type(default)):
            return default
        return value

    async def _write(self, key: str, value: Any) -> None:
        if self._blob_store is None:
            return
        await self._blob_store.put(key, value)

    # Pool
    async def load_pool(self) -> list[str]:
        """Secrets persisted in the store, in insertion order."""
        return [s for s in await self._read(POOL_KEY, []) if isinstance(s, str) and s]

    async def load_candidates(self) -> list[Credential]:
        """
        The candidate credential list. The persisted pool takes precedence; the
        static configuration list applies only when the store yields nothing.
        """
        secrets = await self.load_pool()
        source = CredentialSource.STORE
        if not secrets:
            secrets = self._static_credentials
            source = CredentialSource.CONFIG

        unique = dict.fromkeys(s.strip() for s in secrets if s.strip())
        return [Credential(secret, source) for secret in unique]

    async def add_to_pool(self, secret: str) -> bool:
        """Persists a secret. Returns False if it was already present."""
        if self._blob_store is None:
            raise ConfigurationError(
                "Persisting credentials requires store_backend 'file' or 'memory'."
            )
        pool = await self.load_pool()
        if secret in pool:
            return False
        pool.append(secret)
        await self._write(POOL_KEY, pool)
        return True

    async def remove_from_pool(self, cred_id: str) -> bool:
        """Removes the persisted secret whose CredentialID starts with `cred_id`."""
        cred_id = cred_id.strip()
        if not cred_id:
            return False
        pool = await self.load_pool()
        remaining = [s for s in pool if not credential_id(s).startswith(cred_id)]
        if len(remaining) == len(pool):
            return False
        await self._write(POOL_KEY, remaining)
        return True

    # Blocklist
    async def load_blocklist(self) -> set[str]:
        return {i for i in await self._read(BLOCKLIST_KEY, []) if isinstance(i, str)}

    async def mark_blocked(self, cred_id: str) -> None:
        """Appends one CredentialID to the blocklist."""
        if self._blob_store is None:
            return
        blocked = await self._read(BLOCKLIST_KEY, [])
        if cred_id in blocked:
            return
        blocked.append(cred_id)
        await self._write(BLOCKLIST_KEY, blocked)
        log.info(f"Credential {cred_id} added to the blocklist.")

    async def replace_blocklist(self, cred_ids: Iterable[str]) -> None:
        """Overwrites the whole blocklist."""
        await self._write(BLOCKLIST_KEY, sorted(set(cred_ids)))

    # Cleanup history
    async def load_history(self) -> Optional[dict[str, float]]:
        """CredentialID -> last-cleaned unix time, or None without a store."""
        if self._blob_store is None:
            return None
        history = await self._read(CLEAN_HISTORY_KEY, {})
        return {
            k: float(v) for k, v in history.items() if isinstance(v, (int, float))
        }

    async def record_cleaned(
        self, cleaned_ids: Iterable[str], active_ids: Iterable[str]
    ) -> None:
        """
        Stamps the cleaned credentials with the current time and drops history
        entries for credentials no longer in the pool.
        """
        if self._blob_store is None:
            return
        history = await self.load_history() or {}
        now = time.time()
        for cred_id in cleaned_ids:
            history[cred_id] = now

        active = set(active_ids)
        await self._write(
            CLEAN_HISTORY_KEY, {k: v for k, v in history.items() if k in active}
        )
