"""
Entry point for callers: wires the credential pool, the transfer pipeline and
the maintenance sweeps around one shared connection pool and store.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp

from baidupan_cli.api.client import RemoteSession, list_shared_files
from baidupan_cli.models.config import AppConfig
from baidupan_cli.models.files import Credential, FileDescriptor, ShareDescriptor
from baidupan_cli.models.maintenance import CleanupReport, HealthResult
from baidupan_cli.storage.blob_store import BlobStore, FileBlobStore, MemoryBlobStore
from baidupan_cli.storage.credential_store import CredentialStore
from baidupan_cli.utils.link import parse_share_link

from .maintenance import MaintenanceScheduler
from .orchestrator import TransferOrchestrator
from .pool import CredentialPool
from .tasks import BackgroundTasks

log = logging.getLogger(__name__)


def build_blob_store(config: AppConfig) -> Optional[BlobStore]:
    """Creates the blob store selected by `store_backend`, or None for 'none'."""
    if config.store_backend == "file":
        base = Path(config.store_dir or config.config_path or ".")
        return FileBlobStore(base / "store")
    if config.store_backend == "memory":
        return MemoryBlobStore()
    return None


def build_credential_store(config: AppConfig) -> CredentialStore:
    return CredentialStore(build_blob_store(config), config.server_cookies)


class ShareLinkService:
    """
    Lists shares and turns requested files into direct links.

    One instance serves many requests; per-request state lives in the
    RemoteSession and TransferJob it creates.
    """

    def __init__(
        self,
        config: AppConfig,
        http: aiohttp.ClientSession,
        store: CredentialStore,
        tasks: Optional[BackgroundTasks] = None,
    ):
        self.config = config
        self.store = store
        self.tasks = tasks or BackgroundTasks()
        self._http = http

        self.pool = CredentialPool(store, self._new_session, self.tasks)
        self.orchestrator = TransferOrchestrator(config, self.tasks)
        self.maintenance = MaintenanceScheduler(config, store, self._new_session)

    def _new_session(
        self, credential: Credential, client_ip: Optional[str]
    ) -> RemoteSession:
        return RemoteSession(credential, self._http, client_ip or self.config.client_ip)

    async def list_share(self, link: str, directory: Optional[str] = None) -> Dict[str, Any]:
        """Lists a share's root, or `directory` inside it. Needs no credential."""
        share_link = parse_share_link(link)
        listing = await list_shared_files(
            self._http, share_link.short_url, share_link.password, directory
        )
        return {"success": True, "data": listing.to_dict()}

    async def download(
        self,
        files: List[Dict[str, Any]],
        share: Dict[str, Any],
        user_credential: Optional[str] = None,
        user_agent: Optional[str] = None,
        client_ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Produces direct links for `files` from the share described by `share`.

        Raises:
            ValueError: If the request is malformed.
            NoUsableCredentialError: If no credential can be initialized.
            RemoteOperationError: If a pipeline stage fails.
        """
        targets = [FileDescriptor.from_request(item) for item in files]
        if not targets:
            raise ValueError("No files were requested.")
        descriptor = ShareDescriptor.from_dict(share)

        session = await self.pool.acquire_session(user_credential, client_ip)
        result = await self.orchestrator.run(session, targets, descriptor, user_agent)
        return result.to_dict()

    async def run_health_sweep(self) -> List[HealthResult]:
        return await self.maintenance.run_health_sweep()

    async def run_cleanup_sweep(self) -> CleanupReport:
        return await self.maintenance.run_cleanup_sweep()

    async def drain_background(self, timeout: Optional[float] = None) -> bool:
        """Waits for blocklist writes and deferred deletes to finish."""
        if self.tasks.pending:
            log.debug(f"Waiting for {self.tasks.pending} background task(s)...")
        return await self.tasks.drain(timeout)
