"""
Periodic upkeep of the credential pool: health sweeps that rebuild the
blocklist, and cleanup sweeps that empty each credential's scratch root.
"""

import asyncio
import logging
import random
from contextlib import suppress
from typing import List

from baidupan_cli.exceptions import CleanupError
from baidupan_cli.models.config import AppConfig
from baidupan_cli.models.files import Credential
from baidupan_cli.models.maintenance import CleanupReport, HealthResult
from baidupan_cli.storage.credential_store import CredentialStore

from .pool import SessionFactory

log = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


class MaintenanceScheduler:
    """Runs the health and cleanup sweeps, once or on a timer."""

    def __init__(
        self,
        config: AppConfig,
        store: CredentialStore,
        session_factory: SessionFactory,
    ):
        self.config = config
        self._store = store
        self._session_factory = session_factory
        self._loop_tasks: List[asyncio.Task] = []

    async def _probe(self, credential: Credential, delay: float) -> HealthResult:
        await asyncio.sleep(delay)
        session = self._session_factory(credential, None)
        alive = await session.initialize()
        log.debug(f"Health check {credential.id}: {'alive' if alive else 'dead'}")
        return HealthResult(credential_id=credential.id, alive=alive)

    async def run_health_sweep(self) -> List[HealthResult]:
        """
        Initializes every candidate and replaces the blocklist with exactly the
        set that failed. Probes start staggered to spread the load.
        """
        candidates = await self._store.load_candidates()
        if not candidates:
            log.info("Health sweep: no credentials configured.")
            return []

        results = await asyncio.gather(
            *(
                self._probe(c, i * self.config.health_stagger)
                for i, c in enumerate(candidates)
            )
        )

        dead = [r.credential_id for r in results if not r.alive]
        if self._store.persistent:
            await self._store.replace_blocklist(dead)
        log.info(
            f"Health sweep: {len(results) - len(dead)} alive, {len(dead)} blocked "
            f"out of {len(results)}."
        )
        return list(results)

    async def _select_for_cleanup(
        self, candidates: List[Credential]
    ) -> tuple[str, List[Credential]]:
        batch_size = min(self.config.cleanup_batch_size, len(candidates))
        history = await self._store.load_history()
        if history is None:
            return "random", random.sample(candidates, batch_size)

        # Never-cleaned credentials sort first. sorted() is stable, so ties keep
        # candidate order.
        ordered = sorted(candidates, key=lambda c: history.get(c.id, 0.0))
        return "lru", ordered[:batch_size]

    async def _clean_one(self, credential: Credential, delay: float) -> str:
        await asyncio.sleep(delay)
        session = self._session_factory(credential, None)
        if not await session.initialize():
            log.warning(
                f"[yellow]Cleanup: credential {credential.id} is invalid, "
                "adding to blocklist...[/yellow]"
            )
            try:
                await self._store.mark_blocked(credential.id)
            except Exception as e:
                log.warning(
                    f"[yellow]Could not block {credential.id}: {e}[/yellow]"
                )
            return STATUS_SKIPPED

        try:
            await session.delete_batch([self.config.scratch_root])
        except CleanupError as e:
            log.warning(f"[yellow]Cleanup failed for {credential.id}: {e}[/yellow]")
            return STATUS_FAILED
        return STATUS_SUCCESS

    async def run_cleanup_sweep(self) -> CleanupReport:
        """
        Deletes the scratch root for a batch of credentials.

        With persistence, the least recently cleaned credentials are chosen and
        their history is updated; without it, a random sample is taken.
        """
        candidates = await self._store.load_candidates()
        if not candidates:
            log.info("Cleanup sweep: no credentials configured.")
            return CleanupReport(strategy="none")

        strategy, targets = await self._select_for_cleanup(candidates)
        report = CleanupReport(strategy=strategy, total_credentials=len(candidates))

        statuses = await asyncio.gather(
            *(
                self._clean_one(c, i * self.config.cleanup_stagger)
                for i, c in enumerate(targets)
            )
        )
        report.statuses = {c.id: s for c, s in zip(targets, statuses)}

        if self._store.persistent and report.cleaned:
            await self._store.record_cleaned(
                report.cleaned, [c.id for c in candidates]
            )
        log.info(report.summary())
        return report

    async def _periodic(self, name: str, sweep, interval: float) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
                await sweep()
            except asyncio.CancelledError:
                log.debug(f"{name} loop cancelled.")
                break
            except Exception as e:
                log.warning(f"Error in {name} loop: {e}")

    def start(self) -> None:
        """Starts both sweeps on their configured intervals."""
        if self._loop_tasks:
            return
        self._loop_tasks = [
            asyncio.create_task(
                self._periodic(
                    "health", self.run_health_sweep, self.config.health_interval
                )
            ),
            asyncio.create_task(
                self._periodic(
                    "cleanup", self.run_cleanup_sweep, self.config.cleanup_interval
                )
            ),
        ]
        log.debug("Started maintenance loops.")

    async def stop(self) -> None:
        for task in self._loop_tasks:
            task.cancel()
        for task in self._loop_tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._loop_tasks = []
        log.debug("Stopped maintenance loops.")

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._loop_tasks)

    async def run_forever(self, run_now: bool = True) -> None:
        """Runs one round immediately (optionally), then loops until cancelled."""
        if run_now:
            await self.run_health_sweep()
            await self.run_cleanup_sweep()
        self.start()
        try:
            await asyncio.gather(*self._loop_tasks)
        finally:
            await self.stop()
