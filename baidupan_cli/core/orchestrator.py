"""
Drives one download request through the remote pipeline: scratch directory,
transfer, enumeration, rename, and per-file link fetching.
"""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from baidupan_cli.api.client import RemoteSession
from baidupan_cli.exceptions import (
    CleanupError,
    MappingUnresolvedError,
    NothingTransferredError,
    RemoteOperationError,
    SizeExceededError,
)
from baidupan_cli.models.config import AppConfig
from baidupan_cli.models.files import (
    FileDescriptor,
    FileIssue,
    LinkResult,
    ShareDescriptor,
    TransferredItem,
    TransferResult,
)
from baidupan_cli.utils.formatting import format_size

from .tasks import BackgroundTasks

log = logging.getLogger(__name__)

# Renaming to .pdf makes the service hand out small-file accelerated links.
RENAME_SUFFIX = ".pdf"


class JobState(Enum):
    START = "start"
    DIR_CREATED = "dir_created"
    TRANSFERRED = "transferred"
    ENUMERATED = "enumerated"
    RENAMED = "renamed"
    LINKS_FETCHED = "links_fetched"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TransferJob:
    """Ephemeral state of one download request. Owns its scratch directory."""

    scratch_dir: str
    targets: List[FileDescriptor]
    state: JobState = JobState.START
    result: TransferResult = field(default_factory=TransferResult)

    @classmethod
    def create(cls, scratch_root: str, targets: List[FileDescriptor]) -> "TransferJob":
        return cls(scratch_dir=f"{scratch_root}/{uuid.uuid4().hex}", targets=targets)

    @property
    def target_fs_ids(self) -> List[int]:
        return [t.fs_id for t in self.targets]

    def advance(self, state: JobState) -> None:
        log.debug(f"Job {self.scratch_dir}: {self.state.name} -> {state.name}")
        self.state = state


@dataclass(frozen=True)
class PendingFile:
    """A transferred file that passed mapping and size checks."""

    entry: FileDescriptor
    relative_path: str

    @property
    def renamed_path(self) -> str:
        return self.entry.path + RENAME_SUFFIX


class TransferOrchestrator:
    """Runs transfer jobs against an initialized RemoteSession."""

    def __init__(self, config: AppConfig, tasks: BackgroundTasks):
        self.config = config
        self._tasks = tasks

    async def run(
        self,
        session: RemoteSession,
        targets: List[FileDescriptor],
        share: ShareDescriptor,
        user_agent: Optional[str] = None,
    ) -> TransferResult:
        """
        Executes the full pipeline for `targets`.

        Per-file problems are collected in the returned result. Stage failures
        (directory creation, transfer after its retry, batch rename) propagate
        after a best-effort delete of the scratch directory.
        """
        if not targets:
            raise ValueError("No files were requested.")

        job = TransferJob.create(self.config.scratch_root, list(targets))
        log.info(
            f"Transferring {len(targets)} item(s) with credential "
            f"{session.credential.id} into {job.scratch_dir}"
        )

        try:
            await self._execute(
                session, job, share, user_agent or self.config.link_user_agent
            )
        except Exception:
            job.advance(JobState.FAILED)
            await self._delete_scratch(session, job.scratch_dir)
            raise

        # Pool credentials are swept in bulk by the cleanup job instead.
        if session.credential.is_user_supplied:
            self._tasks.spawn(
                self._deferred_delete(session, job.scratch_dir),
                name=f"cleanup-{job.scratch_dir}",
            )

        result = job.result
        log.info(
            f"Job finished: {len(result.succeeded)} link(s), "
            f"{len(result.failed)} failed, {len(result.skipped)} skipped."
        )
        return result

    async def _execute(
        self,
        session: RemoteSession,
        job: TransferJob,
        share: ShareDescriptor,
        user_agent: str,
    ) -> None:
        await session.create_directory(job.scratch_dir)
        job.advance(JobState.DIR_CREATED)

        transferred = await self._transfer_with_retry(session, job, share)
        job.advance(JobState.TRANSFERRED)
        path_map = self._build_path_map(job, transferred)

        entries = await self._enumerate(session, job.scratch_dir)
        if not entries:
            raise NothingTransferredError("No files found after transfer.")
        job.advance(JobState.ENUMERATED)

        pending = self._resolve_entries(job, entries, path_map)
        if not pending:
            job.advance(JobState.DONE)
            return

        await self._rename_all(session, pending)
        job.advance(JobState.RENAMED)

        await asyncio.sleep(self.config.link_propagation_delay)
        await self._fetch_links(session, job, pending, user_agent)
        job.advance(JobState.LINKS_FETCHED)
        job.advance(JobState.DONE)

    async def _transfer_with_retry(
        self, session: RemoteSession, job: TransferJob, share: ShareDescriptor
    ) -> List[TransferredItem]:
        """Transfers the targets, retrying exactly once after recreating the directory."""
        try:
            return await session.transfer(job.target_fs_ids, share, job.scratch_dir)
        except RemoteOperationError as e:
            log.warning(f"[yellow]{e}. Retrying once...[/yellow]")

        try:
            await session.create_directory(job.scratch_dir)
        except RemoteOperationError as e:
            log.debug(f"Recreating {job.scratch_dir} reported: {e}")
        await asyncio.sleep(self.config.transfer_settle_delay)
        return await session.transfer(job.target_fs_ids, share, job.scratch_dir)

    @staticmethod
    def _build_path_map(
        job: TransferJob, transferred: List[TransferredItem]
    ) -> Dict[str, FileDescriptor]:
        """
        Maps each server-assigned transferred path to the requested descriptor.

        The transfer result is the only reliable join key because the service may
        rename files on arrival. Targets it does not mention are assumed to land
        under their display name.
        """
        by_fs_id = {t.fs_id: t for t in job.targets}
        path_map: Dict[str, FileDescriptor] = {}
        mapped_ids = set()
        for item in transferred:
            if target := by_fs_id.get(item.from_fs_id):
                path_map[item.to_path] = target
                mapped_ids.add(item.from_fs_id)

        for target in job.targets:
            if target.fs_id not in mapped_ids:
                path_map.setdefault(f"{job.scratch_dir}/{target.display_name}", target)
        return path_map

    async def _enumerate(self, session: RemoteSession, root: str) -> List[FileDescriptor]:
        """
        Breadth-first listing of `root`, a few directories at a time.

        The file cap is checked before each expansion, so no more than
        `max_files` files are ever collected.
        """
        cap = self.config.max_files
        files: List[FileDescriptor] = []
        frontier = deque([root])

        while frontier and len(files) < cap:
            batch = [
                frontier.popleft()
                for _ in range(min(self.config.scan_concurrency, len(frontier)))
            ]
            listings = await asyncio.gather(*(session.list_directory(d) for d in batch))
            for listing in listings:
                for entry in listing:
                    if entry.is_directory:
                        frontier.append(entry.path)
                    elif len(files) < cap:
                        files.append(entry)

        if len(files) >= cap:
            log.warning(f"[yellow]File cap of {cap} reached; listing truncated.[/yellow]")
        return files

    @staticmethod
    def _resolve(path: str, path_map: Dict[str, FileDescriptor]) -> str:
        """Returns the client-visible path for a file found in the scratch tree."""
        if path in path_map:
            return path_map[path].relative_path

        parent = path
        while (idx := parent.rfind("/")) > 0:
            parent = parent[:idx]
            if parent in path_map:
                return path_map[parent].relative_path + path[len(parent) :]

        raise MappingUnresolvedError(f"no requested item maps to '{path}'")

    def _check_size(self, entry: FileDescriptor) -> None:
        if entry.size > self.config.max_file_size:
            raise SizeExceededError(
                f"Skipped {entry.display_name}: size {format_size(entry.size)} "
                f"exceeds {format_size(self.config.max_file_size)}"
            )

    def _resolve_entries(
        self,
        job: TransferJob,
        entries: List[FileDescriptor],
        path_map: Dict[str, FileDescriptor],
    ) -> List[PendingFile]:
        """Joins enumerated files to the request, recording mapping errors and skips."""
        result = job.result
        pending: List[PendingFile] = []

        for entry in entries:
            try:
                relative_path = self._resolve(entry.path, path_map)
            except MappingUnresolvedError as e:
                log.warning(f"[yellow]Mapping error for {entry.display_name}: {e}[/yellow]")
                result.failed.append(
                    FileIssue(entry.path, f"Mapping error for {entry.display_name}: {e}")
                )
                continue

            try:
                self._check_size(entry)
            except SizeExceededError as e:
                result.skipped.append(FileIssue(relative_path, str(e)))
                continue

            pending.append(PendingFile(entry, relative_path))

        # Requested files that never showed up are failures, never silent drops.
        seen = result.reported_paths() | {p.relative_path for p in pending}
        for target in job.targets:
            if not target.is_directory and target.relative_path not in seen:
                result.failed.append(
                    FileIssue(
                        target.relative_path,
                        f"{target.display_name}: missing after transfer",
                    )
                )
        return pending

    @staticmethod
    async def _rename_all(session: RemoteSession, pending: List[PendingFile]) -> None:
        renames = [
            {"path": p.entry.path, "newname": p.entry.display_name + RENAME_SUFFIX}
            for p in pending
        ]
        if not await session.rename_batch(renames):
            raise RemoteOperationError(
                -1, f"batch rename of {len(renames)} file(s) rejected", action="Rename"
            )

    @staticmethod
    async def _fetch_links(
        session: RemoteSession,
        job: TransferJob,
        pending: List[PendingFile],
        user_agent: str,
    ) -> None:
        """Fetches links one file at a time; one failure never aborts the rest."""
        for p in pending:
            name = p.entry.display_name
            try:
                dlink = await session.get_direct_link(p.renamed_path, user_agent)
            except RemoteOperationError as e:
                log.debug(f"Link fetch failed for {p.renamed_path}: {e}")
                job.result.failed.append(
                    FileIssue(p.relative_path, f"Failed to get link for {name}: {e}")
                )
                continue
            job.result.succeeded.append(
                LinkResult(
                    relative_path=p.relative_path,
                    direct_link=dlink,
                    size=p.entry.size,
                    filename=name,
                )
            )

    @staticmethod
    async def _delete_scratch(session: RemoteSession, scratch_dir: str) -> None:
        try:
            await session.delete_batch([scratch_dir])
            log.debug(f"Deleted scratch directory {scratch_dir}.")
        except CleanupError as e:
            log.debug(f"Ignoring cleanup failure: {e}")

    async def _deferred_delete(self, session: RemoteSession, scratch_dir: str) -> None:
        """Deletes later so freshly issued links survive their propagation window."""
        await asyncio.sleep(self.config.user_cleanup_delay)
        await self._delete_scratch(session, scratch_dir)
