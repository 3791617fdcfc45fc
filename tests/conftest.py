"""Pytest fixtures and fakes for baidupan-cli tests."""
import posixpath
from typing import Optional

import aiohttp
import pytest
from multidict import CIMultiDict

from baidupan_cli.exceptions import CleanupError, RemoteOperationError
from baidupan_cli.models.config import AppConfig
from baidupan_cli.models.files import (
    Credential,
    CredentialSource,
    FileDescriptor,
    ShareDescriptor,
    TransferredItem,
)


class FakeResponse:
    """Stands in for an aiohttp response used as an async context manager."""

    def __init__(self, body=None, set_cookies=(), status=200):
        self._body = {} if body is None else body
        self.headers = CIMultiDict(("Set-Cookie", c) for c in set_cookies)
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientConnectionError(f"HTTP {self.status}")

    async def json(self, content_type=None):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeHttp:
    """Routes requests to canned responses by URL fragment and records calls."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, fragment, *responses):
        self.routes.setdefault(fragment, []).extend(responses)

    def _respond(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        for fragment, queue in self.routes.items():
            if fragment in url:
                response = queue.pop(0) if len(queue) > 1 else queue[0]
                if isinstance(response, Exception):
                    raise response
                return response
        raise aiohttp.ClientConnectionError(f"no route for {url}")

    def request(self, method, url, **kwargs):
        return self._respond(method, url, **kwargs)

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)

    def calls_to(self, fragment):
        return [c for c in self.calls if fragment in c[1]]


class FakeRemoteSession:
    """
    Simulates one credential's drive. `files` maps paths relative to the
    scratch directory to sizes; directories are implied by the paths.
    """

    def __init__(self, credential: Optional[Credential] = None, alive=True):
        self.credential = credential or Credential("BDUSS=pool", CredentialSource.STORE)
        self.alive = alive
        self.session_token = None
        self.scratch_dir = None
        self.files = {}
        self.transferred = []
        self.transfer_failures = 0
        self.rename_ok = True
        self.link_failures = set()
        self.delete_fails = False

        self.create_calls = 0
        self.transfer_calls = 0
        self.listed = []
        self.renamed = []
        self.link_requests = []
        self.deleted = []

    async def initialize(self):
        if self.alive:
            self.session_token = "tok"
        return self.alive

    async def create_directory(self, path):
        self.create_calls += 1
        self.scratch_dir = path
        return path

    async def transfer(self, fs_ids, share, dest_path):
        self.transfer_calls += 1
        if self.transfer_failures:
            self.transfer_failures -= 1
            raise RemoteOperationError(2, "busy", action="Transfer")
        return [
            TransferredItem(from_fs_id=fs_id, to_path=f"{dest_path}/{name}")
            for fs_id, name in self.transferred
        ]

    async def list_directory(self, path):
        self.listed.append(path)
        prefix = path[len(self.scratch_dir):].strip("/")
        entries, dirs = [], []
        for i, (rel, size) in enumerate(sorted(self.files.items())):
            parent, _, name = rel.rpartition("/")
            if parent == prefix:
                entries.append(
                    FileDescriptor(
                        fs_id=1000 + i,
                        display_name=name,
                        size=size,
                        path=f"{self.scratch_dir}/{rel}",
                    )
                )
                continue
            remainder = rel if not prefix else rel[len(prefix) + 1:]
            if (not prefix or rel.startswith(prefix + "/")) and "/" in remainder:
                child = remainder.split("/")[0]
                if child not in dirs:
                    dirs.append(child)
        base = f"{self.scratch_dir}/{prefix}" if prefix else self.scratch_dir
        return entries + [
            FileDescriptor(
                fs_id=0, display_name=d, is_directory=True, path=f"{base}/{d}"
            )
            for d in dirs
        ]

    async def rename_batch(self, renames):
        self.renamed.extend(renames)
        return self.rename_ok

    async def get_direct_link(self, path, user_agent):
        self.link_requests.append((path, user_agent))
        if posixpath.basename(path) in self.link_failures:
            raise RemoteOperationError(-1, "response carried no dlink", action="Get link")
        return f"https://d.pcs.baidu.com/file/{posixpath.basename(path)}"

    async def delete_batch(self, paths):
        if self.delete_fails:
            raise CleanupError(f"Could not delete {paths}")
        self.deleted.append(list(paths))


@pytest.fixture
def config():
    """Configuration with every delay disabled."""
    return AppConfig(
        transfer_settle_delay=0,
        link_propagation_delay=0,
        user_cleanup_delay=0,
        cleanup_stagger=0,
        health_stagger=0,
    )


@pytest.fixture
def share():
    return ShareDescriptor(share_id=111, owner_key=222, share_key="sek")


@pytest.fixture
def fake_http():
    return FakeHttp()
