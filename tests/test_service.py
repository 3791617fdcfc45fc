"""Tests for the service facade and its request/response shapes."""
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from baidupan_cli.core.service import ShareLinkService, build_blob_store
from baidupan_cli.exceptions import InvalidLinkError, NoUsableCredentialError
from baidupan_cli.models.config import AppConfig
from baidupan_cli.storage.blob_store import FileBlobStore, MemoryBlobStore
from baidupan_cli.storage.credential_store import CredentialStore

from conftest import FakeRemoteSession, FakeResponse

SHARE = {"shareid": 111, "uk": 222, "seckey": "sek"}


def _service(config, http, session=None):
    service = ShareLinkService(config, http, CredentialStore(None, ["BDUSS=pool"]))
    if session is not None:
        service.pool.acquire_session = AsyncMock(return_value=session)
    return service


class TestListShare:
    @pytest.mark.asyncio
    async def test_returns_success_envelope(self, config, fake_http):
        fake_http.add(
            "/share/wxlist",
            FakeResponse(
                {
                    "errno": 0,
                    "data": {
                        **SHARE,
                        "list": [{"fs_id": 1, "server_filename": "a.txt", "size": 3,
                                  "isdir": 0, "path": "/a.txt"}],
                    },
                }
            ),
        )

        response = await _service(config, fake_http).list_share(
            "https://pan.baidu.com/s/1abc?pwd=k9z3"
        )

        assert response["success"] is True
        assert response["data"]["shareid"] == 111
        assert response["data"]["list"][0]["server_filename"] == "a.txt"
        _, _, kwargs = fake_http.calls[-1]
        assert kwargs["data"]["shorturl"] == "1abc"
        assert kwargs["data"]["pwd"] == "k9z3"

    @pytest.mark.asyncio
    async def test_invalid_link(self, config, fake_http):
        with pytest.raises(InvalidLinkError):
            await _service(config, fake_http).list_share("not a link")


class TestDownload:
    @pytest.mark.asyncio
    async def test_response_shape(self, config, fake_http):
        session = FakeRemoteSession()
        session.files = {"a.txt": 10, "big.iso": 200 * 1024 * 1024}
        session.transferred = [(1, "a.txt"), (2, "big.iso")]
        service = _service(config, fake_http, session)

        response = await service.download(
            [
                {"fs_id": 1, "server_filename": "a.txt", "size": 10, "isdir": 0},
                {"fsId": 2, "filename": "big.iso", "relativePath": "iso/big.iso"},
            ],
            SHARE,
            user_agent="aria2/1.36",
        )

        assert response["success"] is True
        assert response["succeeded"] == [
            {
                "relativePath": "a.txt",
                "dlink": "https://d.pcs.baidu.com/file/a.txt.pdf",
                "size": 10,
                "filename": "a.txt",
            }
        ]
        assert response["failed"] == []
        assert len(response["skipped"]) == 1
        assert "big.iso" in response["skipped"][0]

    @pytest.mark.asyncio
    async def test_credential_and_ip_reach_the_pool(self, config, fake_http):
        session = FakeRemoteSession()
        session.files = {"a.txt": 10}
        session.transferred = [(1, "a.txt")]
        service = _service(config, fake_http, session)

        await service.download(
            [{"fs_id": 1, "server_filename": "a.txt"}],
            {"shareId": 111, "ownerKey": 222, "sekey": "sek"},
            user_credential="BDUSS=mine",
            client_ip="10.0.0.1",
        )

        service.pool.acquire_session.assert_awaited_once_with("BDUSS=mine", "10.0.0.1")

    @pytest.mark.asyncio
    async def test_malformed_request_is_rejected_before_any_credential(self, config, fake_http):
        service = _service(config, fake_http, FakeRemoteSession())

        with pytest.raises(ValueError):
            await service.download([{"server_filename": "a.txt"}], SHARE)
        with pytest.raises(ValueError):
            await service.download([{"fs_id": 1}], {"uk": 1})
        with pytest.raises(ValueError):
            await service.download([], SHARE)

        service.pool.acquire_session.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_credentials(self, config, fake_http):
        service = ShareLinkService(config, fake_http, CredentialStore(None, []))

        with pytest.raises(NoUsableCredentialError):
            await service.download([{"fs_id": 1}], SHARE)


class TestBuildBlobStore:
    def test_file_backend_uses_store_dir(self, tmp_path):
        config = AppConfig(store_backend="file", store_dir=str(tmp_path))

        store = build_blob_store(config)

        assert isinstance(store, FileBlobStore)
        assert store.store_dir == Path(tmp_path) / "store"

    def test_memory_backend(self):
        assert isinstance(build_blob_store(AppConfig(store_backend="memory")), MemoryBlobStore)

    def test_none_backend(self):
        assert build_blob_store(AppConfig(store_backend="none")) is None
