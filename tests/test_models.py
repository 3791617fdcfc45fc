"""Tests for request parsing and result serialization."""
import pytest

from baidupan_cli.models.files import (
    Credential,
    CredentialSource,
    FileDescriptor,
    FileIssue,
    LinkResult,
    ShareDescriptor,
    TransferResult,
    credential_id,
)
from baidupan_cli.models.maintenance import CleanupReport


class TestCredential:
    def test_id_is_stable_and_short(self):
        assert credential_id("BDUSS=a") == credential_id("BDUSS=a")
        assert len(credential_id("BDUSS=a")) == 12
        assert Credential("BDUSS=a").id == credential_id("BDUSS=a")

    def test_secret_is_not_in_repr(self):
        assert "BDUSS=a" not in repr(Credential("BDUSS=a"))

    def test_plausibility(self):
        assert Credential("BDUSS=a; STOKEN=b").is_plausible()
        assert not Credential("STOKEN=b").is_plausible()

    def test_user_supplied(self):
        assert Credential("x", CredentialSource.USER).is_user_supplied
        assert not Credential("x", CredentialSource.STORE).is_user_supplied


class TestFileDescriptor:
    def test_from_request_baidu_keys(self):
        item = {"fs_id": "7", "server_filename": "a.txt", "size": "12", "isdir": 0,
                "path": "/share/a.txt"}

        descriptor = FileDescriptor.from_request(item)

        assert descriptor.fs_id == 7
        assert descriptor.display_name == "a.txt"
        assert descriptor.size == 12
        assert not descriptor.is_directory
        assert descriptor.relative_path == "a.txt"

    def test_from_request_camel_case(self):
        descriptor = FileDescriptor.from_request(
            {"fsId": 8, "filename": "docs", "isDirectory": True, "relativePath": "x/docs"}
        )

        assert descriptor.fs_id == 8
        assert descriptor.is_directory
        assert descriptor.relative_path == "x/docs"

    def test_from_request_requires_fs_id(self):
        with pytest.raises(ValueError):
            FileDescriptor.from_request({"server_filename": "a.txt"})

    def test_from_remote(self):
        descriptor = FileDescriptor.from_remote(
            {"fs_id": 3, "path": "/netdisk/x/sub", "isdir": 1}
        )

        assert descriptor.display_name == "sub"
        assert descriptor.is_directory
        assert descriptor.path == "/netdisk/x/sub"


class TestShareDescriptor:
    @pytest.mark.parametrize(
        "data",
        [
            {"shareid": 1, "uk": 2, "seckey": "k"},
            {"shareid": "1", "uk": "2", "sekey": "k"},
            {"shareId": 1, "ownerKey": 2, "shareKey": "k"},
        ],
    )
    def test_accepts_key_variants(self, data):
        assert ShareDescriptor.from_dict(data) == ShareDescriptor(1, 2, "k")

    def test_rejects_missing_ids(self):
        with pytest.raises(ValueError):
            ShareDescriptor.from_dict({"seckey": "k"})


class TestTransferResult:
    def test_to_dict(self):
        result = TransferResult(
            succeeded=[LinkResult("a.txt", "https://d/a", 3, "a.txt")],
            failed=[FileIssue("b.txt", "Failed to get link for b.txt")],
            skipped=[FileIssue("c.iso", "Skipped c.iso: too big")],
        )

        assert result.to_dict() == {
            "success": True,
            "succeeded": [
                {"relativePath": "a.txt", "dlink": "https://d/a", "size": 3, "filename": "a.txt"}
            ],
            "failed": ["Failed to get link for b.txt"],
            "skipped": ["Skipped c.iso: too big"],
        }
        assert result.reported_paths() == {"a.txt", "b.txt", "c.iso"}


class TestCleanupReport:
    def test_cleaned_and_summary(self):
        report = CleanupReport(
            strategy="lru",
            total_credentials=4,
            statuses={"a": "success", "b": "failed", "c": "success"},
        )

        assert report.cleaned == ["a", "c"]
        assert report.summary() == "Cleanup (lru): 3/4 targeted [failed=1, success=2]"
