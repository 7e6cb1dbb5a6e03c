"""Tests for provenance module."""

import json
import shutil

import pytest

from maccel_rpm.common import calculate_sha256
from maccel_rpm.models import PlatformTarget, SourceVersion
from maccel_rpm.provenance import (
    UNKNOWN_COMMIT,
    ProvenanceError,
    extract_provenance_commit,
    get_source_commit,
    parse_provenance_commit,
    write_build_info,
    write_checksums,
)

from tests.conftest import COMMIT, KERNEL, OTHER_COMMIT, PACKAGES, TAG, build_info_document


class TestParseProvenanceCommit:
    """Tests for reading build-info.json."""

    def test_maccel_commit(self):
        """Test the maccel_commit field."""
        assert parse_provenance_commit(build_info_document(COMMIT)) == COMMIT

    def test_legacy_source_commit_only(self):
        """Test records without maccel_commit have no usable commit."""
        raw = json.dumps({"source_commit": OTHER_COMMIT}).encode()
        with pytest.raises(ProvenanceError):
            parse_provenance_commit(raw)

    @pytest.mark.parametrize("raw", [
        b"{broken",
        b"[]",
        b'{"maccel_commit": "unknown"}',
        b'{"maccel_commit": "abc1234"}',
        b'{"maccel_commit": null}',
        b'{"kernel_version": "6.11.5-300.fc41.x86_64"}',
    ])
    def test_unusable_documents(self, raw):
        """Test malformed or commit-less documents raise."""
        with pytest.raises(ProvenanceError):
            parse_provenance_commit(raw)


class TestExtractProvenanceCommit:
    """Tests for extract_provenance_commit."""

    def test_reads_build_info(self, registry):
        """Test the commit comes from build-info.json, not the release notes."""
        registry.add_release(
            TAG, build_info=build_info_document(COMMIT), body=f"Source Commit: {OTHER_COMMIT}"
        )
        names = [a.name for a in registry.get_assets(TAG)]
        assert extract_provenance_commit(registry, TAG, names) == COMMIT

    def test_bad_build_info_ignores_notes(self, registry):
        """Test unusable build-info.json fails even when the notes name a commit."""
        registry.add_release(TAG, build_info=b"{}", body=f"Source Commit: {OTHER_COMMIT}")
        names = [a.name for a in registry.get_assets(TAG)]
        with pytest.raises(ProvenanceError):
            extract_provenance_commit(registry, TAG, names)

    def test_missing_build_info(self, registry):
        """Test a release without build-info.json fails."""
        registry.add_release(TAG, body=f"Source Commit: {COMMIT}")
        with pytest.raises(ProvenanceError):
            extract_provenance_commit(registry, TAG, PACKAGES)
        assert registry.calls == []

    def test_download_failure(self, registry):
        """Test a listed but undownloadable build-info.json fails."""
        registry.add_release(TAG)
        with pytest.raises(ProvenanceError):
            extract_provenance_commit(registry, TAG, PACKAGES + ["build-info.json"])


class TestGetSourceCommit:
    """Tests for reading the local checkout commit."""

    def test_no_directory(self):
        """Test no directory gives 'unknown'."""
        assert get_source_commit(None) == UNKNOWN_COMMIT

    def test_not_a_repository(self, tmp_path):
        """Test a plain directory gives 'unknown'."""
        assert get_source_commit(tmp_path) == UNKNOWN_COMMIT

    def test_missing_directory(self, tmp_path):
        """Test a missing directory gives 'unknown'."""
        assert get_source_commit(tmp_path / "missing") == UNKNOWN_COMMIT

    @pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
    def test_repository_head(self, tmp_path):
        """Test the HEAD commit of a checkout."""
        from git import Actor, Repo

        repo = Repo.init(str(tmp_path))
        (tmp_path / "Cargo.toml").write_text('version = "0.5.0"\n')
        repo.index.add(["Cargo.toml"])
        author = Actor("Builder", "builder@example.com")
        commit = repo.index.commit("initial", author=author, committer=author)

        assert get_source_commit(tmp_path) == commit.hexsha


class TestWriteBuildInfo:
    """Tests for writing build metadata."""

    @pytest.fixture
    def package_dir(self, tmp_path):
        package_dir = tmp_path / "packages"
        package_dir.mkdir()
        for name in PACKAGES:
            (package_dir / name).write_bytes(name.encode())
        return package_dir

    def test_build_info_contents(self, package_dir):
        """Test build-info.json records the build."""
        info = write_build_info(
            package_dir,
            PlatformTarget(KERNEL),
            SourceVersion(semantic_version="1.0.0"),
            source_commit=COMMIT,
        )

        data = json.loads((package_dir / "build-info.json").read_text())
        assert data["kernel_version"] == KERNEL
        assert data["maccel_version"] == "1.0.0"
        assert data["maccel_commit"] == COMMIT
        assert data["fedora_version"] == "41"
        assert data["architecture"] == "x86_64"
        assert [p["filename"] for p in data["packages"]] == PACKAGES
        assert data["packages"][0]["type"] == "kernel-module"
        assert info.maccel_commit == COMMIT

    def test_written_commit_is_readable(self, package_dir):
        """Test a written record can be read back by the resolver."""
        write_build_info(
            package_dir,
            PlatformTarget(KERNEL),
            SourceVersion(semantic_version="1.0.0"),
            source_commit=COMMIT,
        )
        raw = (package_dir / "build-info.json").read_bytes()
        assert parse_provenance_commit(raw) == COMMIT

    def test_unknown_commit_without_source(self, package_dir):
        """Test 'unknown' is recorded without a source checkout."""
        info = write_build_info(
            package_dir, PlatformTarget(KERNEL), SourceVersion(semantic_version="1.0.0")
        )
        assert info.maccel_commit == UNKNOWN_COMMIT

    def test_checksums_written(self, package_dir):
        """Test checksums.txt is generated alongside."""
        write_build_info(
            package_dir,
            PlatformTarget(KERNEL),
            SourceVersion(semantic_version="1.0.0"),
            source_commit=COMMIT,
        )
        lines = (package_dir / "checksums.txt").read_text().splitlines()
        assert len(lines) == 2
        digest, name = lines[0].split("  ")
        assert name == PACKAGES[0]
        assert digest == calculate_sha256(package_dir / PACKAGES[0])


class TestWriteChecksums:
    """Tests for write_checksums."""

    def test_no_packages(self, tmp_path):
        """Test an empty directory raises."""
        with pytest.raises(ProvenanceError):
            write_checksums(tmp_path)
