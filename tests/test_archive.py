"""Tests for ZIP export."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from conftest import seed_asset
from eventvault.archive import _unique_name, export_archive


class TestUniqueName:
    """Tests for duplicate file names inside an archive."""

    def test_first_use(self) -> None:
        assert _unique_name("a.jpg", set()) == "a.jpg"

    def test_numbered(self) -> None:
        assert _unique_name("a.jpg", {"a.jpg", "a (1).jpg"}) == "a (2).jpg"

    def test_no_extension(self) -> None:
        assert _unique_name("README", {"README"}) == "README (1)"


class TestExport:
    """Tests for export_archive."""

    @pytest.mark.asyncio
    async def test_writes_zip(self, store, blobs, tmp_path: Path) -> None:
        assets = [
            seed_asset(store, "a1", "photo.jpg", blobs=blobs),
            seed_asset(store, "a2", "photo.jpg", blobs=blobs),
        ]
        dest = tmp_path / "out" / "party.zip"

        report = await export_archive(blobs, assets, dest, folder_name="Party")

        assert report.path == dest
        assert report.written == ["photo.jpg", "photo (1).jpg"]
        with zipfile.ZipFile(dest) as zf:
            assert sorted(zf.namelist()) == ["Party/photo (1).jpg", "Party/photo.jpg"]
            assert zf.read("Party/photo.jpg") == b"abc"

    @pytest.mark.asyncio
    async def test_missing_objects_skipped(self, store, blobs, tmp_path: Path) -> None:
        assets = [
            seed_asset(store, "a1", "here.jpg", blobs=blobs),
            seed_asset(store, "a2", "gone.jpg"),
        ]
        report = await export_archive(blobs, assets, tmp_path / "x.zip")
        assert report.written == ["here.jpg"]
        assert report.skipped == ["gone.jpg"]

    @pytest.mark.asyncio
    async def test_nothing_fetched_writes_nothing(self, store, blobs, tmp_path: Path) -> None:
        dest = tmp_path / "x.zip"
        report = await export_archive(blobs, [seed_asset(store, "a1", "gone.jpg")], dest)
        assert report.path is None
        assert not dest.exists()
