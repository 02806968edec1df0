"""Tests for the folder/file listing."""

from __future__ import annotations

import asyncio

import pytest

from conftest import seed_asset, seed_folder, seed_vault
from eventvault.collection import CollectionView, sort_folders
from eventvault.errors import NotFound, TransientNetwork
from eventvault.models import Folder, MediaType


def _seed(store) -> None:
    seed_vault(store)
    seed_vault(store, id="v2", code="ZZZ999")
    seed_folder(store, "f1", "beach")
    seed_folder(store, "f2", "After Party")
    seed_folder(store, "f3", "Zebra")
    seed_folder(store, "fx", "Other vault", vault_id="v2")
    seed_asset(store, "a1", "IMG_1.jpg", age_minutes=3)
    seed_asset(store, "a2", "clip.mp4", age_minutes=2, media_type=MediaType.VIDEO)
    seed_asset(store, "a3", "IMG_2.jpg", age_minutes=1)
    seed_asset(store, "a4", "IMG_3.jpg", age_minutes=0)
    seed_asset(store, "n1", "nested.jpg", folder_id="f1")


class TestSorting:
    """Tests for listing order."""

    def test_folders_case_insensitive(self) -> None:
        folders = [Folder(vault_id="v1", name=n) for n in ("b", "A", "c")]
        assert [f.name for f in sort_folders(folders)] == ["A", "b", "c"]

    @pytest.mark.asyncio
    async def test_reload_sorted(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        await view.reload()

        assert [f.name for f in view.folders] == ["After Party", "beach", "Zebra"]
        assert [a.id for a in view.assets] == ["a4", "a3", "a2", "a1"]


class TestNavigation:
    """Tests for folder scope changes."""

    @pytest.mark.asyncio
    async def test_navigate_into_folder(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        await view.navigate("f1")

        assert view.folder_id == "f1"
        assert [a.id for a in view.assets] == ["n1"]
        assert view.folders == []
        assert [f.name for f in view.breadcrumb] == ["beach"]

    @pytest.mark.asyncio
    async def test_navigate_back_to_root(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        await view.navigate("f1")
        await view.navigate(None)
        assert view.breadcrumb == []
        assert len(view.assets) == 4

    @pytest.mark.asyncio
    async def test_folder_from_other_vault(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        with pytest.raises(NotFound):
            await view.navigate("fx")
        assert view.folder_id is None

    @pytest.mark.asyncio
    async def test_missing_folder(self, store) -> None:
        _seed(store)
        with pytest.raises(NotFound):
            await CollectionView(store, "v1").navigate("nope")

    @pytest.mark.asyncio
    async def test_stale_reload_discarded(self, store) -> None:
        """A reload of the old folder finishing late does not overwrite the new one."""
        _seed(store)
        view = CollectionView(store, "v1")
        old = asyncio.ensure_future(view.reload())
        await asyncio.sleep(0)
        await view.navigate("f1")
        await old
        assert [a.id for a in view.assets] == ["n1"]

    @pytest.mark.asyncio
    async def test_failed_reload_keeps_listing(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        await view.reload()
        store.faults.add("list_assets", TransientNetwork("timeout"))
        with pytest.raises(TransientNetwork):
            await view.reload()
        assert len(view.assets) == 4


class TestQueries:
    """Tests for search and preview navigation."""

    @pytest.mark.asyncio
    async def test_filter(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        await view.reload()
        assert {a.id for a in view.filter("img")} == {"a1", "a3", "a4"}
        assert len(view.filter("  ")) == 4

    @pytest.mark.asyncio
    async def test_neighbour_skips_non_images(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        await view.reload()

        assert view.neighbour("a3", 1).id == "a1"
        assert view.neighbour("a3", -1).id == "a4"
        assert view.neighbour("a4", -1) is None
        assert view.neighbour("a2", 1) is None

    @pytest.mark.asyncio
    async def test_scope_ids(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        await view.reload()
        assets, folders = view.scope_ids()
        assert set(assets) == {"a1", "a2", "a3", "a4"}
        assert set(folders) == {"f1", "f2", "f3"}


class TestMutations:
    """Tests for local changes to the listing."""

    @pytest.mark.asyncio
    async def test_create_folder(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        await view.navigate("f1")
        folder = await view.create_folder("  Sunset ")

        assert folder.name == "Sunset"
        assert folder.parent_id == "f1"
        assert [f.name for f in view.folders] == ["Sunset"]

    @pytest.mark.asyncio
    async def test_create_folder_empty_name(self, store) -> None:
        _seed(store)
        with pytest.raises(ValueError):
            await CollectionView(store, "v1").create_folder("   ")

    @pytest.mark.asyncio
    async def test_hidden_ids_stay_out(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        view.hide(["a1", "f1"])
        await view.reload()
        assert "a1" not in {a.id for a in view.assets}
        assert "f1" not in {f.id for f in view.folders}
        view.unhide(["a1"])
        await view.reload()
        assert "a1" in {a.id for a in view.assets}

    @pytest.mark.asyncio
    async def test_listeners_called(self, store) -> None:
        _seed(store)
        view = CollectionView(store, "v1")
        seen = []
        view.on_change(lambda v: seen.append(len(v.assets)))
        await view.reload()
        assert seen == [4]
