"""Tests for multi-select state."""

from __future__ import annotations

from eventvault.models import Permissions
from eventvault.selection import ItemKind, SelectionModel


class TestToggle:
    """Tests for single-item selection."""

    def test_toggle_on_and_off(self) -> None:
        selection = SelectionModel()
        assert selection.toggle("a1") is True
        assert selection.is_selected("a1")
        assert selection.is_selecting
        assert selection.toggle("a1") is False
        assert not selection.is_selecting

    def test_folders_tracked_separately(self) -> None:
        selection = SelectionModel()
        selection.toggle("x", ItemKind.FOLDER)
        assert selection.folder_ids == {"x"}
        assert selection.asset_ids == set()
        assert selection.count == 1


class TestSelectAll:
    """Tests for select-all as a toggle."""

    def test_twice_returns_to_empty(self) -> None:
        """Select-all on an unchanged scope, twice, leaves nothing selected."""
        selection = SelectionModel()
        selection.select_all(["a1", "a2"], ["f1"])
        assert selection.count == 3
        selection.select_all(["a1", "a2"], ["f1"])
        assert selection.count == 0

    def test_partial_selection_selects_rest(self) -> None:
        selection = SelectionModel()
        selection.toggle("a1")
        selection.select_all(["a1", "a2"])
        assert selection.asset_ids == {"a1", "a2"}

    def test_empty_scope(self) -> None:
        selection = SelectionModel()
        selection.select_all([], [])
        assert selection.count == 0


class TestSnapshot:
    """Tests for snapshot/restore used by rollback."""

    def test_restore(self) -> None:
        selection = SelectionModel()
        selection.toggle("a1")
        selection.toggle("f1", ItemKind.FOLDER)
        saved = selection.snapshot()
        selection.clear()
        selection.restore(saved)
        assert selection.asset_ids == {"a1"}
        assert selection.folder_ids == {"f1"}

    def test_snapshot_is_a_copy(self) -> None:
        selection = SelectionModel()
        selection.toggle("a1")
        saved = selection.snapshot()
        selection.toggle("a2")
        assert saved[0] == {"a1"}

    def test_discard(self) -> None:
        selection = SelectionModel()
        selection.select_all(["a1", "a2"], ["f1"])
        selection.discard(["a1"], ["f1"])
        assert selection.asset_ids == {"a2"}
        assert selection.folder_ids == set()


class TestBulkActions:
    """Tests for bulk action availability."""

    def test_nothing_selected(self) -> None:
        perms = Permissions(can_view=True, can_upload=True, can_download=True)
        selection = SelectionModel()
        assert not selection.can_bulk_delete(perms)
        assert not selection.can_bulk_download(perms)

    def test_follows_permissions(self) -> None:
        selection = SelectionModel()
        selection.toggle("a1")
        viewer = Permissions(can_view=True, can_download=True)
        assert not selection.can_bulk_delete(viewer)
        assert selection.can_bulk_download(viewer)
        assert selection.can_bulk_delete(Permissions(can_view=True, can_upload=True))
