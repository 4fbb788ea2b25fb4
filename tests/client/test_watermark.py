"""Tests for the content-hash upload watermark."""

from __future__ import annotations

from lifesync.client.state import LocalSyncState
from lifesync.client.sync import ContentWatermark
from lifesync.core import compute_content_hash


class TestContentWatermark:
    """Tests for ContentWatermark."""

    def test_unknown_destination_has_changed(self, local_state: LocalSyncState) -> None:
        """Should treat never-uploaded destinations as changed."""
        watermark = ContentWatermark(local_state)
        assert watermark.has_changed("a.json", b"{}") is True

    def test_same_content_unchanged_after_upload(self, local_state: LocalSyncState) -> None:
        """Should skip byte-identical content at the same destination."""
        watermark = ContentWatermark(local_state)
        watermark.record_upload("a.json", b'{"v": 1}')

        assert watermark.has_changed("a.json", b'{"v": 1}') is False
        assert watermark.has_changed("a.json", b'{"v": 2}') is True

    def test_destinations_do_not_alias(self, local_state: LocalSyncState) -> None:
        """Should keep digests separate per destination."""
        watermark = ContentWatermark(local_state)
        watermark.record_upload("a.json", b"same")

        assert watermark.has_changed("b.json", b"same") is True

    def test_has_changed_never_writes(self, local_state: LocalSyncState) -> None:
        """Should not record anything when only checking."""
        watermark = ContentWatermark(local_state)
        watermark.has_changed("a.json", b"x")
        watermark.has_changed("a.json", b"x")

        assert local_state.count_watermarks() == 0

    def test_stores_sha256(self, local_state: LocalSyncState) -> None:
        """Should persist the hex SHA-256 of the content."""
        ContentWatermark(local_state).record_upload("a.json", b"payload")

        assert local_state.get_watermark("a.json") == compute_content_hash(b"payload")

    def test_clear_all_forces_reupload(self, local_state: LocalSyncState) -> None:
        """Should report every destination as changed after clear_all()."""
        watermark = ContentWatermark(local_state)
        watermark.record_upload("a.json", b"1")
        watermark.record_upload("b.json", b"2")

        watermark.clear_all()

        assert watermark.has_changed("a.json", b"1") is True
        assert watermark.has_changed("b.json", b"2") is True
