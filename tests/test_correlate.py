"""Tests for danmux.correlate."""

from pathlib import Path

from danmux.correlate import (
    non_overlay_stream_indices,
    overlay_candidates,
    overlay_name,
    probe_streams,
    select_overlays_for,
)
from danmux.models import StreamInfo

from .conftest import (
    FakeMediaTools,
    audio_stream,
    overlay_stream,
    provenance_stream,
    subtitle_stream,
    video_stream,
    write_container,
    write_overlay,
)


class TestOverlayNaming:
    """Tests for overlay_name and overlay_candidates."""

    def test_plain_name(self) -> None:
        """Items without a part are named <id>.ass."""
        assert overlay_name("BV1xx") == "BV1xx.ass"

    def test_part_name(self) -> None:
        """Parts get an _pN suffix."""
        assert overlay_name("BV1xx", "p2") == "BV1xx_p2.ass"

    def test_candidates_cover_variants(self) -> None:
        """Plain id, first part and converted-extension variants all match."""
        candidates = overlay_candidates("ID")
        assert set(candidates) == {"ID.ass", "ID.danmaku.ass", "ID_p1.ass", "ID_p1.danmaku.ass"}
        assert candidates["ID_p1.ass"] == "p1"
        assert candidates["ID.ass"] is None

    def test_first_part_id_accepts_base(self) -> None:
        """An id ending in _p1 also matches files named by the bare id."""
        candidates = overlay_candidates("BV1xx_p1")
        assert "BV1xx_p1.ass" in candidates
        assert "BV1xx.ass" in candidates

    def test_other_parts_not_candidates(self) -> None:
        """Later parts belong to their own containers."""
        assert "ID_p2.ass" not in overlay_candidates("ID")


class TestSelectOverlaysFor:
    """Tests for select_overlays_for."""

    def test_matches_id_and_part_in_order(self, tmp_path: Path) -> None:
        """ID.ass and ID_p1.ass match in discovery order; OTHER.ass does not."""
        for name in ("OTHER.ass", "ID_p1.ass", "ID.ass"):
            write_overlay(tmp_path / name)

        overlays = select_overlays_for("ID", tmp_path)

        assert [o.name for o in overlays] == ["ID.ass", "ID_p1.ass"]
        assert all(o.item_id == "ID" for o in overlays)
        assert overlays[1].part == "p1"

    def test_no_match_returns_empty(self, tmp_path: Path) -> None:
        """No matching file is not an error."""
        write_overlay(tmp_path / "OTHER.ass")
        assert select_overlays_for("ID", tmp_path) == []

    def test_missing_directory_returns_empty(self, tmp_path: Path) -> None:
        """A directory that does not exist yields no overlays."""
        assert select_overlays_for("ID", tmp_path / "missing") == []

    def test_ignores_prefix_collisions(self, tmp_path: Path) -> None:
        """IDX.ass is not an overlay for ID."""
        write_overlay(tmp_path / "IDX.ass")
        write_overlay(tmp_path / "ID.xml")
        assert select_overlays_for("ID", tmp_path) == []


class TestProbeStreams:
    """Tests for probe_streams."""

    def test_parses_ffprobe_output(self, tmp_path: Path, fake_tools: FakeMediaTools) -> None:
        """Each ffprobe stream becomes a StreamInfo with lower-cased tags."""
        container = write_container(
            tmp_path / "a.mkv", [video_stream(), overlay_stream(), provenance_stream({"id": "x"})]
        )

        streams = probe_streams(container)

        assert [s.index for s in streams] == [0, 1, 2]
        assert streams[1].is_overlay
        assert streams[2].filename == "info.json"
        assert fake_tools.commands[0][0] == "ffprobe"


class TestNonOverlayStreamIndices:
    """Tests for non_overlay_stream_indices."""

    def test_excludes_only_overlay_subtitles(
        self, tmp_path: Path, fake_tools: FakeMediaTools
    ) -> None:
        """Overlay-tagged subtitles are dropped; other subtitles are kept."""
        container = write_container(
            tmp_path / "a.mkv",
            [
                video_stream(),
                audio_stream(),
                subtitle_stream(title="English"),
                overlay_stream(),
                provenance_stream({"id": "x"}),
            ],
        )
        assert non_overlay_stream_indices(container) == [0, 1, 2, 4]

    def test_title_must_match_exactly(self) -> None:
        """A subtitle titled 'danmaku (old)' is not an overlay."""
        streams = [
            StreamInfo(index=0, codec_type="video"),
            StreamInfo(index=1, codec_type="subtitle", tags={"title": "danmaku (old)"}),
            StreamInfo(index=2, codec_type="subtitle", tags={"title": "Danmaku"}),
        ]
        assert non_overlay_stream_indices(streams) == [0, 1, 2]

    def test_marker_on_non_subtitle_is_kept(self) -> None:
        """Only subtitle streams can be overlays."""
        streams = [StreamInfo(index=0, codec_type="audio", tags={"title": "danmaku"})]
        assert non_overlay_stream_indices(streams) == [0]

    def test_all_overlay_keeps_all(self, log_messages: list[str]) -> None:
        """If every stream is an overlay, all indices are kept and a warning logged."""
        streams = [
            StreamInfo(index=0, codec_type="subtitle", tags={"title": "danmaku"}),
            StreamInfo(index=1, codec_type="subtitle", tags={"title": "danmaku"}),
        ]

        assert non_overlay_stream_indices(streams) == [0, 1]
        assert any(m.startswith("WARNING") and "keeping all" in m for m in log_messages)

    def test_never_empty_for_non_empty_input(self) -> None:
        """Mixed containers always yield a non-empty keep-set."""
        streams = [
            StreamInfo(index=0, codec_type="subtitle", tags={"title": "danmaku"}),
            StreamInfo(index=1, codec_type="video"),
        ]
        assert non_overlay_stream_indices(streams) == [1]

    def test_empty_input(self) -> None:
        """No streams in, no streams out."""
        assert non_overlay_stream_indices([]) == []
