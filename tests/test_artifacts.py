"""Tests for the per-recording artifact layout."""

import json

import pytest

from runthru.artifacts import ArtifactLayout
from runthru.models.recording import ActionKind, Step


@pytest.fixture
def layout(tmp_path):
    return ArtifactLayout("rec1", tmp_path / "recordings")


class TestArtifactLayout:
    def test_path_properties(self, layout, tmp_path):
        root = tmp_path / "recordings" / "rec1"
        assert layout.dir == root
        assert layout.video_dir == root / "video"
        assert layout.raw_video_path == root / "recording.webm"
        assert layout.audio_path == root / "narration.mp3"
        assert layout.steps_log_path == root / "steps.jsonl"
        assert layout.final_video_path("webm") == root / "final.webm"
        assert layout.screenshot_path(7) == root / "screenshots" / "step_007.png"

    def test_ensure_creates_directories(self, layout):
        layout.ensure()
        assert layout.video_dir.is_dir()
        assert layout.screenshots_dir.is_dir()

    def test_collect_video_moves_file(self, layout):
        layout.ensure()
        source = layout.video_dir / "3f9a.webm"
        source.write_bytes(b"webm")

        collected = layout.collect_video(source)

        assert collected == layout.raw_video_path
        assert collected.read_bytes() == b"webm"
        assert not source.exists()

    def test_collect_missing_video(self, layout):
        assert layout.collect_video(None) is None
        assert layout.collect_video(layout.video_dir / "missing.webm") is None

    async def test_append_and_load_steps(self, layout):
        await layout.append_step(Step(sequence_id=1, instruction="Click 'A'", action=ActionKind.CLICK, success=True))
        await layout.append_step(Step(
            sequence_id=2,
            instruction="Click 'B'",
            action=ActionKind.CLICK,
            success=False,
            error="Timeout 30000ms exceeded.",
        ))

        lines = layout.steps_log_path.read_text().strip().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["error"] == "Timeout 30000ms exceeded."

        steps = await layout.load_steps()
        assert [s.sequence_id for s in steps] == [1, 2]
        assert steps[1].success is False

    async def test_load_steps_nonexistent(self, layout):
        assert await layout.load_steps() == []

    def test_remove(self, layout):
        layout.ensure()
        layout.screenshot_path(1).write_bytes(b"png")

        assert layout.remove() is True
        assert not layout.dir.exists()
        assert layout.remove() is False
