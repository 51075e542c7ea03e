"""Per-recording artifact layout and step log."""

import shutil
from pathlib import Path

import aiofiles

from runthru.models.recording import Step


class ArtifactLayout:
    """Files belonging to one recording, all under ``<root>/<recording_id>/``.

    Layout:
        video/               raw Playwright output (random file name)
        recording.webm       raw video, moved out of video/ after the browser closes
        screenshots/         step_001.png, step_002.png, ...
        steps.jsonl          one Step per line, append-only
        narration.mp3        synthesized narration
        final.<format>       composed video
    """

    def __init__(self, recording_id: str, root: Path):
        self.recording_id = recording_id
        self.root = Path(root)

    @property
    def dir(self) -> Path:
        return self.root / self.recording_id

    @property
    def video_dir(self) -> Path:
        return self.dir / "video"

    @property
    def screenshots_dir(self) -> Path:
        return self.dir / "screenshots"

    @property
    def steps_log_path(self) -> Path:
        return self.dir / "steps.jsonl"

    @property
    def raw_video_path(self) -> Path:
        return self.dir / "recording.webm"

    @property
    def audio_path(self) -> Path:
        return self.dir / "narration.mp3"

    def final_video_path(self, video_format: str = "mp4") -> Path:
        return self.dir / f"final.{video_format}"

    def screenshot_path(self, sequence_id: int) -> Path:
        return self.screenshots_dir / f"step_{sequence_id:03d}.png"

    def ensure(self) -> "ArtifactLayout":
        """Create the directory tree."""
        self.video_dir.mkdir(parents=True, exist_ok=True)
        self.screenshots_dir.mkdir(parents=True, exist_ok=True)
        return self

    def collect_video(self, source: Path | None) -> Path | None:
        """Move the finished browser video to ``recording.webm``.

        Only call this after the browser context has been closed; Playwright
        writes the file until then.
        """
        if source is None or not Path(source).exists():
            return None
        source = Path(source)
        if source != self.raw_video_path:
            shutil.move(str(source), self.raw_video_path)
        return self.raw_video_path

    async def append_step(self, step: Step) -> None:
        """Append a step to ``steps.jsonl``."""
        self.dir.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self.steps_log_path, "a") as f:
            await f.write(step.model_dump_json() + "\n")

    async def load_steps(self) -> list[Step]:
        """Read ``steps.jsonl`` back. Empty if it does not exist."""
        if not self.steps_log_path.exists():
            return []

        steps = []
        async with aiofiles.open(self.steps_log_path) as f:
            async for line in f:
                line = line.strip()
                if line:
                    steps.append(Step.model_validate_json(line))
        return steps

    def remove(self) -> bool:
        """Delete every artifact of the recording. False if nothing existed."""
        if not self.dir.exists():
            return False
        shutil.rmtree(self.dir)
        return True
