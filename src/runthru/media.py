"""Video composition with ffmpeg / ffprobe, avatar badges with Pillow."""

import asyncio
import logging
import re
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from runthru.config import MediaConfig
from runthru.errors import CompositionError
from runthru.models.recording import VideoSettings

logger = logging.getLogger(__name__)

AVATAR_COLORS = {
    "AI Assistant": "#2563EB",
    "QA Tester": "#059669",
    "Robot": "#7C3AED",
    "Custom": "#6B7280",
}
AVATAR_LABELS = {
    "AI Assistant": "AI",
    "QA Tester": "QA",
    "Robot": "R",
    "Custom": "U",
}
AVATAR_PADDING = 20

VIDEO_CODECS = {
    "mp4": ["-c:v", "libx264", "-pix_fmt", "yuv420p"],
    "webm": ["-c:v", "libvpx-vp9"],
}
AUDIO_CODECS = {
    "mp4": ["-c:a", "aac"],
    "webm": ["-c:a", "libopus"],
}


def overlay_position(position: str) -> str:
    """ffmpeg overlay expression for a corner."""
    p = AVATAR_PADDING
    return {
        "Top Left": f"{p}:{p}",
        "Top Right": f"W-w-{p}:{p}",
        "Bottom Left": f"{p}:H-h-{p}",
    }.get(position, f"W-w-{p}:H-h-{p}")


def _circle_mask(size: int) -> Image.Image:
    mask = Image.new("L", (size, size), 0)
    ImageDraw.Draw(mask).ellipse((0, 0, size - 1, size - 1), fill=255)
    return mask


def render_avatar(style: str, size: int, output_dir: Path, image: str | None = None) -> Path:
    """Write a circular avatar PNG and return its path.

    With ``image`` (an uploaded picture) the picture is cropped to a circle;
    otherwise a coloured badge with the style's initials is drawn.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    if image:
        source = Path(image)
        if not source.exists():
            raise CompositionError(f"Avatar image not found: {image}")
        with Image.open(source) as picture:
            avatar = picture.convert("RGBA").resize((size, size))
        path = output_dir / f"avatar_{source.stem}_{size}.png"
    else:
        avatar = Image.new("RGBA", (size, size), AVATAR_COLORS.get(style, AVATAR_COLORS["AI Assistant"]))
        draw = ImageDraw.Draw(avatar)
        label = AVATAR_LABELS.get(style, AVATAR_LABELS["AI Assistant"])
        font = ImageFont.load_default(size=max(int(size * 0.4), 8))
        draw.text((size / 2, size / 2), label, fill="white", font=font, anchor="mm")
        slug = re.sub(r"\W+", "_", style).strip("_").lower() or "avatar"
        path = output_dir / f"avatar_{slug}_{size}.png"

    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    canvas.paste(avatar, (0, 0), _circle_mask(size))
    canvas.save(path)
    return path


class MediaComposer:
    """Muxes the screen recording with narration and an optional avatar."""

    def __init__(self, config: MediaConfig | None = None):
        self.config = config or MediaConfig()

    def build_compose_args(
        self,
        video_path: Path,
        audio_path: Path | None,
        settings: VideoSettings,
        avatar_path: Path | None,
        output_path: Path,
    ) -> list[str]:
        """ffmpeg argument list (without the binary)."""
        args = ["-y", "-i", str(video_path)]
        if audio_path:
            args += ["-i", str(audio_path)]
        if avatar_path:
            args += ["-i", str(avatar_path)]
            avatar_index = 2 if audio_path else 1
            args += [
                "-filter_complex",
                f"[0:v][{avatar_index}:v]overlay={overlay_position(settings.avatar_position)}[v]",
                "-map",
                "[v]",
            ]
        elif audio_path:
            args += ["-map", "0:v"]
        if audio_path:
            args += ["-map", "1:a"]

        args += VIDEO_CODECS[settings.format]
        if audio_path:
            args += AUDIO_CODECS[settings.format] + ["-shortest"]
        args.append(str(output_path))
        return args

    async def compose(
        self,
        video_path: Path,
        audio_path: Path | None,
        settings: VideoSettings,
        output_path: Path,
    ) -> Path:
        """Produce the final video.

        Args:
            video_path: Raw screen recording
            audio_path: Narration audio, or None for a silent video
            settings: Format and avatar overlay settings
            output_path: Where to write the result

        Raises:
            CompositionError: if inputs are missing or ffmpeg fails
        """
        video_path = Path(video_path)
        if not video_path.exists():
            raise CompositionError(f"Screen recording not found: {video_path}")
        if audio_path is not None and not Path(audio_path).exists():
            logger.warning("Narration audio %s missing, composing without audio", audio_path)
            audio_path = None

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        avatar_path = None
        if settings.show_avatar:
            avatar_path = await asyncio.to_thread(
                render_avatar,
                settings.avatar_style,
                settings.avatar_size,
                output_path.parent / "avatars",
                settings.avatar_image,
            )

        args = self.build_compose_args(video_path, audio_path, settings, avatar_path, output_path)
        await self._run(self.config.ffmpeg_bin, args)
        if not output_path.exists():
            raise CompositionError(f"ffmpeg reported success but wrote no file: {output_path}")

        logger.info("Composed %s", output_path)
        return output_path

    async def probe_duration(self, video_path: Path) -> int:
        """Whole seconds of ``video_path`` according to ffprobe."""
        output = await self._run(
            self.config.ffprobe_bin,
            ["-v", "quiet", "-show_entries", "format=duration", "-of", "csv=p=0", str(video_path)],
        )
        try:
            return int(float(output.strip()))
        except ValueError as e:
            raise CompositionError(f"Could not read duration of {video_path}: {output.strip()!r}") from e

    async def _run(self, binary: str, args: list[str]) -> str:
        """Run a media tool, returning stdout. Non-zero exit raises CompositionError."""
        name = Path(binary).name
        try:
            proc = await asyncio.create_subprocess_exec(
                binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CompositionError(f"Could not run {name}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            raise CompositionError(f"{name} timed out after {self.config.timeout:.0f}s") from None
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        if proc.returncode != 0:
            lines = stderr.decode(errors="replace").strip().splitlines()
            logger.error("%s exited with %s:\n%s", name, proc.returncode, "\n".join(lines[-20:]))
            detail = lines[-1] if lines else "no output"
            raise CompositionError(f"{name} failed with exit code {proc.returncode}: {detail}")

        return stdout.decode(errors="replace")


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
