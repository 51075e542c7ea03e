"""Pydantic models for recordings, steps and progress events."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAX_INSTRUCTION_LENGTH = 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordingStatus(str, Enum):
    """Lifecycle states of a recording."""

    PENDING = "pending"
    RECORDING = "recording"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RecordingStatus.COMPLETED, RecordingStatus.FAILED)


ACTIVE_STATUSES = frozenset({RecordingStatus.RECORDING, RecordingStatus.PROCESSING})
NON_TERMINAL_STATUSES = frozenset({RecordingStatus.PENDING, *ACTIVE_STATUSES})


class ActionKind(str, Enum):
    """Kinds of browser action an instruction can resolve to."""

    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    SCROLL = "scroll"
    WAIT = "wait"
    SCREENSHOT = "screenshot"
    UNKNOWN = "unknown"


class BrowserSettings(BaseModel):
    """Per-recording browser choice."""

    engine: Literal["chromium", "chrome", "firefox", "webkit", "safari"] = "chromium"
    viewport_width: int = Field(default=1920, gt=0)
    viewport_height: int = Field(default=1080, gt=0)
    headless: bool = True
    quality: Literal["low", "medium", "high"] = "high"


class NarrationSettings(BaseModel):
    """Per-recording narration choice."""

    voice: str = "Rachel"
    style: str = "professional"
    speed: float = Field(default=1.0, ge=0.5, le=2.0)
    auto_generate: bool = True


class VideoSettings(BaseModel):
    """Per-recording composition choice."""

    format: Literal["mp4", "webm"] = "mp4"
    show_avatar: bool = False
    avatar_position: Literal["Bottom Right", "Bottom Left", "Top Right", "Top Left"] = "Bottom Right"
    avatar_style: str = "AI Assistant"
    avatar_size: int = Field(default=120, ge=40, le=400)
    avatar_image: str | None = None


class RecordingRequest(BaseModel):
    """Everything a caller supplies to create a recording."""

    title: str = Field(min_length=1)
    description: str = ""
    target_url: str
    test_steps: list[str] = Field(min_length=1)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    narration: NarrationSettings = Field(default_factory=NarrationSettings)
    video: VideoSettings = Field(default_factory=VideoSettings)

    @field_validator("target_url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"target_url must be an http(s) URL, got {value!r}")
        return value

    @field_validator("test_steps")
    @classmethod
    def _check_steps(cls, value: list[str]) -> list[str]:
        steps = [step.strip() for step in value]
        if any(not step for step in steps):
            raise ValueError("test_steps must not contain blank instructions")
        for index, step in enumerate(steps, 1):
            if len(step) > MAX_INSTRUCTION_LENGTH:
                raise ValueError(
                    f"test step {index} is {len(step)} characters long, at most {MAX_INSTRUCTION_LENGTH} allowed"
                )
        return steps


class Step(BaseModel):
    """One executed instruction. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    sequence_id: int = Field(ge=1)
    instruction: str
    action: ActionKind
    timestamp: datetime = Field(default_factory=utcnow)
    success: bool = True
    screenshot_path: str | None = None
    error: str | None = None
    rationale: str | None = None
    duration_ms: float | None = None


class Recording(RecordingRequest):
    """A stored recording and its lifecycle state."""

    id: str
    status: RecordingStatus = RecordingStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    current_step: str | None = None
    video_path: str | None = None
    audio_path: str | None = None
    final_video_path: str | None = None
    duration: int | None = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    steps: list[Step] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class ProgressEvent(BaseModel):
    """A lifecycle or step event pushed to subscribers."""

    recording_id: str
    event: Literal["status", "progress", "step", "completed", "failed"]
    status: RecordingStatus
    progress: int
    current_step: str | None = None
    step: Step | None = None
    timestamp: datetime = Field(default_factory=utcnow)
