"""Data models for RunThru."""

from runthru.models.recording import (
    ActionKind,
    BrowserSettings,
    NarrationSettings,
    ProgressEvent,
    Recording,
    RecordingRequest,
    RecordingStatus,
    Step,
    VideoSettings,
)

__all__ = [
    "ActionKind",
    "BrowserSettings",
    "NarrationSettings",
    "ProgressEvent",
    "Recording",
    "RecordingRequest",
    "RecordingStatus",
    "Step",
    "VideoSettings",
]
