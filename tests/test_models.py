"""Tests for Pydantic models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from runthru.models.recording import (
    MAX_INSTRUCTION_LENGTH,
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


def make_request(**overrides) -> RecordingRequest:
    data = {
        "title": "Search",
        "target_url": "https://example.com",
        "test_steps": ["Navigate to https://example.com"],
    }
    data.update(overrides)
    return RecordingRequest(**data)


class TestRecordingStatus:
    def test_terminal(self):
        assert RecordingStatus.COMPLETED.is_terminal
        assert RecordingStatus.FAILED.is_terminal
        assert not RecordingStatus.PENDING.is_terminal
        assert not RecordingStatus.PROCESSING.is_terminal


class TestSettings:
    def test_defaults(self):
        assert BrowserSettings().engine == "chromium"
        assert BrowserSettings().quality == "high"
        assert NarrationSettings().voice == "Rachel"
        assert VideoSettings().format == "mp4"
        assert VideoSettings().avatar_position == "Bottom Right"

    def test_rejects_bad_viewport(self):
        with pytest.raises(ValidationError):
            BrowserSettings(viewport_width=0)

    def test_rejects_unknown_engine(self):
        with pytest.raises(ValidationError):
            BrowserSettings(engine="opera")

    def test_speed_bounds(self):
        with pytest.raises(ValidationError):
            NarrationSettings(speed=3.0)

    def test_avatar_size_bounds(self):
        with pytest.raises(ValidationError):
            VideoSettings(avatar_size=10)


class TestRecordingRequest:
    def test_strips_steps_and_url(self):
        request = make_request(target_url="  https://example.com/a  ", test_steps=["  Click 'A' "])
        assert request.target_url == "https://example.com/a"
        assert request.test_steps == ["Click 'A'"]

    @pytest.mark.parametrize("url", ["example.com", "ftp://example.com", "https://", ""])
    def test_rejects_bad_url(self, url):
        with pytest.raises(ValidationError):
            make_request(target_url=url)

    def test_rejects_empty_steps(self):
        with pytest.raises(ValidationError):
            make_request(test_steps=[])

    def test_rejects_blank_step(self):
        with pytest.raises(ValidationError):
            make_request(test_steps=["Click 'A'", "   "])

    def test_rejects_empty_title(self):
        with pytest.raises(ValidationError):
            make_request(title="")

    def test_rejects_overlong_step(self):
        with pytest.raises(ValidationError, match="test step 2 is 1001 characters long"):
            make_request(test_steps=["Click 'A'", "x" * (MAX_INSTRUCTION_LENGTH + 1)])

    def test_step_at_limit_allowed(self):
        request = make_request(test_steps=["x" * MAX_INSTRUCTION_LENGTH])
        assert len(request.test_steps[0]) == MAX_INSTRUCTION_LENGTH


class TestStep:
    def test_defaults(self):
        step = Step(sequence_id=1, instruction="Wait", action=ActionKind.WAIT)
        assert step.success is True
        assert step.error is None
        assert isinstance(step.timestamp, datetime)

    def test_frozen(self):
        step = Step(sequence_id=1, instruction="Wait", action=ActionKind.WAIT)
        with pytest.raises(ValidationError):
            step.success = False

    def test_sequence_starts_at_one(self):
        with pytest.raises(ValidationError):
            Step(sequence_id=0, instruction="Wait", action=ActionKind.WAIT)


class TestRecording:
    def test_from_request(self):
        recording = Recording(id="abc123def456", **make_request().model_dump())
        assert recording.status is RecordingStatus.PENDING
        assert recording.progress == 0
        assert recording.steps == []
        assert not recording.is_terminal

    def test_serialization_roundtrip(self):
        recording = Recording(
            id="abc123def456",
            steps=[Step(sequence_id=1, instruction="Wait", action=ActionKind.WAIT)],
            **make_request().model_dump(),
        )
        restored = Recording.model_validate_json(recording.model_dump_json())
        assert restored.steps[0].action is ActionKind.WAIT
        assert restored.created_at == recording.created_at


class TestProgressEvent:
    def test_event_kind_checked(self):
        with pytest.raises(ValidationError):
            ProgressEvent(recording_id="r", event="exploded", status=RecordingStatus.FAILED, progress=0)
