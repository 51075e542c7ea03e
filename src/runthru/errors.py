"""Exception types raised by RunThru."""


class RunThruError(Exception):
    """Base class for all RunThru errors."""


class InvalidRecordingError(RunThruError, ValueError):
    """A recording request failed validation."""


class RecordingNotFoundError(RunThruError, LookupError):
    """No recording exists with the requested id."""

    def __init__(self, recording_id: str):
        super().__init__(f"Recording not found: {recording_id}")
        self.recording_id = recording_id


class RecordingConflictError(RunThruError):
    """The recording is not in a state that allows the requested operation."""


class InvalidTransitionError(RecordingConflictError):
    """A lifecycle transition was attempted from a state that forbids it."""


class BrowserAcquisitionError(RunThruError):
    """The browser, its context, or its page could not be opened."""


class GenerationError(RunThruError):
    """The language model call failed or returned an unusable response."""


class SpeechSynthesisError(RunThruError):
    """The speech synthesis service failed."""


class CompositionError(RunThruError):
    """ffmpeg or ffprobe failed."""


class PublishError(RunThruError):
    """Posting the finished recording to GitHub failed."""


class RecordingStopped(RunThruError):
    """Raised inside a pipeline when a stop request is observed."""


def describe_error(error: BaseException, limit: int = 300) -> str:
    """Human-readable one-line summary of an exception.

    Playwright messages carry a multi-line call log; only the first line is kept.
    """
    text = str(error).strip()
    line = text.splitlines()[0].strip() if text else type(error).__name__
    if len(line) > limit:
        line = line[: limit - 3] + "..."
    return line
