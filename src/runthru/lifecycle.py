"""Recording lifecycle: status transitions, progress accounting, events.

    pending -> recording -> processing -> completed
        \\           \\            \\
         +-----------+------------+----> failed

Every transition is a guarded write (``RecordingStore.update_if``) followed
by a ProgressEvent. The guard on ``pending`` is what keeps two executions of
the same recording from ever running.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Iterable

from runthru.broadcaster import ProgressBroadcaster
from runthru.errors import (
    InvalidTransitionError,
    RecordingConflictError,
    RecordingNotFoundError,
    RecordingStopped,
    describe_error,
)
from runthru.models.recording import (
    ACTIVE_STATUSES,
    NON_TERMINAL_STATUSES,
    ProgressEvent,
    Recording,
    RecordingStatus,
    Step,
    utcnow,
)
from runthru.store import RecordingStore

logger = logging.getLogger(__name__)

STOPPED_REASON = "Stopped by user"
ARTIFACT_FIELDS = ("video_path", "audio_path", "final_video_path")


class Stage(str, Enum):
    BROWSER_SETUP = "browser_setup"
    STEPS = "steps"
    NARRATION = "narration"
    COMPOSITION = "composition"
    PUBLISHING = "publishing"
    FINALIZE = "finalize"


# (stage, progress at stage start, progress at stage end)
STAGE_PROGRESS: tuple[tuple[Stage, int, int], ...] = (
    (Stage.BROWSER_SETUP, 10, 20),
    (Stage.STEPS, 20, 70),
    (Stage.NARRATION, 70, 85),
    (Stage.COMPOSITION, 85, 95),
    (Stage.PUBLISHING, 95, 99),
    (Stage.FINALIZE, 100, 100),
)


def progress_for(stage: Stage, fraction: float = 0.0) -> int:
    """Percentage for being ``fraction`` (0..1) of the way through ``stage``."""
    fraction = min(max(fraction, 0.0), 1.0)
    for candidate, start, end in STAGE_PROGRESS:
        if candidate is stage:
            return int(start + (end - start) * fraction)
    raise ValueError(f"Unknown stage: {stage}")


class LifecycleMachine:
    """Owns one execution of one recording.

    Only the machine writes status, progress, current step, steps and
    artifact paths while the recording runs.
    """

    def __init__(self, recording_id: str, store: RecordingStore, broadcaster: ProgressBroadcaster):
        self.recording_id = recording_id
        self._store = store
        self._broadcaster = broadcaster
        self._recording: Recording | None = None
        self._next_sequence = 1

    @property
    def recording(self) -> Recording:
        """Latest state written by this machine."""
        if self._recording is None:
            raise RuntimeError("Lifecycle not started. Call begin() first.")
        return self._recording

    async def begin(self) -> Recording:
        """Claim a pending recording: ``pending -> recording``.

        Raises:
            RecordingConflictError: if the recording is not pending
            RecordingNotFoundError: if it does not exist
        """
        updated = await self._store.update_if(
            self.recording_id,
            [RecordingStatus.PENDING],
            status=RecordingStatus.RECORDING,
            progress=0,
            current_step="Starting",
        )
        if updated is None:
            current = await self._require()
            raise RecordingConflictError(
                f"Recording {self.recording_id} is {current.status.value}, not pending"
            )
        self._recording = updated
        self._next_sequence = len(updated.steps) + 1
        self._emit("status")
        return updated

    async def advance(self, stage: Stage, label: str, fraction: float = 0.0) -> Recording:
        """Move the progress bar; never backwards."""
        progress = max(self.recording.progress, progress_for(stage, fraction))
        return await self._write(ACTIVE_STATUSES, "progress", progress=progress, current_step=label)

    async def enter_processing(self, stage: Stage, label: str) -> Recording:
        """Browser work is over: ``recording -> processing``."""
        progress = max(self.recording.progress, progress_for(stage))
        return await self._write(
            ACTIVE_STATUSES,
            "status",
            status=RecordingStatus.PROCESSING,
            progress=progress,
            current_step=label,
        )

    def next_sequence(self) -> int:
        """Hand out the next step sequence id."""
        sequence_id = self._next_sequence
        self._next_sequence += 1
        return sequence_id

    async def record_step(self, step: Step, fraction: float) -> Recording:
        """Append ``step`` to the history and advance within the steps stage."""
        steps = list(self.recording.steps)
        expected_id = steps[-1].sequence_id + 1 if steps else 1
        if step.sequence_id != expected_id:
            raise InvalidTransitionError(
                f"Step {step.sequence_id} out of order, expected {expected_id}"
            )
        steps.append(step)
        progress = max(self.recording.progress, progress_for(Stage.STEPS, fraction))
        return await self._write(ACTIVE_STATUSES, "step", step=step, steps=steps, progress=progress)

    async def set_artifacts(self, **paths: str | None) -> Recording:
        """Record artifact paths produced by a finished stage."""
        unknown = set(paths) - set(ARTIFACT_FIELDS)
        if unknown:
            raise ValueError(f"Not artifact fields: {', '.join(sorted(unknown))}")
        updated = await self._store.update_if(self.recording_id, ACTIVE_STATUSES, **paths)
        if updated is None:
            raise InvalidTransitionError(f"Recording {self.recording_id} is no longer running")
        self._recording = updated
        return updated

    async def complete(self, final_video_path: Path | str, duration: int) -> Recording:
        """``processing -> completed`` at exactly 100%.

        The duration is stored once; a recording that already has one keeps it.
        """
        changes: dict[str, Any] = {
            "status": RecordingStatus.COMPLETED,
            "progress": 100,
            "current_step": "Completed",
            "final_video_path": str(final_video_path),
            "completed_at": utcnow(),
        }
        if self.recording.duration is None:
            changes["duration"] = duration
        return await self._write(ACTIVE_STATUSES, "completed", **changes)

    async def fail(self, reason: str) -> Recording:
        """Any non-terminal state -> ``failed``. No-op when already terminal.

        Artifact paths whose files are missing are cleared.
        """
        current = await self._require()
        if current.is_terminal:
            logger.info("Recording %s already %s, not failing it", self.recording_id, current.status.value)
            self._recording = current
            return current

        changes: dict[str, Any] = {"status": RecordingStatus.FAILED, "current_step": reason}
        for field in ARTIFACT_FIELDS:
            value = getattr(current, field)
            if value and not Path(value).exists():
                changes[field] = None

        updated = await self._store.update_if(self.recording_id, NON_TERMINAL_STATUSES, **changes)
        if updated is None:
            self._recording = await self._require()
            return self._recording

        logger.warning("Recording %s failed: %s", self.recording_id, reason)
        self._recording = updated
        self._emit("failed")
        return updated

    async def cancel_pending(self) -> Recording:
        """Stop a recording that never started: ``pending -> failed``."""
        updated = await self._store.update_if(
            self.recording_id,
            [RecordingStatus.PENDING],
            status=RecordingStatus.FAILED,
            current_step=STOPPED_REASON,
        )
        if updated is None:
            current = await self._require()
            raise RecordingConflictError(
                f"Recording {self.recording_id} is {current.status.value}, not pending"
            )
        self._recording = updated
        self._emit("failed")
        return updated

    @asynccontextmanager
    async def running(self) -> AsyncIterator["LifecycleMachine"]:
        """Turn whatever escapes the block into a ``failed`` recording.

        Usage:
            async with machine.running():
                ...  # stages; any exception ends up as status=failed
        """
        try:
            yield self
        except RecordingStopped:
            await self.fail(STOPPED_REASON)
        except asyncio.CancelledError:
            await self.fail(STOPPED_REASON)
            raise
        except Exception as e:
            logger.exception("Recording %s aborted", self.recording_id)
            await self.fail(f"Error: {describe_error(e)}")

    async def _require(self) -> Recording:
        recording = await self._store.get(self.recording_id)
        if recording is None:
            raise RecordingNotFoundError(self.recording_id)
        return recording

    async def _write(
        self,
        expected: Iterable[RecordingStatus],
        event: str,
        step: Step | None = None,
        **changes: Any,
    ) -> Recording:
        updated = await self._store.update_if(self.recording_id, expected, **changes)
        if updated is None:
            current = await self._require()
            raise InvalidTransitionError(
                f"Recording {self.recording_id} is {current.status.value}; cannot apply {event} update"
            )
        self._recording = updated
        self._emit(event, step)
        return updated

    def _emit(self, event: str, step: Step | None = None) -> None:
        recording = self.recording
        self._broadcaster.publish(
            ProgressEvent(
                recording_id=recording.id,
                event=event,
                status=recording.status,
                progress=recording.progress,
                current_step=recording.current_step,
                step=step,
            )
        )
