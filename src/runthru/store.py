"""Recording persistence: in-memory and JSON-file backends."""

import asyncio
import re
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import aiofiles

from runthru.errors import RecordingNotFoundError
from runthru.models.recording import Recording, RecordingRequest, RecordingStatus


RECORDING_ID_RE = re.compile(r"[0-9a-f]{12}")


def new_recording_id() -> str:
    return uuid.uuid4().hex[:12]


def is_recording_id(value: object) -> bool:
    """True for ids shaped like :func:`new_recording_id` output."""
    return isinstance(value, str) and RECORDING_ID_RE.fullmatch(value) is not None


class RecordingStore(ABC):
    """CRUD (``create/get/list_all/update/delete``) plus a status-guarded update.

    ``update_if`` is the only way a lifecycle transition is written: it
    applies the changes only when the stored status is one of ``expected``,
    atomically with respect to other calls on the same store.
    """

    def __init__(self):
        self._lock = asyncio.Lock()

    async def create(self, request: RecordingRequest) -> Recording:
        """Store a new pending recording built from ``request``."""
        recording = Recording(id=new_recording_id(), **request.model_dump())
        async with self._lock:
            await self._write(recording)
        return recording

    async def get(self, recording_id: str) -> Recording | None:
        async with self._lock:
            return await self._read(recording_id)

    async def list_all(self) -> list[Recording]:
        """All recordings, newest first."""
        async with self._lock:
            recordings = await self._read_all()
        recordings.sort(key=lambda r: r.created_at, reverse=True)
        return recordings

    async def update(self, recording_id: str, **changes: Any) -> Recording | None:
        """Apply a partial update. None if the recording does not exist."""
        async with self._lock:
            recording = await self._read(recording_id)
            if recording is None:
                return None
            updated = recording.model_copy(update=changes)
            await self._write(updated)
            return updated

    async def update_if(
        self,
        recording_id: str,
        expected: Iterable[RecordingStatus],
        **changes: Any,
    ) -> Recording | None:
        """Apply ``changes`` only if the current status is in ``expected``.

        Returns:
            The updated recording, or None when the status did not match

        Raises:
            RecordingNotFoundError: if the recording does not exist
        """
        expected = frozenset(expected)
        async with self._lock:
            recording = await self._read(recording_id)
            if recording is None:
                raise RecordingNotFoundError(recording_id)
            if recording.status not in expected:
                return None
            updated = recording.model_copy(update=changes)
            await self._write(updated)
            return updated

    async def delete(self, recording_id: str) -> bool:
        """Remove a recording. False if it did not exist."""
        async with self._lock:
            return await self._remove(recording_id)

    @abstractmethod
    async def _read(self, recording_id: str) -> Recording | None: ...

    @abstractmethod
    async def _read_all(self) -> list[Recording]: ...

    @abstractmethod
    async def _write(self, recording: Recording) -> None: ...

    @abstractmethod
    async def _remove(self, recording_id: str) -> bool: ...


class MemoryRecordingStore(RecordingStore):
    """Process-local store. Returns copies so callers never share state."""

    def __init__(self):
        super().__init__()
        self._recordings: dict[str, Recording] = {}

    async def _read(self, recording_id: str) -> Recording | None:
        recording = self._recordings.get(recording_id)
        return recording.model_copy(deep=True) if recording else None

    async def _read_all(self) -> list[Recording]:
        return [r.model_copy(deep=True) for r in self._recordings.values()]

    async def _write(self, recording: Recording) -> None:
        self._recordings[recording.id] = recording.model_copy(deep=True)

    async def _remove(self, recording_id: str) -> bool:
        return self._recordings.pop(recording_id, None) is not None


class JsonRecordingStore(RecordingStore):
    """One ``<id>.json`` document per recording under ``data_dir``."""

    def __init__(self, data_dir: Path | str):
        super().__init__()
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, recording_id: str) -> Path:
        return self.data_dir / f"{recording_id}.json"

    async def _read(self, recording_id: str) -> Recording | None:
        if not is_recording_id(recording_id):
            return None
        path = self._path(recording_id)
        if not path.exists():
            return None

        async with aiofiles.open(path) as f:
            content = await f.read()
            return Recording.model_validate_json(content)

    async def _read_all(self) -> list[Recording]:
        recordings = []
        for path in self.data_dir.glob("*.json"):
            recording = await self._read(path.stem)
            if recording:
                recordings.append(recording)
        return recordings

    async def _write(self, recording: Recording) -> None:
        # Atomic replace
        tmp_path = self._path(recording.id).with_suffix(".json.tmp")
        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(recording.model_dump_json(indent=2))
        tmp_path.replace(self._path(recording.id))

    async def _remove(self, recording_id: str) -> bool:
        if not is_recording_id(recording_id):
            return False
        path = self._path(recording_id)
        if not path.exists():
            return False
        path.unlink()
        return True
