"""Application context: collaborators, recording CRUD, start and stop."""

import asyncio
import logging
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from runthru.artifacts import ArtifactLayout
from runthru.broadcaster import ProgressBroadcaster, Subscription
from runthru.browser import BrowserSessionManager
from runthru.config import Config, RecordingConfig
from runthru.errors import (
    GenerationError,
    InvalidRecordingError,
    RecordingConflictError,
    RecordingNotFoundError,
)
from runthru.executor import StepExecutor
from runthru.interpreter import Interpreter, KeywordInterpreter
from runthru.lifecycle import STOPPED_REASON, LifecycleMachine
from runthru.llm import InstructionGenerator, fallback_steps
from runthru.media import MediaComposer
from runthru.models.recording import (
    ACTIVE_STATUSES,
    BrowserSettings,
    Recording,
    RecordingRequest,
    RecordingStatus,
)
from runthru.pipeline import RecordingPipeline
from runthru.publisher import GitHubPublisher
from runthru.speech import SpeechSynthesizer
from runthru.store import JsonRecordingStore, MemoryRecordingStore, RecordingStore, is_recording_id

logger = logging.getLogger(__name__)

INTERRUPTED_REASON = "Interrupted by restart"

# Browser fields a request may leave to config.browser
BROWSER_DEFAULT_FIELDS = ("engine", "headless", "viewport_width", "viewport_height")


def create_store(config: RecordingConfig) -> RecordingStore:
    """Store backend named by ``config.store``."""
    if config.store == "memory":
        return MemoryRecordingStore()
    return JsonRecordingStore(config.data_dir)


def _check_id(recording_id: str) -> None:
    # Ids become file and directory names
    if not is_recording_id(recording_id):
        raise RecordingNotFoundError(recording_id)


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "request"
        parts.append(f"{location}: {item['msg']}")
    return "Invalid recording: " + "; ".join(parts)


class RunThru:
    """Owns everything process-wide: store, broadcaster, HTTP client, running pipelines.

    Usage:
        async with RunThru(Config.load()) as app:
            recording = await app.create_recording({
                "title": "Login flow",
                "target_url": "https://example.com",
                "test_steps": ["Navigate to https://example.com", "Click 'Login'"],
            })
            await app.start_recording(recording.id)
            recording = await app.wait_for(recording.id)
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        store: RecordingStore | None = None,
        broadcaster: ProgressBroadcaster | None = None,
        sessions: BrowserSessionManager | None = None,
        executor: StepExecutor | None = None,
        interpreter: Interpreter | None = None,
        composer: MediaComposer | None = None,
        generator: InstructionGenerator | None = None,
        speech: SpeechSynthesizer | None = None,
        publisher: GitHubPublisher | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or Config.load()
        self.store = store or create_store(self.config.recording)
        self.broadcaster = broadcaster or ProgressBroadcaster(self.config.events.subscriber_queue_size)
        self.sessions = sessions or BrowserSessionManager(self.config.browser)
        self.executor = executor or StepExecutor(self.config.browser)
        self.interpreter = interpreter or KeywordInterpreter()
        self.composer = composer or MediaComposer(self.config.media)
        self.generator = generator
        self.speech = speech
        self.publisher = publisher

        self._client = http_client
        self._owns_client = http_client is None
        self._pipelines: dict[str, RecordingPipeline] = {}
        self._lock = asyncio.Lock()
        self._started = False

    @property
    def recordings_dir(self) -> Path:
        return Path(self.config.recording.recordings_dir)

    async def start(self) -> None:
        """Open the shared HTTP client and fail recordings orphaned by a previous process."""
        if self._started:
            return

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(30.0))
        if self.generator is None:
            self.generator = InstructionGenerator(self.config.llm, self._client)
        if self.speech is None:
            self.speech = SpeechSynthesizer(self.config.speech, self._client)
        if self.publisher is None:
            self.publisher = GitHubPublisher(self.config.publish, self._client)

        self.recordings_dir.mkdir(parents=True, exist_ok=True)
        for recording in await self.store.list_all():
            if recording.status in ACTIVE_STATUSES:
                machine = LifecycleMachine(recording.id, self.store, self.broadcaster)
                await machine.fail(INTERRUPTED_REASON)

        self._started = True
        logger.info("RunThru started (store=%s)", type(self.store).__name__)

    async def close(self) -> None:
        """Stop running recordings and close the HTTP client."""
        for recording_id in list(self._pipelines):
            try:
                await self.stop_recording(recording_id)
            except RecordingConflictError as e:
                logger.info("Not stopping %s: %s", recording_id, e)

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        self._started = False
        logger.info("RunThru closed")

    async def __aenter__(self) -> "RunThru":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _require_started(self) -> None:
        if not self._started:
            raise RuntimeError("RunThru not started. Call start() first.")

    def layout(self, recording_id: str) -> ArtifactLayout:
        _check_id(recording_id)
        return ArtifactLayout(recording_id, self.recordings_dir)

    def _with_browser_defaults(self, request: RecordingRequest) -> RecordingRequest:
        """Fill browser fields the caller left out from ``config.browser``."""
        defaults = self.config.browser.model_dump(include=set(BROWSER_DEFAULT_FIELDS))
        browser = BrowserSettings.model_validate(
            {**defaults, **request.browser.model_dump(exclude_unset=True)}
        )
        return request.model_copy(update={"browser": browser})

    async def generate_steps(self, description: str, target_url: str) -> list[str]:
        """Step text for a description, falling back to a generic plan."""
        self._require_started()
        if self.generator.configured:
            try:
                return await self.generator.generate_steps(description, target_url)
            except GenerationError as e:
                logger.warning("Step generation failed, using fallback plan: %s", e)
        return fallback_steps(description, target_url)

    async def create_recording(self, request: RecordingRequest | dict[str, Any]) -> Recording:
        """Validate a request and store it as a pending recording.

        Raises:
            InvalidRecordingError: if the request is malformed or has too many steps
        """
        try:
            if not isinstance(request, RecordingRequest):
                request = RecordingRequest.model_validate(request)
            request = self._with_browser_defaults(request)
        except ValidationError as e:
            raise InvalidRecordingError(_validation_message(e)) from e

        max_steps = self.config.recording.max_steps
        if len(request.test_steps) > max_steps:
            raise InvalidRecordingError(
                f"Invalid recording: {len(request.test_steps)} test steps, at most {max_steps} allowed"
            )

        recording = await self.store.create(request)
        logger.info("Created recording %s: %s", recording.id, recording.title)
        return recording

    async def get_recording(self, recording_id: str) -> Recording:
        _check_id(recording_id)
        recording = await self.store.get(recording_id)
        if recording is None:
            raise RecordingNotFoundError(recording_id)
        return recording

    async def list_recordings(self) -> list[Recording]:
        """All recordings, newest first."""
        return await self.store.list_all()

    async def start_recording(self, recording_id: str) -> Recording:
        """Claim a pending recording and run it in the background.

        Raises:
            RecordingNotFoundError: if the recording does not exist
            RecordingConflictError: if it is not pending
        """
        self._require_started()
        _check_id(recording_id)
        async with self._lock:
            machine = LifecycleMachine(recording_id, self.store, self.broadcaster)
            recording = await machine.begin()

            pipeline = RecordingPipeline(
                machine=machine,
                layout=self.layout(recording_id),
                sessions=self.sessions,
                executor=self.executor,
                interpreter=self.interpreter,
                generator=self.generator,
                speech=self.speech,
                composer=self.composer,
                publisher=self.publisher,
            )
            self._pipelines[recording_id] = pipeline
            pipeline.task = asyncio.create_task(self._run(pipeline), name=f"recording-{recording_id}")

        logger.info("Started recording %s", recording_id)
        return recording

    async def _run(self, pipeline: RecordingPipeline) -> None:
        try:
            await pipeline.run()
        except asyncio.CancelledError:
            logger.info("Recording %s cancelled", pipeline.recording_id)
            raise
        except Exception:
            logger.exception("Recording %s could not be finalized", pipeline.recording_id)
        finally:
            self._pipelines.pop(pipeline.recording_id, None)

    async def stop_recording(self, recording_id: str) -> Recording:
        """Stop a recording: it ends ``failed`` with "Stopped by user".

        A running pipeline gets ``stop_grace_seconds`` to wind down after its
        browser is closed, then is cancelled.

        Raises:
            RecordingNotFoundError: if the recording does not exist
            RecordingConflictError: if it has already finished
        """
        # Same lock as start_recording: a recording is either pending here or has a pipeline
        async with self._lock:
            pipeline = self._pipelines.get(recording_id)
            if pipeline is None:
                recording = await self.get_recording(recording_id)
                machine = LifecycleMachine(recording_id, self.store, self.broadcaster)
                if recording.status is RecordingStatus.PENDING:
                    return await machine.cancel_pending()
                if recording.is_terminal:
                    raise RecordingConflictError(
                        f"Recording {recording_id} is already {recording.status.value}"
                    )
                return await machine.fail(STOPPED_REASON)

        logger.info("Stopping recording %s", recording_id)
        await pipeline.request_stop()
        task = pipeline.task
        if task is not None:
            done, _ = await asyncio.wait({task}, timeout=self.config.recording.stop_grace_seconds)
            if not done:
                logger.warning("Recording %s did not stop in time, cancelling", recording_id)
                task.cancel()
                await asyncio.wait({task})
        return await self.get_recording(recording_id)

    async def delete_recording(self, recording_id: str) -> None:
        """Delete a finished or pending recording and all of its files.

        Raises:
            RecordingNotFoundError: if the recording does not exist
            RecordingConflictError: if it is running
        """
        async with self._lock:
            recording = await self.get_recording(recording_id)
            if recording.status in ACTIVE_STATUSES or recording_id in self._pipelines:
                raise RecordingConflictError(
                    f"Recording {recording_id} is {recording.status.value}; stop it before deleting"
                )

            self.layout(recording_id).remove()
            if recording.final_video_path:
                Path(recording.final_video_path).unlink(missing_ok=True)
            await self.store.delete(recording_id)

        logger.info("Deleted recording %s", recording_id)

    async def wait_for(self, recording_id: str, timeout: float | None = None) -> Recording:
        """Wait until a recording is completed or failed.

        Raises:
            asyncio.TimeoutError: if it is still running after ``timeout`` seconds
        """
        async with self.broadcaster.subscribe(recording_id) as events:
            recording = await self.get_recording(recording_id)
            if recording.is_terminal:
                return recording

            async def until_terminal() -> None:
                async for event in events:
                    if event.event in ("completed", "failed"):
                        return

            await asyncio.wait_for(until_terminal(), timeout)
        return await self.get_recording(recording_id)

    def subscribe(self, recording_id: str | None = None) -> Subscription:
        """Progress events for one recording, or all of them."""
        return self.broadcaster.subscribe(recording_id)
