"""One execution of one recording, stage by stage."""

import asyncio
import logging
from pathlib import Path

from runthru.artifacts import ArtifactLayout
from runthru.browser import BrowserSessionManager, SessionHandle
from runthru.errors import CompositionError, GenerationError, PublishError, RecordingStopped
from runthru.executor import StepExecutor
from runthru.interpreter import Interpreter
from runthru.lifecycle import STOPPED_REASON, LifecycleMachine, Stage
from runthru.llm import InstructionGenerator, fallback_narration
from runthru.media import MediaComposer
from runthru.models.recording import Recording
from runthru.publisher import GitHubPublisher
from runthru.speech import SpeechSynthesizer

logger = logging.getLogger(__name__)


class RecordingPipeline:
    """Runs browser steps, narration, composition and publishing for a claimed recording.

    The lifecycle machine must already have claimed the recording
    (``machine.begin()``); ``run`` never raises for session-fatal errors,
    they end up as ``status=failed``.

    Stages:
        1. Launch the browser and execute every instruction in order
        2. Release the browser and collect the screen recording
        3. Narration script and speech (skipped when disabled or unconfigured)
        4. ffmpeg composition and duration probe
        5. Optional GitHub comment (failures are logged only)
        6. Complete
    """

    def __init__(
        self,
        machine: LifecycleMachine,
        layout: ArtifactLayout,
        sessions: BrowserSessionManager,
        executor: StepExecutor,
        interpreter: Interpreter,
        generator: InstructionGenerator,
        speech: SpeechSynthesizer,
        composer: MediaComposer,
        publisher: GitHubPublisher,
    ):
        self.machine = machine
        self.layout = layout
        self.sessions = sessions
        self.executor = executor
        self.interpreter = interpreter
        self.generator = generator
        self.speech = speech
        self.composer = composer
        self.publisher = publisher

        self.handle: SessionHandle | None = None
        self.stop_event = asyncio.Event()
        self.task: asyncio.Task | None = None

    @property
    def recording_id(self) -> str:
        return self.machine.recording_id

    async def request_stop(self) -> None:
        """Ask the run to stop and close its browser right away."""
        self.stop_event.set()
        if self.handle is not None:
            await self.sessions.release(self.handle)

    def _check_stop(self) -> None:
        if self.stop_event.is_set():
            raise RecordingStopped(STOPPED_REASON)

    async def run(self) -> Recording:
        async with self.machine.running():
            video_path = await self._record()
            audio_path = await self._narrate()
            final_path, duration = await self._compose(video_path, audio_path)
            await self._publish(duration)
            self._check_stop()
            await self.machine.complete(final_path, duration)
            logger.info("Recording %s completed: %s (%ss)", self.recording_id, final_path, duration)
        return self.machine.recording

    async def _record(self) -> Path:
        machine = self.machine
        instructions = machine.recording.test_steps

        await machine.advance(Stage.BROWSER_SETUP, "Launching browser")
        self._check_stop()
        self.handle = await self.sessions.acquire(machine.recording.browser, self.layout)
        try:
            # A stop may have arrived while the browser was starting
            self._check_stop()
            await machine.advance(Stage.BROWSER_SETUP, "Browser ready", 1.0)

            total = len(instructions)
            for index, instruction in enumerate(instructions):
                self._check_stop()
                await machine.advance(Stage.STEPS, f"Executing: {instruction}", index / total)
                action = self.interpreter.interpret(instruction)
                step = await self.executor.execute(self.handle, instruction, action, machine.next_sequence())
                self._check_stop()
                await machine.record_step(step, (index + 1) / total)
                await self.layout.append_step(step)
        finally:
            await self.sessions.release(self.handle)

        self._check_stop()
        video_path = self.layout.collect_video(self.handle.video_path)
        if video_path is None:
            raise CompositionError("Browser produced no screen recording")
        await machine.set_artifacts(video_path=str(video_path))
        return video_path

    async def _narrate(self) -> Path | None:
        machine = self.machine
        await machine.enter_processing(Stage.NARRATION, "Generating narration")
        recording = machine.recording

        if not recording.narration.auto_generate:
            logger.info("Narration disabled for recording %s", self.recording_id)
            return None
        if not self.speech.configured:
            logger.info("No speech service configured, recording %s will be silent", self.recording_id)
            return None

        script = await self._narration_script(recording)
        self._check_stop()
        await machine.advance(Stage.NARRATION, "Synthesizing narration", 0.5)
        audio_path = await self.speech.synthesize(
            script,
            recording.narration.voice,
            recording.narration.speed,
            self.layout.audio_path,
        )
        await machine.set_artifacts(audio_path=str(audio_path))
        return audio_path

    async def _narration_script(self, recording: Recording) -> str:
        steps = [step.instruction for step in recording.steps]
        if self.generator.configured:
            try:
                return await self.generator.generate_narration(steps, recording.narration.style)
            except GenerationError as e:
                logger.warning("Narration generation failed, using fallback: %s", e)
        return fallback_narration(recording.title, steps)

    async def _compose(self, video_path: Path, audio_path: Path | None) -> tuple[Path, int]:
        machine = self.machine
        self._check_stop()
        await machine.advance(Stage.COMPOSITION, "Composing video")

        settings = machine.recording.video
        final_path = await self.composer.compose(
            video_path,
            audio_path,
            settings,
            self.layout.final_video_path(settings.format),
        )
        await machine.set_artifacts(final_video_path=str(final_path))
        duration = await self.composer.probe_duration(final_path)
        await machine.advance(Stage.COMPOSITION, "Video composed", 1.0)
        return final_path, duration

    async def _publish(self, duration: int) -> None:
        if not self.publisher.configured:
            return

        self._check_stop()
        await self.machine.advance(Stage.PUBLISHING, "Publishing")
        recording = self.machine.recording.model_copy(update={"duration": duration})
        try:
            url = await self.publisher.publish(recording)
        except PublishError as e:
            logger.warning("Publishing recording %s failed: %s", self.recording_id, e)
            return
        logger.info("Recording %s published: %s", self.recording_id, url)
