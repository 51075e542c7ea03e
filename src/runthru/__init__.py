"""RunThru - narrated QA demo videos from natural-language test steps."""

from runthru.app import RunThru
from runthru.broadcaster import ProgressBroadcaster, Subscription
from runthru.browser import BrowserSessionManager, SessionHandle
from runthru.config import Config
from runthru.executor import StepExecutor
from runthru.interpreter import KeywordInterpreter, interpret
from runthru.lifecycle import LifecycleMachine, Stage
from runthru.models import Recording, RecordingRequest, RecordingStatus, Step
from runthru.store import JsonRecordingStore, MemoryRecordingStore, RecordingStore

__version__ = "0.1.0"

__all__ = [
    "RunThru",
    "Config",
    "ProgressBroadcaster",
    "Subscription",
    "BrowserSessionManager",
    "SessionHandle",
    "StepExecutor",
    "KeywordInterpreter",
    "interpret",
    "LifecycleMachine",
    "Stage",
    "Recording",
    "RecordingRequest",
    "RecordingStatus",
    "Step",
    "RecordingStore",
    "MemoryRecordingStore",
    "JsonRecordingStore",
]
