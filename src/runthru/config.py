"""Configuration management via environment variables and YAML."""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


class BrowserConfig(BaseModel):
    """Browser defaults and explicit per-operation timeouts."""

    engine: str = "chromium"
    headless: bool = True
    viewport_width: int = 1920
    viewport_height: int = 1080
    navigation_timeout_ms: int = 30_000
    action_timeout_ms: int = 30_000
    locate_timeout_ms: int = 5_000  # visible-text lookup before falling back to a selector
    screenshot_timeout_ms: int = 10_000
    step_delay_ms: int = 500  # settle time after each action, keeps the video watchable
    extra_args: list[str] = Field(default_factory=lambda: ["--no-sandbox", "--disable-setuid-sandbox"])


class RecordingConfig(BaseModel):
    """Where recordings live and how many may be requested."""

    recordings_dir: Path = Path("tmp/recordings")
    data_dir: Path = Path("tmp/data")
    store: Literal["memory", "json"] = "json"
    max_steps: int = 50
    stop_grace_seconds: float = 10.0


class EventsConfig(BaseModel):
    """Progress broadcaster configuration."""

    subscriber_queue_size: int = 1000


class LLMConfig(BaseModel):
    """OpenAI-compatible chat completions endpoint."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    model: str = "gpt-4o"
    timeout: float = 120.0


class SpeechConfig(BaseModel):
    """ElevenLabs text-to-speech endpoint."""

    base_url: str = "https://api.elevenlabs.io/v1"
    api_key: str | None = None
    model_id: str = "eleven_monolingual_v1"
    timeout: float = 60.0


class MediaConfig(BaseModel):
    """ffmpeg / ffprobe binaries."""

    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    timeout: float = 600.0


class PublishConfig(BaseModel):
    """GitHub comment publishing. Disabled unless both token and target are set."""

    github_token: str | None = None
    github_target: str | None = None  # "owner/repo#123"
    api_url: str = "https://api.github.com"


class Config(BaseModel):
    """Main configuration class."""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    recording: RecordingConfig = Field(default_factory=RecordingConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            browser=BrowserConfig(
                engine=os.getenv("BROWSER_ENGINE", "chromium"),
                headless=os.getenv("HEADLESS", "true").lower() == "true",
                viewport_width=int(os.getenv("VIEWPORT_WIDTH", "1920")),
                viewport_height=int(os.getenv("VIEWPORT_HEIGHT", "1080")),
                navigation_timeout_ms=int(os.getenv("NAVIGATION_TIMEOUT_MS", "30000")),
                action_timeout_ms=int(os.getenv("ACTION_TIMEOUT_MS", "30000")),
                step_delay_ms=int(os.getenv("STEP_DELAY_MS", "500")),
            ),
            recording=RecordingConfig(
                recordings_dir=Path(os.getenv("RECORDINGS_DIR", "tmp/recordings")),
                data_dir=Path(os.getenv("DATA_DIR", "tmp/data")),
                store=os.getenv("STORE_BACKEND", "json"),
                max_steps=int(os.getenv("MAX_STEPS", "50")),
            ),
            llm=LLMConfig(
                base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
                api_key=os.getenv("OPENAI_API_KEY"),
                model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            ),
            speech=SpeechConfig(
                api_key=os.getenv("ELEVENLABS_API_KEY"),
            ),
            media=MediaConfig(
                ffmpeg_bin=os.getenv("FFMPEG_BIN", "ffmpeg"),
                ffprobe_bin=os.getenv("FFPROBE_BIN", "ffprobe"),
            ),
            publish=PublishConfig(
                github_token=os.getenv("GITHUB_TOKEN"),
                github_target=os.getenv("GITHUB_TARGET"),
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_yaml(cls, path: Path | str) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls, config_path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file (if exists) merged with env vars.

        Environment variables take precedence over YAML values.
        """
        base_config: dict[str, Any] = {}

        if config_path:
            path = Path(config_path)
            if path.exists():
                with open(path) as f:
                    base_config = yaml.safe_load(f) or {}

        default_path = Path("config.yml")
        if not config_path and default_path.exists():
            with open(default_path) as f:
                base_config = yaml.safe_load(f) or {}

        config = cls(**base_config) if base_config else cls()
        env_config = cls.from_env()

        # Only variables that are explicitly set override the YAML values
        for env_var, section, field in _ENV_OVERRIDES:
            if not os.getenv(env_var):
                continue
            if section is None:
                setattr(config, field, getattr(env_config, field))
            else:
                setattr(getattr(config, section), field, getattr(getattr(env_config, section), field))

        return config

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)


_ENV_OVERRIDES: list[tuple[str, str | None, str]] = [
    ("BROWSER_ENGINE", "browser", "engine"),
    ("HEADLESS", "browser", "headless"),
    ("VIEWPORT_WIDTH", "browser", "viewport_width"),
    ("VIEWPORT_HEIGHT", "browser", "viewport_height"),
    ("NAVIGATION_TIMEOUT_MS", "browser", "navigation_timeout_ms"),
    ("ACTION_TIMEOUT_MS", "browser", "action_timeout_ms"),
    ("STEP_DELAY_MS", "browser", "step_delay_ms"),
    ("RECORDINGS_DIR", "recording", "recordings_dir"),
    ("DATA_DIR", "recording", "data_dir"),
    ("STORE_BACKEND", "recording", "store"),
    ("MAX_STEPS", "recording", "max_steps"),
    ("OPENAI_BASE_URL", "llm", "base_url"),
    ("OPENAI_API_KEY", "llm", "api_key"),
    ("OPENAI_MODEL", "llm", "model"),
    ("ELEVENLABS_API_KEY", "speech", "api_key"),
    ("FFMPEG_BIN", "media", "ffmpeg_bin"),
    ("FFPROBE_BIN", "media", "ffprobe_bin"),
    ("GITHUB_TOKEN", "publish", "github_token"),
    ("GITHUB_TARGET", "publish", "github_target"),
    ("LOG_LEVEL", None, "log_level"),
]
