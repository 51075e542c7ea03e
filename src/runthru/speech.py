"""Narration audio via the ElevenLabs text-to-speech API."""

import logging
from pathlib import Path

import aiofiles
import httpx

from runthru.config import SpeechConfig
from runthru.errors import SpeechSynthesisError

logger = logging.getLogger(__name__)

VOICE_IDS = {
    "Rachel": "21m00Tcm4TlvDq8ikWAM",
    "Adam": "pNInz6obpgDQGcFmaJgB",
    "Josh": "TxGEqnHWrfWFTfGW9XjX",
    "Elli": "MF3mGyEYCl7XYWbV9V6O",
}
DEFAULT_VOICE = "Rachel"


def resolve_voice(voice: str) -> str:
    """Voice name -> voice id. Unknown names fall back to Rachel; raw ids pass through."""
    if voice in VOICE_IDS:
        return VOICE_IDS[voice]
    if voice in VOICE_IDS.values():
        return voice
    return VOICE_IDS[DEFAULT_VOICE]


class SpeechSynthesizer:
    """Turns narration text into an mp3 file."""

    def __init__(self, config: SpeechConfig, client: httpx.AsyncClient):
        self.config = config
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    async def synthesize(
        self,
        text: str,
        voice: str,
        speed: float,
        output_path: Path,
    ) -> Path:
        """Synthesize ``text`` and write the audio to ``output_path``.

        Raises:
            SpeechSynthesisError: if the service is unconfigured or the request fails
        """
        if not self.configured:
            raise SpeechSynthesisError("No speech API key configured")

        voice_id = resolve_voice(voice)
        try:
            resp = await self._client.post(
                f"{self.config.base_url.rstrip('/')}/text-to-speech/{voice_id}",
                headers={
                    "Accept": "audio/mpeg",
                    "xi-api-key": self.config.api_key,
                },
                json={
                    "text": text,
                    "model_id": self.config.model_id,
                    "voice_settings": {
                        "stability": 0.5,
                        "similarity_boost": 0.5,
                        "speed": speed,
                    },
                },
                timeout=self.config.timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise SpeechSynthesisError(f"Speech synthesis failed: {e}") from e

        if not resp.content:
            raise SpeechSynthesisError("Speech synthesis returned no audio")

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(output_path, "wb") as f:
            await f.write(resp.content)

        logger.info("Narration audio written to %s (%d bytes)", output_path, len(resp.content))
        return output_path
