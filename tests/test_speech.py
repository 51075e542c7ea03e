"""Tests for narration speech synthesis."""

import json

import httpx
import pytest

from runthru.config import SpeechConfig
from runthru.errors import SpeechSynthesisError
from runthru.speech import VOICE_IDS, SpeechSynthesizer, resolve_voice


def make_synthesizer(handler, api_key: str | None = "xi-test") -> SpeechSynthesizer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SpeechSynthesizer(SpeechConfig(api_key=api_key, base_url="https://tts.test/v1"), client)


class TestResolveVoice:
    def test_known_name(self):
        assert resolve_voice("Adam") == VOICE_IDS["Adam"]

    def test_raw_id_passes_through(self):
        assert resolve_voice(VOICE_IDS["Elli"]) == VOICE_IDS["Elli"]

    def test_unknown_falls_back_to_rachel(self):
        assert resolve_voice("Morgan") == VOICE_IDS["Rachel"]


class TestSynthesize:
    async def test_writes_audio(self, tmp_path):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers["xi-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=b"ID3 audio")

        synthesizer = make_synthesizer(handler)
        path = await synthesizer.synthesize("Hello there", "Josh", 1.25, tmp_path / "out" / "narration.mp3")

        assert path.read_bytes() == b"ID3 audio"
        assert seen["url"] == f"https://tts.test/v1/text-to-speech/{VOICE_IDS['Josh']}"
        assert seen["key"] == "xi-test"
        assert seen["body"]["text"] == "Hello there"
        assert seen["body"]["model_id"] == "eleven_monolingual_v1"
        assert seen["body"]["voice_settings"]["speed"] == 1.25

    async def test_not_configured(self, tmp_path):
        synthesizer = make_synthesizer(lambda request: httpx.Response(200, content=b"x"), api_key=None)
        assert not synthesizer.configured
        with pytest.raises(SpeechSynthesisError):
            await synthesizer.synthesize("Hello", "Rachel", 1.0, tmp_path / "a.mp3")

    async def test_http_error(self, tmp_path):
        synthesizer = make_synthesizer(lambda request: httpx.Response(401, json={"detail": "bad key"}))
        with pytest.raises(SpeechSynthesisError, match="Speech synthesis failed"):
            await synthesizer.synthesize("Hello", "Rachel", 1.0, tmp_path / "a.mp3")
        assert not (tmp_path / "a.mp3").exists()

    async def test_empty_audio(self, tmp_path):
        synthesizer = make_synthesizer(lambda request: httpx.Response(200, content=b""))
        with pytest.raises(SpeechSynthesisError, match="no audio"):
            await synthesizer.synthesize("Hello", "Rachel", 1.0, tmp_path / "a.mp3")
