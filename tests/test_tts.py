"""Tests for genlang.tts: Text-to-Speech types and client."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest
from pydantic import ValidationError

from genlang.codec import deserialize, serialize
from genlang.config import ConfigError
from genlang.tts import (
    AudioConfig,
    AudioEncoding,
    SsmlVoiceGender,
    SynthesisInput,
    TextSynthesizeRequest,
    TextToSpeech,
    TimepointType,
    VoicesResponse,
)
from genlang.types import RequestCanceledError, RequestFailedError


def _tts(handler: Any) -> TextToSpeech:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TextToSpeech("tts-key", http_client=http)


class TestTypes:
    def test_input_exactly_one(self) -> None:
        assert SynthesisInput(text="hi").text == "hi"
        with pytest.raises(ValidationError, match="Exactly one"):
            SynthesisInput(text="hi", ssml="<speak>hi</speak>")
        with pytest.raises(ValidationError, match="Exactly one"):
            SynthesisInput()

    def test_request_wire_shape(self) -> None:
        request = TextSynthesizeRequest.from_text(
            "Hello", language_code="en-US", encoding=AudioEncoding.LINEAR16, voice_name="en-US-Neural2-A"
        )
        request = request.model_copy(update={"enable_time_pointing": [TimepointType.SSML_MARK]})
        assert json.loads(serialize(request)) == {
            "input": {"text": "Hello"},
            "voice": {"languageCode": "en-US", "name": "en-US-Neural2-A"},
            "audioConfig": {"audioEncoding": "LINEAR16"},
            "enableTimePointing": ["SSML_MARK"],
        }

    def test_speaking_rate_bounds(self) -> None:
        with pytest.raises(ValidationError):
            AudioConfig(audio_encoding=AudioEncoding.MP3, speaking_rate=10)

    @pytest.mark.parametrize(
        ("encoding", "extension"),
        [
            (AudioEncoding.LINEAR16, ".wav"),
            (AudioEncoding.MP3, ".mp3"),
            (AudioEncoding.MP3_64_KBPS, ".mp3"),
            (AudioEncoding.OGG_OPUS, ".ogg"),
            (AudioEncoding.ALAW, ".wav"),
        ],
    )
    def test_file_extension(self, encoding: AudioEncoding, extension: str) -> None:
        assert encoding.file_extension == extension

    def test_unspecified_has_no_extension(self) -> None:
        with pytest.raises(ValueError, match="No file extension"):
            _ = AudioEncoding.AUDIO_ENCODING_UNSPECIFIED.file_extension

    def test_voices_response(self) -> None:
        voices = deserialize(
            '{"voices": [{"languageCodes": ["en-US"], "name": "en-US-Standard-A",'
            ' "ssmlGender": "FEMALE", "naturalSampleRateHertz": 24000}]}',
            VoicesResponse,
        )
        assert voices.voices[0].ssml_gender is SsmlVoiceGender.FEMALE
        assert voices.voices[0].natural_sample_rate_hertz == 24000


class TestTextToSpeech:
    def test_requires_key(self) -> None:
        with pytest.raises(ConfigError):
            TextToSpeech("")

    async def test_synthesize(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "audioContent": "UklGRg==",
                    "timepoints": [{"markName": "a", "timeSeconds": 0.5}],
                    "audioConfig": {"audioEncoding": "LINEAR16"},
                },
            )

        request = TextSynthesizeRequest.from_text("Hi", language_code="en-US")
        response = await _tts(handler).synthesize(request)

        assert response.audio_bytes == b"RIFF"
        assert response.timepoints is not None
        assert response.timepoints[0].time_seconds == 0.5
        (sent,) = seen
        assert sent.url.path == "/v1beta1/text:synthesize"
        assert sent.url.params["key"] == "tts-key"
        assert json.loads(sent.content)["input"] == {"text": "Hi"}

    async def test_list_voices_language_filter(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1beta1/voices"
            assert request.url.params["languageCode"] == "ja-JP"
            return httpx.Response(200, json={"voices": [{"name": "ja-JP-Wavenet-A"}]})

        voices = await _tts(handler).list_voices("ja-JP")
        assert [v.name for v in voices.voices] == ["ja-JP-Wavenet-A"]

    async def test_list_voices_unfiltered(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert "languageCode" not in request.url.params
            return httpx.Response(200, json={})

        assert (await _tts(handler).list_voices()).voices == []

    async def test_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"error": {"message": "API not enabled"}})

        with pytest.raises(RequestFailedError, match=r"\[403\] API not enabled"):
            await _tts(handler).list_voices()

    async def test_cancel(self) -> None:
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(RequestCanceledError):
            await _tts(lambda r: httpx.Response(200, json={})).list_voices(cancel=cancel)
