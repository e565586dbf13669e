"""Cloud Text-to-Speech (v1beta1) REST client and wire types."""

from __future__ import annotations

import asyncio
import base64

import httpx
from pydantic import Field, model_validator

from genlang._http import HttpTransport
from genlang.config import DEFAULT_TTS_BASE_URL, ConfigError
from genlang.log import LogContext, get_logger
from genlang.types import OpenEnum, WireModel

_log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class SsmlVoiceGender(OpenEnum):
    SSML_VOICE_GENDER_UNSPECIFIED = "SSML_VOICE_GENDER_UNSPECIFIED"
    MALE = "MALE"
    FEMALE = "FEMALE"
    NEUTRAL = "NEUTRAL"


class AudioEncoding(OpenEnum):
    AUDIO_ENCODING_UNSPECIFIED = "AUDIO_ENCODING_UNSPECIFIED"
    LINEAR16 = "LINEAR16"
    MP3 = "MP3"
    MP3_64_KBPS = "MP3_64_KBPS"
    OGG_OPUS = "OGG_OPUS"
    MULAW = "MULAW"
    ALAW = "ALAW"

    @property
    def file_extension(self) -> str:
        """Conventional file extension for audio in this encoding.

        Raises:
            ValueError: For ``AUDIO_ENCODING_UNSPECIFIED`` or unknown encodings.
        """
        try:
            return _EXTENSIONS[self]
        except KeyError:
            raise ValueError(f"No file extension for encoding {self.value}") from None


_EXTENSIONS = {
    AudioEncoding.LINEAR16: ".wav",
    AudioEncoding.MP3: ".mp3",
    AudioEncoding.MP3_64_KBPS: ".mp3",
    AudioEncoding.OGG_OPUS: ".ogg",
    AudioEncoding.MULAW: ".wav",
    AudioEncoding.ALAW: ".wav",
}


class TimepointType(OpenEnum):
    TIMEPOINT_TYPE_UNSPECIFIED = "TIMEPOINT_TYPE_UNSPECIFIED"
    SSML_MARK = "SSML_MARK"


class SynthesisInput(WireModel):
    """Text to speak: plain ``text`` or ``ssml``, never both."""

    text: str | None = None
    ssml: str | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> SynthesisInput:
        if (self.text is None) == (self.ssml is None):
            raise ValueError("Exactly one of 'text' or 'ssml' must be set")
        return self


class VoiceSelectionParams(WireModel):
    language_code: str
    name: str | None = None
    ssml_gender: SsmlVoiceGender | None = None


class AudioConfig(WireModel):
    audio_encoding: AudioEncoding
    speaking_rate: float | None = Field(default=None, ge=0.25, le=4.0)
    pitch: float | None = Field(default=None, ge=-20.0, le=20.0)
    volume_gain_db: float | None = None
    sample_rate_hertz: int | None = None
    effects_profile_id: list[str] | None = None


class TextSynthesizeRequest(WireModel):
    """Body of ``text:synthesize``."""

    input: SynthesisInput
    voice: VoiceSelectionParams
    audio_config: AudioConfig
    enable_time_pointing: list[TimepointType] | None = None

    @classmethod
    def from_text(
        cls,
        text: str,
        *,
        language_code: str,
        encoding: AudioEncoding = AudioEncoding.MP3,
        voice_name: str | None = None,
    ) -> TextSynthesizeRequest:
        return cls(
            input=SynthesisInput(text=text),
            voice=VoiceSelectionParams(language_code=language_code, name=voice_name),
            audio_config=AudioConfig(audio_encoding=encoding),
        )


class Timepoint(WireModel):
    mark_name: str
    time_seconds: float


class TextSynthesizeResponse(WireModel):
    audio_content: str
    timepoints: list[Timepoint] | None = None
    audio_config: AudioConfig | None = None

    @property
    def audio_bytes(self) -> bytes:
        """Decoded ``audioContent``."""
        return base64.b64decode(self.audio_content)


class Voice(WireModel):
    language_codes: list[str] = Field(default_factory=list)
    name: str
    ssml_gender: SsmlVoiceGender | None = None
    natural_sample_rate_hertz: int | None = None


class VoicesResponse(WireModel):
    voices: list[Voice] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TextToSpeech:
    """Client for ``voices.list`` and ``text.synthesize``.

    Args:
        api_key: API key sent as the ``key`` query parameter.
        base_url: API root.
        timeout: Request timeout in seconds.
        http_client: Shared ``httpx.AsyncClient`` to reuse.

    Raises:
        ConfigError: If ``api_key`` is empty.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_TTS_BASE_URL,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ConfigError("An API key is required")
        self._base_url = base_url.rstrip("/")
        self._transport = HttpTransport(api_key, timeout=timeout, http_client=http_client)

    async def list_voices(
        self,
        language_code: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> VoicesResponse:
        """List voices, optionally only those supporting ``language_code``."""
        params = {"languageCode": language_code} if language_code else None
        with LogContext(method="voices.list"):
            return await self._transport.request(
                "GET", f"{self._base_url}/voices", VoicesResponse, params=params, cancel=cancel
            )

    async def synthesize(
        self,
        request: TextSynthesizeRequest,
        *,
        cancel: asyncio.Event | None = None,
    ) -> TextSynthesizeResponse:
        """Synthesize speech.

        Raises:
            RequestFailedError: On a transport error or non-2xx status.
            RequestCanceledError: If ``cancel`` fires before the response.
            DeserializationError: If the response does not decode.
        """
        with LogContext(method="text.synthesize"):
            response = await self._transport.request(
                "POST",
                f"{self._base_url}/text:synthesize",
                TextSynthesizeResponse,
                body=request,
                cancel=cancel,
            )
            _log.debug("Synthesized %d characters of base64 audio", len(response.audio_content))
        return response
