"""Async client for the Generative Language REST API.

Usage::

    client = GenerativeAIClient("my-key")
    model = client.get_model("gemini-1.5-flash")
    response = await model.generate_content("Hello!")
    print(response.text)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from typing import Any

import httpx

from genlang._http import HttpTransport
from genlang.config import ClientConfig, ConfigError, normalize_model_name
from genlang.log import LogContext, get_logger
from genlang.tts import TextToSpeech
from genlang.types import (
    Content,
    GenerateContentRequest,
    GenerateContentResponse,
    GenerateImageRequest,
    GenerateImageResponse,
    InlineDataPart,
    Model,
    ModelList,
)

_log = get_logger(__name__)

ContentsLike = GenerateContentRequest | Content | str | Iterable[Content]


def _as_request(contents: ContentsLike, **kwargs: Any) -> GenerateContentRequest:
    if isinstance(contents, GenerateContentRequest):
        if kwargs:
            return GenerateContentRequest(**{**dict(contents), **kwargs})
        return contents
    if isinstance(contents, str):
        return GenerateContentRequest.from_contents([Content.user(contents)], **kwargs)
    if isinstance(contents, Content):
        return GenerateContentRequest.from_contents([contents], **kwargs)
    return GenerateContentRequest.from_contents(contents, **kwargs)


def validate_request(request: GenerateContentRequest) -> None:
    """Reject requests the API cannot accept.

    Raises:
        ValueError: If there are no contents, a content has no parts, or an
            inline blob is empty.
    """
    if not request.contents:
        raise ValueError("Request has no contents")
    for index, content in enumerate(request.contents):
        if not content.parts:
            raise ValueError(f"Content {index} has no parts")
        for part in content.parts:
            if isinstance(part, InlineDataPart) and not part.inline_data.data:
                raise ValueError(f"Content {index} has an empty inline blob")


class GenerativeModel:
    """Handle bound to one model's endpoints.

    Holds no per-call state, so one handle can serve concurrent calls.
    Obtain one from ``GenerativeAIClient.get_model``.
    """

    __slots__ = ("_name", "_transport", "_base_url")

    def __init__(self, name: str, transport: HttpTransport, base_url: str) -> None:
        self._name = normalize_model_name(name)
        self._transport = transport
        self._base_url = base_url

    @property
    def name(self) -> str:
        """Resource name, ``models/<id>``."""
        return self._name

    @property
    def generate_content_url(self) -> str:
        return f"{self._base_url}/{self._name}:generateContent"

    @property
    def stream_generate_content_url(self) -> str:
        return f"{self._base_url}/{self._name}:streamGenerateContent"

    @property
    def predict_url(self) -> str:
        return f"{self._base_url}/{self._name}:predict"

    async def generate_content(
        self,
        contents: ContentsLike,
        *,
        cancel: asyncio.Event | None = None,
        **kwargs: Any,
    ) -> GenerateContentResponse:
        """Generate a complete response.

        Args:
            contents: A request, a list of contents, one content, or a
                user prompt string.
            cancel: Event that aborts the call when set.
            **kwargs: Request fields (``tools``, ``generation_config``, ...)
                applied on top of ``contents``.

        Raises:
            ValueError: If the request has an empty content.
            RequestFailedError: On a transport error or non-2xx status.
            RequestCanceledError: If ``cancel`` fires before the response.
            DeserializationError: If the response does not decode.
        """
        request = _as_request(contents, **kwargs)
        validate_request(request)
        with LogContext(model=self._name, method="generateContent"):
            response = await self._transport.request(
                "POST",
                self.generate_content_url,
                GenerateContentResponse,
                body=request,
                cancel=cancel,
            )
            _log.debug("Received %d candidate(s)", len(response.candidates))
        return response

    async def stream_generate_content(
        self,
        contents: ContentsLike,
        *,
        cancel: asyncio.Event | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[GenerateContentResponse]:
        """Generate a response, yielding fragments as the server produces them.

        Fragments arrive in generation order; merge them with
        ``append_streamed`` to rebuild the turn.

        Raises:
            ValueError: If the request has an empty content.
            RequestFailedError: On a transport error or non-2xx status.
            RequestCanceledError: If ``cancel`` fires before the stream ends.
            DeserializationError: If a fragment does not decode; the stream ends.
        """
        request = _as_request(contents, **kwargs)
        validate_request(request)
        fragments = self._transport.stream(
            "POST",
            self.stream_generate_content_url,
            GenerateContentResponse,
            body=request,
            cancel=cancel,
        )
        count = 0
        try:
            while True:
                # Bound per step; the consumer runs between yields.
                with LogContext(model=self._name, method="streamGenerateContent"):
                    try:
                        fragment = await anext(fragments)
                    except StopAsyncIteration:
                        _log.debug("Stream finished after %d fragment(s)", count)
                        return
                count += 1
                yield fragment
        finally:
            await fragments.aclose()

    async def generate_image(
        self,
        prompt: GenerateImageRequest | str,
        *,
        cancel: asyncio.Event | None = None,
        **parameters: Any,
    ) -> GenerateImageResponse:
        """Generate images from a text prompt.

        Args:
            prompt: A request, or a prompt string.
            cancel: Event that aborts the call when set.
            **parameters: ``ImageParameters`` fields when ``prompt`` is a string.

        Raises:
            RequestFailedError: On a transport error or non-2xx status.
            RequestCanceledError: If ``cancel`` fires before the response.
            DeserializationError: If the response does not decode.
        """
        if isinstance(prompt, str):
            request = GenerateImageRequest.from_prompt(prompt, **parameters)
        else:
            request = prompt
        with LogContext(model=self._name, method="predict"):
            response = await self._transport.request(
                "POST", self.predict_url, GenerateImageResponse, body=request, cancel=cancel
            )
            _log.debug("Received %d image(s)", len(response.predictions))
        return response

    def __repr__(self) -> str:
        return f"GenerativeModel({self._name!r})"


class GenerativeAIClient:
    """Entry point: model listing, model handles and the TTS client.

    Args:
        api_key: API key. Either this or ``config`` is required.
        config: Full configuration; takes precedence over ``api_key``.
        http_client: Shared ``httpx.AsyncClient`` to reuse across calls.
            When omitted, each call opens its own connection.

    Raises:
        ConfigError: If no usable API key is provided.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        config: ClientConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if config is None:
            if not api_key:
                raise ConfigError("An API key is required")
            config = ClientConfig.create(api_key=api_key)
        self._config = config
        self._http_client = http_client
        self._transport = HttpTransport(
            config.api_key.get_secret_value(),
            timeout=config.timeout,
            http_client=http_client,
        )

    @classmethod
    def from_env(cls, *, http_client: httpx.AsyncClient | None = None) -> GenerativeAIClient:
        """Build a client from ``GENLANG_*`` environment variables."""
        return cls(config=ClientConfig.from_env(), http_client=http_client)

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def list_models(
        self,
        *,
        page_size: int | None = None,
        page_token: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ModelList:
        """List one page of models available to the key.

        Raises:
            RequestFailedError: On a transport error or non-2xx status.
            RequestCanceledError: If ``cancel`` fires before the response.
            DeserializationError: If the response does not decode.
        """
        params: dict[str, str] = {}
        if page_size is not None:
            params["pageSize"] = str(page_size)
        if page_token:
            params["pageToken"] = page_token
        with LogContext(method="listModels"):
            return await self._transport.request(
                "GET", f"{self._config.base_url}/models", ModelList, params=params, cancel=cancel
            )

    async def iter_models(self, *, cancel: asyncio.Event | None = None) -> AsyncIterator[Model]:
        """Yield every model, following ``nextPageToken`` across pages."""
        token: str | None = None
        while True:
            page = await self.list_models(page_token=token, cancel=cancel)
            for model in page.models:
                yield model
            if not page.next_page_token:
                return
            token = page.next_page_token

    def get_model(self, name: str) -> GenerativeModel:
        """Return a handle for ``name`` (``"gemini-pro"`` or ``"models/gemini-pro"``)."""
        return GenerativeModel(name, self._transport, self._config.base_url)

    def text_to_speech(self) -> TextToSpeech:
        """Return a Text-to-Speech client sharing this client's key and transport."""
        return TextToSpeech(
            self._config.api_key.get_secret_value(),
            base_url=self._config.tts_base_url,
            timeout=self._config.timeout,
            http_client=self._http_client,
        )
