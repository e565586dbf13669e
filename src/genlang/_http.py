"""httpx transport shared by the generative and TTS clients.

Each call either borrows the injected ``httpx.AsyncClient`` or opens and
closes its own, so calls never share buffers. An optional
``asyncio.Event`` cancels a call: the in-flight transport task is aborted
as soon as the event fires.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import httpx

from genlang.codec import DeserializationError, deserialize, serialize
from genlang.log import get_logger
from genlang.streaming import iter_json_array
from genlang.types import RequestCanceledError, RequestFailedError, WireModel

T = TypeVar("T")

_log = get_logger(__name__)

_JSON_HEADERS = {"Content-Type": "application/json"}
_END = object()


class _ErrorDetail(WireModel):
    code: int | None = None
    message: str = ""
    status: str | None = None


class _ErrorEnvelope(WireModel):
    error: _ErrorDetail


def redact(url: httpx.URL | str) -> str:
    """Return ``url`` with the ``key`` query parameter masked."""
    url = httpx.URL(url)
    if "key" in url.params:
        url = url.copy_set_param("key", "***")
    return str(url)


def raise_for_status(response: httpx.Response) -> None:
    """Raise ``RequestFailedError`` for a non-2xx response.

    The message is the API's ``error.message`` when the body is the
    standard error envelope, otherwise the raw body text.
    """
    if response.is_success:
        return
    message = response.text.strip() or response.reason_phrase
    try:
        message = deserialize(response.content, _ErrorEnvelope).error.message or message
    except DeserializationError:
        _log.debug("Error body is not the standard envelope; using raw text")
    raise RequestFailedError(
        message, status_code=response.status_code, url=redact(response.request.url)
    )


async def race_cancel(
    aw: Awaitable[T],
    cancel: asyncio.Event | None,
    *,
    discard: Callable[[T], Awaitable[Any]] | None = None,
) -> T:
    """Await ``aw`` unless ``cancel`` fires first.

    When the event wins, ``aw`` is cancelled and ``RequestCanceledError`` is
    raised. An event that is already set when ``aw`` finishes also wins, so
    a late success is never delivered. ``discard`` releases such a result.

    Raises:
        RequestCanceledError: If ``cancel`` is set before a result is returned.
    """
    if cancel is None:
        return await aw
    if cancel.is_set():
        if inspect.iscoroutine(aw):
            aw.close()
        raise RequestCanceledError("Request canceled before it was sent")

    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise
    waiter.cancel()

    if cancel.is_set():
        task.cancel()
        (outcome,) = await asyncio.gather(task, return_exceptions=True)
        if discard is not None and not isinstance(outcome, BaseException):
            await discard(outcome)
        raise RequestCanceledError("Request canceled")
    return task.result()


class HttpTransport:
    """JSON-over-HTTP calls authenticated with an API key query parameter.

    Args:
        api_key: Key appended as ``?key=``.
        timeout: Per-request timeout in seconds (ignored for injected clients).
        http_client: Shared client to reuse; the caller owns its lifetime.
    """

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._shared = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._shared is not None:
            yield self._shared
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    def _build(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        body: Any,
        params: Mapping[str, str] | None,
    ) -> httpx.Request:
        query = {**(params or {}), "key": self._api_key}
        if body is None:
            return client.build_request(method, url, params=query)
        content = serialize(body)
        _log.debug("Request body: %d bytes", len(content))
        return client.build_request(
            method, url, params=query, content=content.encode("utf-8"), headers=_JSON_HEADERS
        )

    async def request(
        self,
        method: str,
        url: str,
        type_: type[T] | Any,
        *,
        body: Any = None,
        params: Mapping[str, str] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> T:
        """Send one request and decode the JSON response as ``type_``.

        Raises:
            RequestFailedError: On a transport error or non-2xx status.
            RequestCanceledError: If ``cancel`` fires first.
            DeserializationError: If the body does not decode.
        """
        return await race_cancel(self._send(method, url, type_, body, params), cancel)

    async def _send(
        self,
        method: str,
        url: str,
        type_: Any,
        body: Any,
        params: Mapping[str, str] | None,
    ) -> Any:
        async with self._client() as client:
            request = self._build(client, method, url, body, params)
            _log.debug("%s %s", method, redact(request.url))
            try:
                response = await client.send(request)
            except httpx.HTTPError as exc:
                raise RequestFailedError(
                    f"{type(exc).__name__}: {exc}", url=redact(request.url)
                ) from exc
        _log.debug("%s %s -> %d", method, redact(request.url), response.status_code)
        raise_for_status(response)
        return deserialize(response.content, type_)

    async def stream(
        self,
        method: str,
        url: str,
        type_: type[T] | Any,
        *,
        body: Any = None,
        params: Mapping[str, str] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AsyncGenerator[T, None]:
        """Send one request and yield each element of the JSON array it returns.

        Elements are yielded as soon as they are complete. The response is
        closed when the iterator finishes, fails or is closed early.

        Raises:
            RequestFailedError: On a transport error or non-2xx status.
            RequestCanceledError: If ``cancel`` fires before the stream ends.
            DeserializationError: If an element does not decode; the stream ends.
        """
        async with self._client() as client:
            request = self._build(client, method, url, body, params)
            _log.debug("%s %s (stream)", method, redact(request.url))
            try:
                response = await race_cancel(
                    client.send(request, stream=True), cancel, discard=_close
                )
            except httpx.HTTPError as exc:
                raise RequestFailedError(
                    f"{type(exc).__name__}: {exc}", url=redact(request.url)
                ) from exc

            try:
                _log.debug("%s %s -> %d", method, redact(request.url), response.status_code)
                if not response.is_success:
                    await response.aread()
                    raise_for_status(response)
                async for item in iter_json_array(_chunks(response, cancel), type_):
                    if cancel is not None and cancel.is_set():
                        raise RequestCanceledError("Stream canceled")
                    yield item
            finally:
                await response.aclose()


async def _close(response: httpx.Response) -> None:
    await response.aclose()


async def _chunks(response: httpx.Response, cancel: asyncio.Event | None) -> AsyncIterator[bytes]:
    raw = response.aiter_bytes()
    try:
        while True:
            try:
                chunk = await race_cancel(anext(raw, _END), cancel)
            except httpx.HTTPError as exc:
                raise RequestFailedError(
                    f"Stream interrupted: {exc}", url=redact(response.request.url)
                ) from exc
            if chunk is _END:
                return
            yield chunk
    finally:
        await raw.aclose()
