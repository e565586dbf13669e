"""Incremental parser for a streamed top-level JSON array of objects.

``streamGenerateContent`` answers with one HTTP body shaped like::

    [{...},
    {...},
    {...}]

where each element arrives over time and may be large (base64 media).
``JsonArrayStreamParser`` emits every element as soon as its closing brace
is received, without waiting for the closing ``]``.
"""

from __future__ import annotations

import codecs
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any, TypeVar

from genlang.codec import DeserializationError, deserialize
from genlang.log import get_logger

T = TypeVar("T")

_log = get_logger(__name__)


class JsonArrayStreamParser:
    """Split a chunked JSON array into its top-level object texts.

    Scanning tracks string literals and escapes, so braces inside string
    values do not affect nesting. Characters between objects (``[``, ``,``,
    ``]``, whitespace) are skipped. One parser serves one stream.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._pending: list[str] = []
        self._depth = 0
        self._in_string = False
        self._escaped = False

    @property
    def depth(self) -> int:
        """Current brace depth; ``0`` between objects."""
        return self._depth

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one chunk and return the objects it completed, in order.

        Raises:
            DeserializationError: On invalid UTF-8 or an unbalanced ``}``.
        """
        if not chunk:
            return []
        try:
            text = self._decoder.decode(chunk)
        except UnicodeDecodeError as exc:
            raise DeserializationError(f"Invalid UTF-8 in stream: {exc}", payload=chunk) from exc
        return self._scan(text)

    def close(self) -> list[str]:
        """Flush the decoder at end of stream.

        Raises:
            DeserializationError: If the stream ended inside an object or a
                multibyte character.
        """
        try:
            tail = self._decoder.decode(b"", final=True)
        except UnicodeDecodeError as exc:
            raise DeserializationError(f"Stream ended mid-character: {exc}") from exc
        objects = self._scan(tail)
        if self._depth:
            raise DeserializationError(
                "Stream ended inside an unterminated object",
                payload="".join(self._pending),
            )
        return objects

    def _scan(self, text: str) -> list[str]:
        objects: list[str] = []
        start = 0 if self._depth else None
        for i, ch in enumerate(text):
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif ch == "\\":
                    self._escaped = True
                elif ch == '"':
                    self._in_string = False
                continue
            if ch == '"':
                self._in_string = True
            elif ch == "{":
                if self._depth == 0:
                    start = i
                self._depth += 1
            elif ch == "}":
                if self._depth == 0:
                    raise DeserializationError("Unbalanced '}' in stream", payload=text)
                self._depth -= 1
                if self._depth == 0:
                    self._pending.append(text[start : i + 1])
                    objects.append("".join(self._pending))
                    self._pending.clear()
                    start = None
        if self._depth and start is not None:
            self._pending.append(text[start:])
        return objects


async def iter_json_array(chunks: AsyncIterable[bytes], type_: type[T] | Any) -> AsyncIterator[T]:
    """Decode each element of a streamed JSON array as it completes.

    A malformed element raises ``DeserializationError`` from the iterator,
    ending the stream.

    Args:
        chunks: Raw body chunks in arrival order.
        type_: Type each element is decoded into.

    Yields:
        Decoded elements, in arrival order.
    """
    parser = JsonArrayStreamParser()
    count = 0
    async for chunk in chunks:
        for text in parser.feed(chunk):
            count += 1
            yield deserialize(text, type_)
    for text in parser.close():
        count += 1
        yield deserialize(text, type_)
    _log.debug("JSON array stream finished after %d objects", count)
