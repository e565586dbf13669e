"""Tests for genlang.codec: JSON serialization and tolerant decoding."""

from __future__ import annotations

import json
from dataclasses import dataclass

import pytest

from genlang.codec import DeserializationError, deserialize, serialize, to_jsonable
from genlang.types import Content, GenerationConfig, GenLangError, ModelList


@dataclass
class _Point:
    x: int
    y: int


class TestSerialize:
    def test_omits_none_fields(self) -> None:
        text = serialize(GenerationConfig(temperature=0.5))
        assert json.loads(text) == {"temperature": 0.5}

    def test_camel_case_names(self) -> None:
        text = serialize(GenerationConfig(max_output_tokens=10, top_k=3))
        assert json.loads(text) == {"maxOutputTokens": 10, "topK": 3}

    def test_plain_values(self) -> None:
        assert json.loads(serialize({"a": [1, 2]})) == {"a": [1, 2]}

    def test_none_rejected(self) -> None:
        with pytest.raises(ValueError, match="None"):
            serialize(None)

    def test_pretty(self) -> None:
        assert "\n" in serialize(Content.user("hi"), pretty=True)


class TestDeserialize:
    def test_ignores_unknown_fields(self) -> None:
        models = deserialize('{"models": [{"name": "models/x", "shiny": true}]}', ModelList)
        assert models.models[0].name == "models/x"

    def test_accepts_bytes(self) -> None:
        assert deserialize(b'{"x": 1, "y": 2}', _Point) == _Point(1, 2)

    def test_generic_types(self) -> None:
        contents = deserialize('[{"parts": [{"text": "a"}]}]', list[Content])
        assert contents[0].text == "a"

    def test_malformed(self) -> None:
        with pytest.raises(DeserializationError, match="ModelList") as exc_info:
            deserialize('{"models": [', ModelList)
        assert exc_info.value.payload == '{"models": ['
        assert isinstance(exc_info.value, GenLangError)

    def test_null_document(self) -> None:
        with pytest.raises(DeserializationError, match="null"):
            deserialize("null", dict | None)

    def test_wrong_shape(self) -> None:
        with pytest.raises(DeserializationError):
            deserialize('{"models": "nope"}', ModelList)

    def test_payload_truncated(self) -> None:
        with pytest.raises(DeserializationError) as exc_info:
            deserialize("x" * 1000, dict)
        assert len(exc_info.value.payload) == 200


class TestToJsonable:
    def test_models_and_dataclasses(self) -> None:
        assert to_jsonable({"p": _Point(1, 2), "c": Content.user("a")}) == {
            "p": {"x": 1, "y": 2},
            "c": {"role": "user", "parts": [{"text": "a"}]},
        }

    def test_fallback_to_str(self) -> None:
        class Opaque:
            def __str__(self) -> str:
                return "opaque"

        assert to_jsonable([Opaque()]) == ["opaque"]
