"""Wire types for the Generative Language REST API.

Every model mirrors the JSON the service speaks: attribute names are
snake_case in Python and camelCase on the wire, unknown fields are ignored
so newer API revisions still parse, and ``None`` fields are dropped when
serialized (see ``genlang.codec``).
"""

from __future__ import annotations

import base64
import re
from collections.abc import Iterable, Sequence
from enum import StrEnum
from typing import Annotated, Any, ClassVar, Union

from pydantic import (
    BaseModel,
    Discriminator,
    Field,
    Tag,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class GenLangError(Exception):
    """Base exception for all genlang errors."""


class RequestFailedError(GenLangError):
    """Raised when the transport fails or the server answers with a non-2xx status.

    Args:
        message: Server error text or transport error description.
        status_code: HTTP status, or ``None`` when no response was received.
        url: Request URL with the API key redacted.
    """

    def __init__(self, message: str, *, status_code: int | None = None, url: str = "") -> None:
        self.status_code = status_code
        self.url = url
        prefix = f"[{status_code}] " if status_code is not None else ""
        super().__init__(f"{prefix}{message}")


class RequestCanceledError(GenLangError):
    """Raised when a call's cancellation signal fires before a result is delivered."""


# ---------------------------------------------------------------------------
# Base model and enums
# ---------------------------------------------------------------------------


class WireModel(BaseModel):
    """Base for all API records: camelCase aliases, tolerant of unknown fields."""

    model_config = {
        "frozen": True,
        "extra": "ignore",
        "populate_by_name": True,
        "alias_generator": to_camel,
        "protected_namespaces": (),
    }


class OpenEnum(StrEnum):
    """String enum that accepts values added to the API after this release.

    Unknown wire values become pseudo-members instead of failing validation.
    """

    @classmethod
    def _missing_(cls, value: object) -> OpenEnum | None:
        if not isinstance(value, str):
            return None
        member = str.__new__(cls, value)
        member._name_ = value
        member._value_ = value
        return member


class Role(OpenEnum):
    USER = "user"
    MODEL = "model"
    FUNCTION = "function"


class Modality(OpenEnum):
    MODALITY_UNSPECIFIED = "MODALITY_UNSPECIFIED"
    TEXT = "TEXT"
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    DOCUMENT = "DOCUMENT"


class HarmCategory(OpenEnum):
    HARM_CATEGORY_UNSPECIFIED = "HARM_CATEGORY_UNSPECIFIED"
    HARM_CATEGORY_DEROGATORY = "HARM_CATEGORY_DEROGATORY"
    HARM_CATEGORY_TOXICITY = "HARM_CATEGORY_TOXICITY"
    HARM_CATEGORY_VIOLENCE = "HARM_CATEGORY_VIOLENCE"
    HARM_CATEGORY_SEXUAL = "HARM_CATEGORY_SEXUAL"
    HARM_CATEGORY_MEDICAL = "HARM_CATEGORY_MEDICAL"
    HARM_CATEGORY_DANGEROUS = "HARM_CATEGORY_DANGEROUS"
    HARM_CATEGORY_HARASSMENT = "HARM_CATEGORY_HARASSMENT"
    HARM_CATEGORY_HATE_SPEECH = "HARM_CATEGORY_HATE_SPEECH"
    HARM_CATEGORY_SEXUALLY_EXPLICIT = "HARM_CATEGORY_SEXUALLY_EXPLICIT"
    HARM_CATEGORY_DANGEROUS_CONTENT = "HARM_CATEGORY_DANGEROUS_CONTENT"
    HARM_CATEGORY_CIVIC_INTEGRITY = "HARM_CATEGORY_CIVIC_INTEGRITY"


class HarmProbability(OpenEnum):
    HARM_PROBABILITY_UNSPECIFIED = "HARM_PROBABILITY_UNSPECIFIED"
    NEGLIGIBLE = "NEGLIGIBLE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class HarmBlockThreshold(OpenEnum):
    HARM_BLOCK_THRESHOLD_UNSPECIFIED = "HARM_BLOCK_THRESHOLD_UNSPECIFIED"
    BLOCK_LOW_AND_ABOVE = "BLOCK_LOW_AND_ABOVE"
    BLOCK_MEDIUM_AND_ABOVE = "BLOCK_MEDIUM_AND_ABOVE"
    BLOCK_ONLY_HIGH = "BLOCK_ONLY_HIGH"
    BLOCK_NONE = "BLOCK_NONE"
    OFF = "OFF"


class FinishReason(OpenEnum):
    FINISH_REASON_UNSPECIFIED = "FINISH_REASON_UNSPECIFIED"
    STOP = "STOP"
    MAX_TOKENS = "MAX_TOKENS"
    SAFETY = "SAFETY"
    RECITATION = "RECITATION"
    OTHER = "OTHER"


class BlockReason(OpenEnum):
    BLOCK_REASON_UNSPECIFIED = "BLOCK_REASON_UNSPECIFIED"
    SAFETY = "SAFETY"
    OTHER = "OTHER"


# ---------------------------------------------------------------------------
# Content and parts
# ---------------------------------------------------------------------------

_MIME_TYPE_RE = re.compile(r"^[\w.+-]+/[\w.+-]+(\s*;\s*[\w.+-]+=[^;]*)*$")
FUNCTION_NAME_PATTERN = r"^[A-Za-z0-9_-]{1,63}$"


class Blob(WireModel):
    """Raw media bytes. ``data`` is base64 on the wire and ``bytes`` here."""

    mime_type: str
    data: bytes

    @field_validator("mime_type")
    @classmethod
    def _check_mime_type(cls, value: str) -> str:
        if not _MIME_TYPE_RE.match(value):
            raise ValueError(f"invalid media type: {value!r}")
        return value

    @field_validator("data", mode="before")
    @classmethod
    def _decode_base64(cls, value: Any) -> Any:
        if isinstance(value, str):
            return base64.b64decode(value, validate=True)
        return value

    @field_serializer("data")
    def _encode_base64(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")


class FileData(WireModel):
    """URI-based media reference."""

    mime_type: str
    file_uri: str


class FunctionCall(WireModel):
    """A model-issued request to invoke a client-side function.

    Args:
        name: Function name, ``[A-Za-z0-9_-]{1,63}``.
        args: Loosely typed JSON arguments keyed by parameter name.
    """

    name: str = Field(pattern=FUNCTION_NAME_PATTERN)
    args: dict[str, Any] | None = None


class FunctionResponseContent(WireModel):
    # The API repeats the function name inside the response payload.
    name: str
    content: Any = None


class FunctionResponse(WireModel):
    """The result of a ``FunctionCall``, sent back to the model."""

    name: str = Field(pattern=FUNCTION_NAME_PATTERN)
    response: FunctionResponseContent

    @classmethod
    def of(cls, name: str, content: Any) -> FunctionResponse:
        """Build a response, duplicating ``name`` into the payload as the wire expects."""
        return cls(name=name, response=FunctionResponseContent(name=name, content=content))


class TextPart(WireModel):
    kind: ClassVar[str] = "text"
    text: str


class InlineDataPart(WireModel):
    kind: ClassVar[str] = "inline_data"
    inline_data: Blob


class FunctionCallPart(WireModel):
    kind: ClassVar[str] = "function_call"
    function_call: FunctionCall


class FunctionResponsePart(WireModel):
    kind: ClassVar[str] = "function_response"
    function_response: FunctionResponse


class FileDataPart(WireModel):
    kind: ClassVar[str] = "file_data"
    file_data: FileData


class UnsupportedPart(WireModel):
    """A part whose payload this client does not model. Raw fields are kept."""

    model_config = {"extra": "allow"}

    kind: ClassVar[str] = "unsupported"


_PART_FIELDS: tuple[tuple[str, str], ...] = (
    ("text", "text"),
    ("inlineData", "inline_data"),
    ("functionCall", "function_call"),
    ("functionResponse", "function_response"),
    ("fileData", "file_data"),
)


def _part_tag(value: Any) -> str:
    if isinstance(value, dict):
        for wire_name, attr in _PART_FIELDS:
            if wire_name in value or attr in value:
                return attr
        return "unsupported"
    return getattr(value, "kind", "unsupported")


Part = Annotated[
    Union[
        Annotated[TextPart, Tag("text")],
        Annotated[InlineDataPart, Tag("inline_data")],
        Annotated[FunctionCallPart, Tag("function_call")],
        Annotated[FunctionResponsePart, Tag("function_response")],
        Annotated[FileDataPart, Tag("file_data")],
        Annotated[UnsupportedPart, Tag("unsupported")],
    ],
    Discriminator(_part_tag),
]
"""Exactly one payload per part, selected by which wire field is present."""

_PART_TYPES = (
    TextPart,
    InlineDataPart,
    FunctionCallPart,
    FunctionResponsePart,
    FileDataPart,
    UnsupportedPart,
)

PartLike = Union[str, Blob, FileData, FunctionCall, FunctionResponse, BaseModel]


def to_part(value: PartLike) -> Any:
    """Wrap a raw payload (``str``, ``Blob``, ``FunctionCall``, ...) in its part type."""
    if isinstance(value, str):
        return TextPart(text=value)
    if isinstance(value, Blob):
        return InlineDataPart(inline_data=value)
    if isinstance(value, FunctionCall):
        return FunctionCallPart(function_call=value)
    if isinstance(value, FunctionResponse):
        return FunctionResponsePart(function_response=value)
    if isinstance(value, FileData):
        return FileDataPart(file_data=value)
    if isinstance(value, _PART_TYPES):
        return value
    raise TypeError(f"Cannot convert {type(value).__name__} to a content part")


class Content(WireModel):
    """One conversational turn: an optional role and its ordered parts.

    An empty ``parts`` list is allowed here because streamed fragments can
    be empty; the client rejects it when sending.
    """

    role: Role | None = None
    parts: list[Part] = Field(default_factory=list)

    @classmethod
    def of(cls, role: Role | None, *parts: PartLike) -> Content:
        return cls(role=role, parts=[to_part(p) for p in parts])

    @classmethod
    def user(cls, *parts: PartLike) -> Content:
        return cls.of(Role.USER, *parts)

    @classmethod
    def model(cls, *parts: PartLike) -> Content:
        return cls.of(Role.MODEL, *parts)

    @classmethod
    def function(cls, *parts: PartLike) -> Content:
        return cls.of(Role.FUNCTION, *parts)

    @property
    def text(self) -> str:
        """Concatenation of all text parts."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))


def merge_content(a: Content, b: Content) -> Content:
    """Merge a streamed fragment ``b`` into ``a``.

    Text from both contents is joined into a single leading text part;
    non-text parts keep their order after it.

    Raises:
        ValueError: If the roles differ.
    """
    if a.role != b.role:
        raise ValueError(f"Cannot merge content with role {a.role!r} into {b.role!r}")
    texts: list[str] = []
    others: list[Any] = []
    for part in [*a.parts, *b.parts]:
        if isinstance(part, TextPart) and part.text.strip():
            texts.append(part.text)
        else:
            others.append(part)
    parts: list[Any] = [TextPart(text="".join(texts))] if texts else []
    return Content(role=a.role, parts=[*parts, *others])


def append_streamed(history: Sequence[Content], fragment: Content) -> list[Content]:
    """Return ``history`` with ``fragment`` merged into the last turn when roles match."""
    updated = list(history)
    if updated and updated[-1].role == fragment.role:
        updated[-1] = merge_content(updated[-1], fragment)
    else:
        updated.append(fragment)
    return updated


# ---------------------------------------------------------------------------
# Tools and schema
# ---------------------------------------------------------------------------


class SchemaType(OpenEnum):
    TYPE_UNSPECIFIED = "TYPE_UNSPECIFIED"
    STRING = "STRING"
    NUMBER = "NUMBER"
    INTEGER = "INTEGER"
    BOOLEAN = "BOOLEAN"
    ARRAY = "ARRAY"
    OBJECT = "OBJECT"


class Schema(WireModel):
    """OpenAPI 3.0.3 subset describing a value the model may produce.

    ``properties`` is set exactly when ``type`` is OBJECT and ``items``
    exactly when ``type`` is ARRAY.
    """

    type: SchemaType
    format: str | None = None
    description: str | None = None
    nullable: bool | None = None
    enum: list[str] | None = None
    properties: dict[str, Schema] | None = None
    required: list[str] | None = None
    items: Schema | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> Schema:
        is_object = self.type == SchemaType.OBJECT
        is_array = self.type == SchemaType.ARRAY
        if is_object != (self.properties is not None):
            raise ValueError("'properties' must be set if and only if type is OBJECT")
        if is_array != (self.items is not None):
            raise ValueError("'items' must be set if and only if type is ARRAY")
        return self


class FunctionDeclaration(WireModel):
    """A callable function advertised to the model."""

    name: str = Field(pattern=FUNCTION_NAME_PATTERN)
    description: str
    parameters: Schema | None = None


class DynamicRetrievalMode(OpenEnum):
    MODE_UNSPECIFIED = "MODE_UNSPECIFIED"
    MODE_DYNAMIC = "MODE_DYNAMIC"


class DynamicRetrievalConfig(WireModel):
    mode: DynamicRetrievalMode | None = None
    dynamic_threshold: float | None = None


class GoogleSearchRetrieval(WireModel):
    dynamic_retrieval_config: DynamicRetrievalConfig | None = None


class Tool(WireModel):
    """Functions (or built-in retrieval) the model may use."""

    function_declarations: list[FunctionDeclaration] | None = None
    # The documented name is googleSearchRetrieval, but the service rejects it.
    google_search: GoogleSearchRetrieval | None = None

    @classmethod
    def from_functions(cls, declarations: Iterable[FunctionDeclaration]) -> Tool:
        return cls(function_declarations=list(declarations))


class FunctionCallingMode(OpenEnum):
    MODE_UNSPECIFIED = "MODE_UNSPECIFIED"
    AUTO = "AUTO"
    ANY = "ANY"
    NONE = "NONE"


class FunctionCallingConfig(WireModel):
    mode: FunctionCallingMode | None = None
    allowed_function_names: list[str] | None = None


class ToolConfig(WireModel):
    function_calling_config: FunctionCallingConfig | None = None


# ---------------------------------------------------------------------------
# generateContent request / response
# ---------------------------------------------------------------------------


class SafetySetting(WireModel):
    category: HarmCategory
    threshold: HarmBlockThreshold


class SafetyRating(WireModel):
    category: HarmCategory
    probability: HarmProbability
    blocked: bool | None = None


class PrebuiltVoice(OpenEnum):
    """Prebuilt voices for Gemini speech generation."""

    AOEDE = "Aoede"
    CHARON = "Charon"
    FENRIR = "Fenrir"
    KORE = "Kore"
    ORPHEUS = "Orpheus"
    PUCK = "Puck"


class PrebuiltVoiceConfig(WireModel):
    voice_name: str


class VoiceConfig(WireModel):
    prebuilt_voice_config: PrebuiltVoiceConfig | None = None


class SpeechConfig(WireModel):
    voice_config: VoiceConfig | None = None

    @classmethod
    def prebuilt(cls, voice_name: str = PrebuiltVoice.KORE) -> SpeechConfig:
        return cls(voice_config=VoiceConfig(prebuilt_voice_config=PrebuiltVoiceConfig(voice_name=str(voice_name))))


class GenerationConfig(WireModel):
    stop_sequences: list[str] | None = None
    response_mime_type: str | None = None
    response_schema: Schema | None = None
    response_modalities: list[Modality] | None = None
    candidate_count: int | None = None
    max_output_tokens: int | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = None
    top_k: int | None = None
    speech_config: SpeechConfig | None = None


class GenerateContentRequest(WireModel):
    """Body of ``generateContent`` and ``streamGenerateContent``."""

    contents: list[Content]
    tools: list[Tool] | None = None
    tool_config: ToolConfig | None = None
    safety_settings: list[SafetySetting] | None = None
    system_instruction: Content | None = None
    generation_config: GenerationConfig | None = None
    cached_content: str | None = None

    @classmethod
    def from_contents(cls, contents: Iterable[Content], **kwargs: Any) -> GenerateContentRequest:
        return cls(contents=list(contents), **kwargs)

    @classmethod
    def for_speech(
        cls,
        text: str,
        voice_name: str = PrebuiltVoice.KORE,
        *,
        speech_config: SpeechConfig | None = None,
    ) -> GenerateContentRequest:
        """Build a request asking a speech-capable model to read ``text`` aloud.

        The response carries the audio as an inline blob (16-bit PCM, 24 kHz,
        mono); ``GenerateContentResponse.inline_data`` returns it.

        Args:
            text: Text to speak.
            voice_name: Prebuilt voice, ignored when ``speech_config`` is given.
            speech_config: Full speech configuration.
        """
        return cls(
            contents=[Content(parts=[TextPart(text=text)])],
            generation_config=GenerationConfig(
                response_modalities=[Modality.AUDIO],
                speech_config=speech_config or SpeechConfig.prebuilt(voice_name),
            ),
        )


class CitationSource(WireModel):
    start_index: int | None = None
    end_index: int | None = None
    uri: str | None = None
    license: str | None = None


class CitationMetadata(WireModel):
    citation_sources: list[CitationSource] | None = None


class GroundingPassageId(WireModel):
    passage_id: str | None = None
    part_index: int = 0


class SemanticRetrieverChunk(WireModel):
    source: str | None = None
    chunk: str | None = None


class AttributionSourceId(WireModel):
    grounding_passage: GroundingPassageId | None = None
    semantic_retriever_chunk: SemanticRetrieverChunk | None = None


class GroundingAttribution(WireModel):
    source_id: AttributionSourceId | None = None
    content: Content | None = None


class Candidate(WireModel):
    """One alternative response generated by the model."""

    content: Content | None = None
    finish_reason: FinishReason | None = None
    index: int = 0
    safety_ratings: list[SafetyRating] | None = None
    citation_metadata: CitationMetadata | None = None
    token_count: int | None = None
    grounding_attributions: list[GroundingAttribution] | None = None


class PromptFeedback(WireModel):
    block_reason: BlockReason | None = None
    safety_ratings: list[SafetyRating] | None = None


class UsageMetadata(WireModel):
    prompt_token_count: int = 0
    candidates_token_count: int = 0
    total_token_count: int = 0


class GenerateContentResponse(WireModel):
    """A full response, or one fragment of a streamed response."""

    candidates: list[Candidate] = Field(default_factory=list)
    prompt_feedback: PromptFeedback | None = None
    usage_metadata: UsageMetadata | None = None
    model_version: str | None = None

    @property
    def text(self) -> str:
        """Text of the first candidate, or empty string."""
        if not self.candidates or self.candidates[0].content is None:
            return ""
        return self.candidates[0].content.text

    @property
    def inline_data(self) -> Blob | None:
        """First inline blob of the first candidate, e.g. generated speech."""
        if not self.candidates or self.candidates[0].content is None:
            return None
        for part in self.candidates[0].content.parts:
            if isinstance(part, InlineDataPart):
                return part.inline_data
        return None


# ---------------------------------------------------------------------------
# Model listing
# ---------------------------------------------------------------------------


class Model(WireModel):
    """Description of a model available to the API key."""

    name: str
    base_model_id: str | None = None
    version: str | None = None
    display_name: str | None = None
    description: str | None = None
    input_token_limit: int | None = None
    output_token_limit: int | None = None
    supported_generation_methods: list[str] = Field(default_factory=list)
    temperature: float | None = None
    max_temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None


class ModelList(WireModel):
    models: list[Model] = Field(default_factory=list)
    next_page_token: str | None = None


# ---------------------------------------------------------------------------
# Image generation (predict)
# ---------------------------------------------------------------------------


class AspectRatio(OpenEnum):
    RATIO_1_1 = "1:1"
    RATIO_4_3 = "4:3"
    RATIO_3_4 = "3:4"
    RATIO_16_9 = "16:9"
    RATIO_9_16 = "9:16"


class PersonGeneration(OpenEnum):
    DONT_ALLOW = "dont_allow"
    ALLOW_ADULT = "allow_adult"


class ImageInstance(WireModel):
    prompt: str


class ImageParameters(WireModel):
    sample_count: int = Field(default=1, ge=1)
    aspect_ratio: AspectRatio | None = None
    person_generation: PersonGeneration | None = None


class GenerateImageRequest(WireModel):
    instances: list[ImageInstance]
    parameters: ImageParameters = Field(default_factory=ImageParameters)

    @classmethod
    def from_prompt(cls, prompt: str, **parameters: Any) -> GenerateImageRequest:
        return cls(instances=[ImageInstance(prompt=prompt)], parameters=ImageParameters(**parameters))


class Prediction(WireModel):
    mime_type: str
    bytes_base64_encoded: str

    @property
    def image_bytes(self) -> bytes:
        return base64.b64decode(self.bytes_base64_encoded)


class GenerateImageResponse(WireModel):
    predictions: list[Prediction] = Field(default_factory=list)
