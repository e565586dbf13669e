"""genlang: async client for the Generative Language and Text-to-Speech REST APIs."""

__version__ = "0.1.0"

from genlang.client import GenerativeAIClient, GenerativeModel
from genlang.codec import DeserializationError, deserialize, serialize
from genlang.config import ClientConfig, ConfigError
from genlang.functions import (
    FunctionCallError,
    MissingArgumentError,
    UnknownFunctionError,
    find_function_call,
    invoke_function_call,
    invoke_function_calls,
)
from genlang.log import LogContext, configure_logging, get_logger
from genlang.schema import (
    FunctionTable,
    build_function_declarations,
    function_call,
    schema_of,
)
from genlang.tts import TextToSpeech
from genlang.types import (
    Blob,
    Content,
    FunctionCall,
    FunctionResponse,
    GenerateContentRequest,
    GenerateContentResponse,
    GenerateImageRequest,
    GenLangError,
    PrebuiltVoice,
    RequestCanceledError,
    RequestFailedError,
    Role,
    SpeechConfig,
    Tool,
    append_streamed,
)

__all__ = [
    "Blob",
    "ClientConfig",
    "ConfigError",
    "Content",
    "DeserializationError",
    "FunctionCall",
    "FunctionCallError",
    "FunctionResponse",
    "FunctionTable",
    "GenLangError",
    "GenerateContentRequest",
    "GenerateContentResponse",
    "GenerateImageRequest",
    "GenerativeAIClient",
    "GenerativeModel",
    "LogContext",
    "MissingArgumentError",
    "PrebuiltVoice",
    "RequestCanceledError",
    "RequestFailedError",
    "Role",
    "SpeechConfig",
    "TextToSpeech",
    "Tool",
    "UnknownFunctionError",
    "append_streamed",
    "build_function_declarations",
    "configure_logging",
    "deserialize",
    "find_function_call",
    "function_call",
    "get_logger",
    "invoke_function_call",
    "invoke_function_calls",
    "schema_of",
    "serialize",
]
