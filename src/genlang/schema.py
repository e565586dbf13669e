"""Function declarations: schema generation, ``@function_call``, and ``FunctionTable``."""

from __future__ import annotations

import dataclasses
import enum
import asyncio
import inspect
import re
import types
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import (
    Annotated,
    Any,
    ClassVar,
    Literal,
    Union,
    get_args,
    get_origin,
    get_type_hints,
    is_typeddict,
    overload,
)

from pydantic import BaseModel

from genlang.types import (
    FUNCTION_NAME_PATTERN,
    FunctionDeclaration,
    GenLangError,
    Schema,
    SchemaType,
    Tool,
)

MAX_DEPTH = 10
"""Deepest nesting level ``schema_of`` will descend before giving up."""

_FUNCTION_ATTR = "__genlang_function__"


class SchemaError(GenLangError):
    """Raised when a function or type cannot be described to the model."""


class SchemaDepthExceededError(SchemaError):
    """Raised when a type nests deeper than ``MAX_DEPTH`` (usually a self-reference)."""


class MissingDescriptionError(SchemaError):
    """Raised when a call-eligible function has no description."""


class NoCallableFunctionsError(SchemaError):
    """Raised when a target exposes no ``@function_call`` functions."""


@dataclass(frozen=True)
class Format:
    """``Annotated`` marker overriding the schema ``format`` of a number."""

    value: str


Float32 = Annotated[float, Format("float")]
Int32 = Annotated[int, Format("int32")]

_SEQUENCE_ORIGINS = (list, tuple, set, frozenset, Sequence, Iterable)
_MAPPING_ORIGINS = (dict, Mapping)


# ---------------------------------------------------------------------------
# Docstring helpers (private)
# ---------------------------------------------------------------------------


def _extract_description(fn: Callable[..., Any]) -> str:
    """Return the first non-empty docstring line, or empty string."""
    doc = inspect.getdoc(fn)
    if not doc:
        return ""
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped
    return ""


def _parse_docstring_args(fn: Callable[..., Any]) -> dict[str, str]:
    """Parse the Google-style ``Args:`` section into ``{param: description}``."""
    doc = inspect.getdoc(fn)
    if not doc:
        return {}

    result: dict[str, str] = {}
    in_args = False
    current_name: str | None = None
    current_desc: list[str] = []

    for line in doc.splitlines():
        stripped = line.strip()

        if stripped in ("Args:", "Arguments:", "Parameters:"):
            in_args = True
            continue

        # Another top-level section ends Args:
        if in_args and re.match(r"^[A-Z]\w*:\s*$", stripped):
            break

        if not in_args:
            continue

        # "name: text" or "name (type): text"
        match = re.match(r"^(\w+)(?:\s*\([^)]*\))?\s*:\s*(.*)", stripped)
        if match:
            if current_name is not None:
                result[current_name] = " ".join(current_desc).strip()
            current_name = match.group(1)
            current_desc = [match.group(2)] if match.group(2) else []
        elif current_name is not None and stripped:
            current_desc.append(stripped)

    if current_name is not None:
        result[current_name] = " ".join(current_desc).strip()
    return result


# ---------------------------------------------------------------------------
# Type -> Schema
# ---------------------------------------------------------------------------


def _object_fields(cls: type) -> list[tuple[str, Any, bool, str | None]]:
    """Return ``(name, annotation, required, description)`` for each field of ``cls``."""
    if isinstance(cls, type) and issubclass(cls, BaseModel):
        return [
            (name, info.annotation, info.is_required(), info.description)
            for name, info in cls.model_fields.items()
        ]

    hints = get_type_hints(cls, include_extras=True)
    if dataclasses.is_dataclass(cls):
        fields = []
        for f in dataclasses.fields(cls):
            has_default = (
                f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING
            )
            fields.append((f.name, hints.get(f.name, Any), not has_default, None))
        return fields
    if is_typeddict(cls):
        required_keys = getattr(cls, "__required_keys__", frozenset(hints))
        return [(name, hint, name in required_keys, None) for name, hint in hints.items()]
    return [
        (name, hint, not hasattr(cls, name), None)
        for name, hint in hints.items()
        if get_origin(hint) is not ClassVar and not name.startswith("_")
    ]


def schema_of(annotation: Any, *, description: str | None = None, depth: int = 0) -> Schema:
    """Describe a Python type annotation as a ``Schema``.

    | Python type                           | Schema type | format   |
    |---------------------------------------|-------------|----------|
    | ``str``, ``Literal["a", ...]``        | STRING      |          |
    | ``Float32``                           | NUMBER      | float    |
    | ``float``                             | NUMBER      | double   |
    | ``Int32``                             | INTEGER     | int32    |
    | ``int``                               | INTEGER     | int64    |
    | ``bool``                              | BOOLEAN     |          |
    | ``list[T]``, ``tuple``, ``set``       | ARRAY       |          |
    | ``Enum`` subclass                     | STRING      | (enum)   |
    | dataclass, pydantic model, dict, ...  | OBJECT      |          |

    ``X | None`` is described as ``X`` with ``nullable`` set. Other unions are
    rejected. ``Annotated`` string metadata becomes the description.

    Args:
        annotation: The type to describe.
        description: Description attached to the top-level schema.
        depth: Current nesting level.

    Returns:
        The schema.

    Raises:
        SchemaDepthExceededError: If nesting exceeds ``MAX_DEPTH``.
        SchemaError: If ``annotation`` is a union of several non-None types.
    """
    if depth > MAX_DEPTH:
        raise SchemaDepthExceededError(
            f"Schema nesting exceeds {MAX_DEPTH} levels at {annotation!r}; "
            "is the type self-referential?"
        )

    origin = get_origin(annotation)

    if origin is Annotated:
        base, *metadata = get_args(annotation)
        fmt: str | None = None
        for item in metadata:
            if isinstance(item, Format):
                fmt = item.value
            elif isinstance(item, str):
                description = item
        schema = schema_of(base, description=description, depth=depth)
        if fmt is not None:
            schema = schema.model_copy(update={"format": fmt})
        return schema

    if origin is Union or isinstance(annotation, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if not args:
            return Schema(type=SchemaType.STRING, description=description)
        if len(args) > 1:
            raise SchemaError(
                f"Cannot describe {annotation!r}: unions other than Optional[X] are not supported"
            )
        schema = schema_of(args[0], description=description, depth=depth)
        if len(args) < len(get_args(annotation)):
            schema = schema.model_copy(update={"nullable": True})
        return schema

    if annotation is Any or annotation is inspect.Parameter.empty:
        return Schema(type=SchemaType.STRING, description=description)
    if annotation is bool:
        return Schema(type=SchemaType.BOOLEAN, description=description)
    if annotation is str:
        return Schema(type=SchemaType.STRING, description=description)
    if annotation is int:
        return Schema(type=SchemaType.INTEGER, format="int64", description=description)
    if annotation is float:
        return Schema(type=SchemaType.NUMBER, format="double", description=description)
    if isinstance(annotation, type) and issubclass(annotation, enum.Enum):
        return Schema(
            type=SchemaType.STRING,
            description=description,
            enum=[member.name for member in annotation],
        )
    if origin is Literal:
        return Schema(
            type=SchemaType.STRING,
            description=description,
            enum=[str(v) for v in get_args(annotation)],
        )

    if origin in _SEQUENCE_ORIGINS or annotation in (list, tuple, set, frozenset):
        args = [a for a in get_args(annotation) if a is not Ellipsis]
        item = args[0] if args else Any
        return Schema(
            type=SchemaType.ARRAY,
            description=description,
            items=schema_of(item, depth=depth + 1),
        )

    if origin in _MAPPING_ORIGINS or annotation is dict:
        return Schema(type=SchemaType.OBJECT, description=description, properties={})

    # Everything else is an object described by its fields.
    properties: dict[str, Schema] = {}
    required: list[str] = []
    if isinstance(annotation, type) and annotation is not object:
        for name, hint, is_required, field_desc in _object_fields(annotation):
            properties[name] = schema_of(hint, description=field_desc, depth=depth + 1)
            if is_required:
                required.append(name)
    return Schema(
        type=SchemaType.OBJECT,
        description=description,
        properties=properties,
        required=required or None,
    )


# ---------------------------------------------------------------------------
# @function_call marker
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _FunctionMarker:
    name: str | None
    description: str | None


@overload
def function_call(fn: Callable[..., Any], /) -> Callable[..., Any]: ...


@overload
def function_call(
    fn: None = None,
    /,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]: ...


def function_call(
    fn: Callable[..., Any] | None = None,
    /,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Callable[..., Any]:
    """Mark a function or method as callable by the model.

    Supports bare ``@function_call``, ``@function_call()`` and
    ``@function_call(description="...")``. The function itself is returned
    unchanged, so it can still be called directly.

    Args:
        fn: The function (when used as bare ``@function_call``).
        name: Override the advertised name (defaults to ``fn.__name__``).
        description: Override the description (defaults to the docstring).
    """
    marker = _FunctionMarker(name=name, description=description)

    def mark(func: Callable[..., Any]) -> Callable[..., Any]:
        setattr(func, _FUNCTION_ATTR, marker)
        return func

    if fn is not None:
        return mark(fn)
    return mark


def _marker_of(obj: Any) -> _FunctionMarker | None:
    if isinstance(obj, staticmethod | classmethod):
        obj = obj.__func__
    return getattr(obj, _FUNCTION_ATTR, None)


# ---------------------------------------------------------------------------
# FunctionSpec / FunctionTable
# ---------------------------------------------------------------------------


def is_cancel_parameter(annotation: Any) -> bool:
    """Whether a parameter annotated ``annotation`` receives the dispatch cancel event.

    Such parameters (``asyncio.Event`` or ``asyncio.Event | None``) are
    filled by the dispatcher and never advertised to the model.
    """
    if get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]
    if get_origin(annotation) is Union or isinstance(annotation, types.UnionType):
        members = [a for a in get_args(annotation) if a is not type(None)]
        if len(members) != 1:
            return False
        annotation = members[0]
    return annotation is asyncio.Event


@dataclass(frozen=True)
class FunctionSpec:
    """Everything needed to advertise and call one function.

    Args:
        name: Name the model calls the function by.
        description: What the function does.
        fn: The callable (bound, for methods).
        declaration: The ``FunctionDeclaration`` sent to the model.
    """

    name: str
    description: str
    fn: Callable[..., Any]
    declaration: FunctionDeclaration


def describe_function(
    fn: Callable[..., Any],
    *,
    name: str | None = None,
    description: str | None = None,
) -> FunctionSpec:
    """Build a ``FunctionSpec`` from a callable's signature, hints and docstring.

    Explicit arguments win over ``@function_call`` options, which win over
    the function's own name and docstring.

    Raises:
        MissingDescriptionError: If no description can be found.
        SchemaError: If the name is not a valid function name.
        SchemaDepthExceededError: If a parameter type nests too deeply.
    """
    marker = _marker_of(fn)
    name = name or (marker.name if marker else None) or fn.__name__
    description = (
        description or (marker.description if marker else None) or _extract_description(fn)
    )
    if not description:
        raise MissingDescriptionError(
            f"Function '{name}' has no description; add a docstring or "
            "pass description= to @function_call"
        )
    if not re.match(FUNCTION_NAME_PATTERN, name):
        raise SchemaError(f"Invalid function name {name!r}; must match {FUNCTION_NAME_PATTERN}")

    sig = inspect.signature(fn)
    try:
        hints = get_type_hints(fn, include_extras=True)
    except Exception:
        hints = {}
    doc_args = _parse_docstring_args(fn)

    properties: dict[str, Schema] = {}
    required: list[str] = []
    for pname, param in sig.parameters.items():
        if pname in ("self", "cls"):
            continue
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        if is_cancel_parameter(hints.get(pname)):
            continue
        prop = schema_of(hints.get(pname, Any), description=doc_args.get(pname))
        if param.default is inspect.Parameter.empty:
            required.append(pname)
        else:
            prop = prop.model_copy(update={"nullable": True})
        properties[pname] = prop

    parameters = (
        Schema(type=SchemaType.OBJECT, properties=properties, required=required or None)
        if properties
        else None
    )
    declaration = FunctionDeclaration(name=name, description=description, parameters=parameters)
    return FunctionSpec(name=name, description=description, fn=fn, declaration=declaration)


class FunctionTable:
    """Registration table of functions the model may call.

    Built once, from plain callables or from the ``@function_call`` members
    of an object, and read-only afterwards.

    Args:
        functions: Callables to register, in declaration order.

    Raises:
        SchemaError: On duplicate names or invalid declarations.
    """

    def __init__(self, functions: Iterable[Callable[..., Any]] = ()) -> None:
        self._specs: dict[str, FunctionSpec] = {}
        for fn in functions:
            spec = describe_function(fn)
            if spec.name in self._specs:
                raise SchemaError(f"Function '{spec.name}' is already registered")
            self._specs[spec.name] = spec

    @classmethod
    def from_target(cls, target: Any) -> FunctionTable:
        """Collect every ``@function_call`` member of ``target``.

        ``target`` may be an instance, a class or a module. Members are
        taken in definition order, base classes first. A class target may
        only expose static and class methods.

        Raises:
            NoCallableFunctionsError: If ``target`` has no marked members.
            SchemaError: If ``target`` is a class with a marked instance method.
        """
        if isinstance(target, types.ModuleType):
            namespaces: list[Mapping[str, Any]] = [vars(target)]
        else:
            owner = target if isinstance(target, type) else type(target)
            namespaces = [vars(klass) for klass in reversed(owner.__mro__)]

        names: dict[str, Any] = {}
        for namespace in namespaces:
            for attr, raw in namespace.items():
                if attr.startswith("_"):
                    continue
                if _marker_of(raw) is not None:
                    names[attr] = raw
                else:
                    # An override without the marker hides the base declaration.
                    names.pop(attr, None)
        if not names:
            kind = target.__name__ if isinstance(target, type | types.ModuleType) else type(target).__name__
            raise NoCallableFunctionsError(f"No @function_call functions found on {kind}")
        if isinstance(target, type):
            for attr, raw in names.items():
                if not isinstance(raw, staticmethod | classmethod):
                    raise SchemaError(
                        f"{target.__name__}.{attr} is an instance method; "
                        f"pass an instance of {target.__name__} instead of the class"
                    )
        return cls(getattr(target, attr) for attr in names)

    def get(self, name: str) -> FunctionSpec | None:
        return self._specs.get(name)

    @property
    def declarations(self) -> list[FunctionDeclaration]:
        return [spec.declaration for spec in self._specs.values()]

    def to_tool(self) -> Tool:
        """Wrap all declarations in a single ``Tool``."""
        return Tool.from_functions(self.declarations)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __iter__(self) -> Iterator[FunctionSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def __repr__(self) -> str:
        return f"FunctionTable({list(self._specs)!r})"


def build_function_declarations(target: Any) -> list[FunctionDeclaration]:
    """Return declarations for every call-eligible function on ``target``.

    Args:
        target: A ``FunctionTable``, or an object, class or module with
            ``@function_call`` members.

    Raises:
        NoCallableFunctionsError: If nothing on ``target`` is marked.
        MissingDescriptionError: If a marked function has no description.
        SchemaDepthExceededError: If a parameter type nests too deeply.
    """
    if isinstance(target, FunctionTable):
        return target.declarations
    return FunctionTable.from_target(target).declarations
