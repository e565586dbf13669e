"""Dispatch model-issued function calls to Python callables.

Resolution, argument binding and coercion are explicit:

* the name is looked up in a ``FunctionTable`` or on the target's public
  attributes;
* each declared parameter is taken from ``args`` (coerced to its
  annotation), else from its default, else ``MissingArgumentError``;
* the callable runs inline and coroutine results are awaited. Exceptions
  it raises propagate to the caller.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import inspect
import types
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Annotated, Any, Literal, Union, get_args, get_origin, get_type_hints

from genlang.codec import DeserializationError, deserialize, serialize, to_jsonable
from genlang.log import get_logger
from genlang.schema import FunctionTable, is_cancel_parameter
from genlang.types import (
    Content,
    FunctionCall,
    FunctionCallPart,
    FunctionResponse,
    GenLangError,
    RequestCanceledError,
)

_log = get_logger(__name__)


class FunctionCallError(GenLangError):
    """Base for errors raised while dispatching a function call."""


class UnknownFunctionError(FunctionCallError):
    """Raised when the called name does not resolve on the target.

    Args:
        target_type: Name of the target's type.
        name: The function name the model asked for.
    """

    def __init__(self, target_type: str, name: str) -> None:
        self.target_type = target_type
        self.name = name
        super().__init__(f"{target_type} has no callable function '{name}'")


class MissingArgumentError(FunctionCallError):
    """Raised when a parameter without a default is absent from the call's args."""

    def __init__(self, function: str, parameter: str) -> None:
        self.function = function
        self.parameter = parameter
        super().__init__(f"Function '{function}' is missing required argument '{parameter}'")


class ArgumentCoercionError(FunctionCallError):
    """Raised when a JSON argument cannot be converted to the parameter's type."""


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

_BOOL_STRINGS = {"true": True, "false": False}

_SEQUENCE_TYPES: dict[Any, type] = {
    list: list,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
    Sequence: list,
    Iterable: list,
}


def _type_name(annotation: Any) -> str:
    return getattr(annotation, "__name__", repr(annotation))


def _coerce_enum(value: Any, enum_type: type[enum.Enum]) -> enum.Enum:
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str) and value in enum_type.__members__:
        return enum_type[value]
    try:
        return enum_type(value)
    except ValueError as exc:
        raise ArgumentCoercionError(
            f"{value!r} is not a member of {enum_type.__name__}"
        ) from exc


def coerce_argument(value: Any, annotation: Any) -> Any:
    """Convert a loosely typed JSON value to ``annotation``.

    Enums accept a member name or value. Numbers and booleans also accept
    their string forms (``"3"``, ``"2.5"``, ``"true"``) and ``int`` accepts
    integral floats. Containers are converted element-wise
    and anything else is decoded through the JSON codec.

    Args:
        value: The JSON value (``str``, ``int``, ``float``, ``bool``,
            ``list``, ``dict`` or ``None``).
        annotation: The parameter's type.

    Returns:
        The converted value.

    Raises:
        ArgumentCoercionError: If ``value`` cannot represent ``annotation``.
    """
    if annotation is Any or annotation is inspect.Parameter.empty:
        return value

    origin = get_origin(annotation)
    if origin is Annotated:
        return coerce_argument(value, get_args(annotation)[0])

    if origin is Union or isinstance(annotation, types.UnionType):
        members = get_args(annotation)
        if value is None:
            if type(None) in members:
                return None
            raise ArgumentCoercionError(f"None is not a valid {annotation!r}")
        errors: list[str] = []
        for member in members:
            if member is type(None):
                continue
            try:
                return coerce_argument(value, member)
            except ArgumentCoercionError as exc:
                errors.append(str(exc))
        raise ArgumentCoercionError(f"{value!r} matches no member of {annotation!r}: {errors}")

    if value is None:
        raise ArgumentCoercionError(f"None is not a valid {_type_name(annotation)}")

    if annotation is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _BOOL_STRINGS:
            return _BOOL_STRINGS[value.strip().lower()]
        raise ArgumentCoercionError(f"Expected a boolean, got {value!r}")
    if annotation is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError as exc:
                raise ArgumentCoercionError(f"Expected an integer, got {value!r}") from exc
        raise ArgumentCoercionError(f"Expected an integer, got {value!r}")
    if annotation is float:
        if isinstance(value, int | float) and not isinstance(value, bool):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError as exc:
                raise ArgumentCoercionError(f"Expected a number, got {value!r}") from exc
        raise ArgumentCoercionError(f"Expected a number, got {value!r}")
    if annotation is str:
        if isinstance(value, str):
            return value
        if isinstance(value, int | float):
            return str(value).lower() if isinstance(value, bool) else str(value)
        raise ArgumentCoercionError(f"Expected a string, got {value!r}")

    if isinstance(annotation, type) and issubclass(annotation, enum.Enum):
        return _coerce_enum(value, annotation)

    if origin is Literal:
        if value in get_args(annotation):
            return value
        raise ArgumentCoercionError(f"{value!r} is not one of {get_args(annotation)}")

    container = _SEQUENCE_TYPES.get(origin or annotation)
    if container is not None:
        if not isinstance(value, list | tuple):
            raise ArgumentCoercionError(f"Expected an array, got {value!r}")
        item_args = [a for a in get_args(annotation) if a is not Ellipsis]
        if origin is tuple and len(item_args) > 1:
            if len(item_args) != len(value):
                raise ArgumentCoercionError(
                    f"Expected {len(item_args)} items for {annotation!r}, got {len(value)}"
                )
            return tuple(coerce_argument(v, t) for v, t in zip(value, item_args, strict=True))
        item_type = item_args[0] if item_args else Any
        return container(coerce_argument(v, item_type) for v in value)

    if origin in (dict, Mapping) or annotation in (dict, Mapping):
        if not isinstance(value, dict):
            raise ArgumentCoercionError(f"Expected an object, got {value!r}")
        args = get_args(annotation)
        value_type = args[1] if len(args) == 2 else Any
        return {k: coerce_argument(v, value_type) for k, v in value.items()}

    # Models, dataclasses and anything else: decode from the JSON value.
    if dataclasses.is_dataclass(annotation) or isinstance(annotation, type):
        try:
            return deserialize(serialize(value), annotation)
        except DeserializationError as exc:
            raise ArgumentCoercionError(
                f"Cannot convert {value!r} to {_type_name(annotation)}: {exc}"
            ) from exc
    raise ArgumentCoercionError(f"Unsupported parameter type {annotation!r}")


# ---------------------------------------------------------------------------
# Resolution and binding
# ---------------------------------------------------------------------------


def resolve_function(target: Any, name: str) -> Callable[..., Any]:
    """Find the callable named ``name`` on ``target``.

    Args:
        target: A ``FunctionTable``, or any object, class or module.
        name: Function name from the model's ``FunctionCall``.

    Raises:
        UnknownFunctionError: If ``name`` is unknown, private or not callable.
        FunctionCallError: If ``target`` is a class and ``name`` is an
            instance method.
    """
    if isinstance(target, FunctionTable):
        spec = target.get(name)
        if spec is None:
            raise UnknownFunctionError("FunctionTable", name)
        return spec.fn

    target_type = target.__name__ if isinstance(target, type | types.ModuleType) else type(target).__name__
    if name.startswith("_"):
        raise UnknownFunctionError(target_type, name)
    fn = getattr(target, name, None)
    if fn is None or not callable(fn) or isinstance(fn, type):
        raise UnknownFunctionError(target_type, name)
    if isinstance(target, type) and inspect.isfunction(inspect.getattr_static(target, name)):
        raise FunctionCallError(
            f"{target_type}.{name} is an instance method; call it on an instance of {target_type}"
        )
    return fn


def bind_arguments(
    fn: Callable[..., Any],
    args: Mapping[str, Any],
    cancel: asyncio.Event | None = None,
) -> tuple[list[Any], dict[str, Any]]:
    """Build ``(positional, keyword)`` arguments for ``fn`` from a call's args.

    Parameters annotated ``asyncio.Event`` receive ``cancel`` rather than a
    model-supplied value; without one they get their default, or a fresh
    event that is never set.

    Raises:
        MissingArgumentError: A parameter without a default is absent.
        ArgumentCoercionError: A value does not convert to its parameter type.
    """
    fn_name = getattr(fn, "__name__", repr(fn))
    sig = inspect.signature(fn)
    try:
        hints = get_type_hints(fn, include_extras=True)
    except Exception:
        hints = {}

    positional: list[Any] = []
    keyword: dict[str, Any] = {}
    declared: set[str] = set()

    for pname, param in sig.parameters.items():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        hint = hints.get(pname, param.annotation)
        if is_cancel_parameter(hint):
            if cancel is not None:
                value = cancel
            elif param.default is not inspect.Parameter.empty:
                value = param.default
            else:
                value = asyncio.Event()
        elif pname in args:
            declared.add(pname)
            try:
                value = coerce_argument(args[pname], hint)
            except ArgumentCoercionError as exc:
                raise ArgumentCoercionError(
                    f"Argument '{pname}' of '{fn_name}': {exc}"
                ) from exc
        elif param.default is not inspect.Parameter.empty:
            declared.add(pname)
            value = param.default
        else:
            raise MissingArgumentError(fn_name, pname)

        if param.kind is param.POSITIONAL_ONLY:
            positional.append(value)
        else:
            keyword[pname] = value

    extra = sorted(set(args) - declared)
    if extra:
        _log.debug("Ignoring undeclared arguments for '%s': %s", fn_name, extra)
    return positional, keyword


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


def _check_canceled(cancel: asyncio.Event | None, name: str) -> None:
    if cancel is not None and cancel.is_set():
        raise RequestCanceledError(f"Function call '{name}' canceled")


async def invoke_function_call(
    target: Any, call: FunctionCall, cancel: asyncio.Event | None = None
) -> Any:
    """Invoke the function ``call`` names on ``target`` and return its result.

    Args:
        target: A ``FunctionTable``, or any object, class or module.
        call: The model's function call.
        cancel: Optional event; passed to ``asyncio.Event`` parameters and
            checked before the call and after an awaited result.

    Returns:
        Whatever the function returns (awaited if it is awaitable).

    Raises:
        UnknownFunctionError: If the name does not resolve.
        MissingArgumentError: If a required argument is absent.
        ArgumentCoercionError: If an argument has the wrong shape.
        RequestCanceledError: If ``cancel`` is set.
        Exception: Anything the function itself raises, unchanged.
    """
    fn = resolve_function(target, call.name)
    positional, keyword = bind_arguments(fn, call.args or {}, cancel)
    _check_canceled(cancel, call.name)
    _log.debug("Invoking %s(%s)", call.name, ", ".join(keyword))
    result = fn(*positional, **keyword)
    if inspect.isawaitable(result):
        result = await result
        _check_canceled(cancel, call.name)
    return result


def find_function_call(content: Content | None) -> FunctionCall | None:
    """Return the function call carried by the *first* part of ``content``.

    Calls in later parts are not discovered; use
    ``contains_function_call`` or ``invoke_function_calls`` to scan all parts.
    """
    if content is None or not content.parts:
        return None
    first = content.parts[0]
    if isinstance(first, FunctionCallPart):
        return first.function_call
    return None


def contains_function_call(content: Content | None) -> bool:
    """Whether any part of ``content`` is a function call."""
    if content is None:
        return False
    return any(isinstance(p, FunctionCallPart) for p in content.parts)


async def invoke_function_calls(
    target: Any, content: Content, cancel: asyncio.Event | None = None
) -> Content:
    """Answer every function call in ``content``.

    Each call is invoked in order. A call that raises is answered with an
    ``{"error": <type>, "message": <text>}`` payload instead, so the model
    can see what went wrong. Cancellation is not answered; it stops the
    remaining calls.

    Returns:
        A ``function``-role ``Content`` with one ``FunctionResponse`` per call.

    Raises:
        ValueError: If ``content`` holds no function call.
        RequestCanceledError: If ``cancel`` is set before all calls finish.
    """
    calls = [p.function_call for p in content.parts if isinstance(p, FunctionCallPart)]
    if not calls:
        raise ValueError("Content has no function call parts")

    responses: list[FunctionResponse] = []
    for call in calls:
        _check_canceled(cancel, call.name)
        try:
            result = await invoke_function_call(target, call, cancel)
        except RequestCanceledError:
            raise
        except Exception as exc:
            _log.error("Function call '%s' failed: %s", call.name, exc)
            result = {"error": type(exc).__name__, "message": str(exc)}
        responses.append(FunctionResponse.of(call.name, to_jsonable(result)))
    return Content.function(*responses)
