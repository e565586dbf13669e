"""Tests for genlang.schema: type schemas, @function_call, FunctionTable."""

import asyncio
import enum
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Optional, TypedDict, Union

import pytest
from pydantic import BaseModel, Field

from genlang.schema import (
    MAX_DEPTH,
    Float32,
    FunctionTable,
    Int32,
    MissingDescriptionError,
    NoCallableFunctionsError,
    SchemaDepthExceededError,
    SchemaError,
    _parse_docstring_args,
    build_function_declarations,
    describe_function,
    function_call,
    schema_of,
)
from genlang.types import GenLangError, Schema, SchemaType

# ---------------------------------------------------------------------------
# Fixture types
# ---------------------------------------------------------------------------


class Color(enum.Enum):
    RED = "r"
    GREEN = "g"


@dataclass
class Address:
    street: str
    zip_code: Optional[str] = None
    tags: list[str] = field(default_factory=list)


class Person(BaseModel):
    name: str = Field(description="Full name")
    age: int
    address: Address | None = None


class Movie(TypedDict):
    title: str
    year: int


@dataclass
class Node:
    value: int
    child: "Node | None" = None


class Plain:
    label: str
    weight: float = 1.0


class WorldBuilder:
    """Target with a mix of marked and unmarked members."""

    @function_call
    def add_cube(self, x: float, y: float, color: Color = Color.RED) -> str:
        """Add a cube to the scene.

        Args:
            x: Horizontal position.
            y: Vertical position.
            color: Cube color.
        """
        return f"cube at {x},{y}"

    @function_call(description="Remove everything")
    def clear(self) -> None:
        pass

    def not_exposed(self) -> None:
        """Plain method."""

    @function_call
    def _private(self) -> None:
        """Hidden."""


class ExtendedBuilder(WorldBuilder):
    @function_call(name="add_sphere")
    def sphere(self, radius: Annotated[float, "Sphere radius"]) -> str:
        """Add a sphere."""
        return f"sphere {radius}"


class NothingMarked:
    def run(self) -> None:
        """Run."""


class Units:
    @staticmethod
    @function_call
    def to_celsius(fahrenheit: float) -> float:
        """Convert Fahrenheit to Celsius."""
        return (fahrenheit - 32) * 5 / 9

    @classmethod
    @function_call
    def scale_name(cls) -> str:
        """Name of the target scale."""
        return "celsius"


# ---------------------------------------------------------------------------
# schema_of
# ---------------------------------------------------------------------------


class TestSchemaOfPrimitives:
    @pytest.mark.parametrize(
        ("annotation", "type_", "fmt"),
        [
            (str, SchemaType.STRING, None),
            (int, SchemaType.INTEGER, "int64"),
            (Int32, SchemaType.INTEGER, "int32"),
            (float, SchemaType.NUMBER, "double"),
            (Float32, SchemaType.NUMBER, "float"),
            (bool, SchemaType.BOOLEAN, None),
            (Any, SchemaType.STRING, None),
        ],
    )
    def test_mapping(self, annotation: Any, type_: SchemaType, fmt: str | None) -> None:
        schema = schema_of(annotation)
        assert schema.type == type_
        assert schema.format == fmt

    def test_enum_uses_member_names(self) -> None:
        schema = schema_of(Color)
        assert schema.type == SchemaType.STRING
        assert schema.enum == ["RED", "GREEN"]

    def test_literal(self) -> None:
        assert schema_of(Literal["a", "b"]).enum == ["a", "b"]

    def test_optional_is_nullable(self) -> None:
        schema = schema_of(Optional[int])
        assert schema.type == SchemaType.INTEGER
        assert schema.nullable is True

    def test_pipe_optional(self) -> None:
        assert schema_of(str | None).nullable is True

    @pytest.mark.parametrize("annotation", [int | str, Optional[int | str], Union[int, float]])
    def test_multi_member_union_rejected(self, annotation: Any) -> None:
        with pytest.raises(SchemaError, match="unions other than Optional"):
            schema_of(annotation)

    def test_annotated_description(self) -> None:
        assert schema_of(Annotated[str, "City name"]).description == "City name"

    def test_description_argument(self) -> None:
        assert schema_of(int, description="count").description == "count"


class TestSchemaOfContainers:
    @pytest.mark.parametrize("annotation", [list[int], tuple[int, ...], set[int], Sequence[int]])
    def test_arrays(self, annotation: Any) -> None:
        schema = schema_of(annotation)
        assert schema.type == SchemaType.ARRAY
        assert schema.items == schema_of(int)

    def test_bare_list(self) -> None:
        assert schema_of(list).items == Schema(type=SchemaType.STRING)

    def test_dict(self) -> None:
        schema = schema_of(dict[str, int])
        assert schema.type == SchemaType.OBJECT
        assert schema.properties == {}

    def test_nested_array(self) -> None:
        schema = schema_of(list[list[str]])
        assert schema.items is not None
        assert schema.items.items == Schema(type=SchemaType.STRING)


class TestSchemaOfObjects:
    def test_dataclass(self) -> None:
        schema = schema_of(Address)
        assert schema.type == SchemaType.OBJECT
        assert schema.properties is not None
        assert set(schema.properties) == {"street", "zip_code", "tags"}
        assert schema.required == ["street"]
        assert schema.properties["zip_code"].nullable is True
        assert schema.properties["tags"].type == SchemaType.ARRAY

    def test_pydantic_model(self) -> None:
        schema = schema_of(Person)
        assert schema.properties is not None
        assert list(schema.properties) == ["name", "age", "address"]
        assert schema.required == ["name", "age"]
        assert schema.properties["name"].description == "Full name"
        assert schema.properties["address"].type == SchemaType.OBJECT

    def test_typed_dict(self) -> None:
        schema = schema_of(Movie)
        assert schema.properties is not None
        assert set(schema.properties) == {"title", "year"}
        assert sorted(schema.required or []) == ["title", "year"]

    def test_plain_class(self) -> None:
        schema = schema_of(Plain)
        assert schema.properties is not None
        assert schema.properties["weight"].type == SchemaType.NUMBER
        assert schema.required == ["label"]

    def test_self_reference_hits_depth_limit(self) -> None:
        with pytest.raises(SchemaDepthExceededError, match=str(MAX_DEPTH)):
            schema_of(Node)

    def test_depth_error_is_schema_error(self) -> None:
        assert issubclass(SchemaDepthExceededError, SchemaError)
        assert issubclass(SchemaError, GenLangError)


# ---------------------------------------------------------------------------
# Docstrings
# ---------------------------------------------------------------------------


class TestDocstringArgs:
    def test_google_style(self) -> None:
        def fn(a: int, b: str) -> None:
            """Summary.

            Args:
                a: The first
                    value, continued.
                b (str): The second.

            Returns:
                Nothing.
            """

        assert _parse_docstring_args(fn) == {"a": "The first value, continued.", "b": "The second."}

    def test_no_docstring(self) -> None:
        def fn() -> None: ...

        assert _parse_docstring_args(fn) == {}


# ---------------------------------------------------------------------------
# @function_call / describe_function
# ---------------------------------------------------------------------------


class TestFunctionCallDecorator:
    def test_bare_returns_function(self) -> None:
        @function_call
        def ping() -> str:
            """Ping."""
            return "pong"

        assert ping() == "pong"
        assert describe_function(ping).name == "ping"

    def test_options(self) -> None:
        @function_call(name="renamed", description="Custom")
        def fn() -> None: ...

        spec = describe_function(fn)
        assert spec.name == "renamed"
        assert spec.description == "Custom"

    def test_missing_description(self) -> None:
        @function_call
        def nodoc() -> None: ...

        with pytest.raises(MissingDescriptionError, match="nodoc"):
            describe_function(nodoc)

    def test_invalid_name(self) -> None:
        @function_call(name="has space", description="x")
        def fn() -> None: ...

        with pytest.raises(SchemaError, match="Invalid function name"):
            describe_function(fn)


class TestDescribeFunction:
    def test_parameters_schema(self) -> None:
        decl = describe_function(WorldBuilder().add_cube).declaration
        assert decl.name == "add_cube"
        assert decl.description == "Add a cube to the scene."
        params = decl.parameters
        assert params is not None
        assert params.type == SchemaType.OBJECT
        assert params.properties is not None
        assert list(params.properties) == ["x", "y", "color"]
        assert params.required == ["x", "y"]
        assert params.properties["x"].description == "Horizontal position."
        assert params.properties["color"].nullable is True
        assert params.properties["color"].enum == ["RED", "GREEN"]

    def test_no_parameters(self) -> None:
        assert describe_function(WorldBuilder().clear).declaration.parameters is None

    def test_cancel_event_not_advertised(self) -> None:
        def wait(seconds: float, cancel: asyncio.Event) -> None:
            """Wait."""

        def poll(cancel: asyncio.Event | None = None) -> None:
            """Poll."""

        params = describe_function(wait).declaration.parameters
        assert params is not None
        assert list(params.properties or {}) == ["seconds"]
        assert params.required == ["seconds"]
        assert describe_function(poll).declaration.parameters is None

    def test_varargs_skipped(self) -> None:
        def fn(a: int, *args: Any, **kwargs: Any) -> None:
            """Varargs."""

        params = describe_function(fn).declaration.parameters
        assert params is not None
        assert list(params.properties or {}) == ["a"]


# ---------------------------------------------------------------------------
# FunctionTable / build_function_declarations
# ---------------------------------------------------------------------------


class TestFunctionTable:
    def test_from_target_collects_marked_public(self) -> None:
        table = FunctionTable.from_target(WorldBuilder())
        assert [spec.name for spec in table] == ["add_cube", "clear"]
        assert "not_exposed" not in table
        assert "_private" not in table

    def test_inherited_base_first(self) -> None:
        table = FunctionTable.from_target(ExtendedBuilder())
        assert [spec.name for spec in table] == ["add_cube", "clear", "add_sphere"]
        radius = table.declarations[2].parameters
        assert radius is not None and radius.properties is not None
        assert radius.properties["radius"].description == "Sphere radius"

    def test_explicit_functions(self) -> None:
        def double(n: int) -> int:
            """Double a number."""
            return n * 2

        table = FunctionTable([double])
        assert len(table) == 1
        spec = table.get("double")
        assert spec is not None
        assert spec.fn(4) == 8
        assert table.get("missing") is None

    def test_duplicate_names(self) -> None:
        def f() -> None:
            """F."""

        with pytest.raises(SchemaError, match="already registered"):
            FunctionTable([f, f])

    def test_no_marked_functions(self) -> None:
        with pytest.raises(NoCallableFunctionsError, match="NothingMarked"):
            FunctionTable.from_target(NothingMarked())

    def test_to_tool(self) -> None:
        tool = FunctionTable.from_target(WorldBuilder()).to_tool()
        assert tool.function_declarations is not None
        assert [d.name for d in tool.function_declarations] == ["add_cube", "clear"]


class TestBuildFunctionDeclarations:
    def test_idempotent(self) -> None:
        assert build_function_declarations(WorldBuilder()) == build_function_declarations(
            WorldBuilder()
        )

    def test_accepts_table(self) -> None:
        table = FunctionTable.from_target(WorldBuilder())
        assert build_function_declarations(table) == table.declarations

    def test_accepts_class_with_static_members(self) -> None:
        assert [d.name for d in build_function_declarations(Units)] == ["to_celsius", "scale_name"]

    def test_class_with_instance_methods_rejected(self) -> None:
        with pytest.raises(SchemaError, match="WorldBuilder.add_cube is an instance method"):
            build_function_declarations(WorldBuilder)
        with pytest.raises(SchemaError, match="instance method"):
            FunctionTable.from_target(WorldBuilder)
