"""Intermediate Representation (IR) for schemas and operation documents.

The IR is produced by the SchemaParser and held by the SchemaRegistry.
Every IR object is frozen: a registry never changes after loading.
Source locations are excluded from equality so two documents compare
equal when they are structurally the same.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from graphql import ListTypeNode, NamedTypeNode, NonNullTypeNode, TypeNode, parse_type

from .errors import SourceLocation

BUILTIN_SCALARS = ("String", "Int", "Float", "Boolean", "ID")


def to_snake_case(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', name)
    return re.sub('([a-z0-9])([A-Z])', r'\1_\2', s1).lower()


def to_pascal_case(name: str) -> str:
    """Convert snake_case or camelCase to PascalCase."""
    snake = to_snake_case(name)
    return "".join(word[:1].upper() + word[1:] for word in snake.split("_"))


class TypeKind(Enum):
    """Kinds of named type definitions."""
    SCALAR = "scalar"
    OBJECT = "object"
    ENUM = "enum"
    INPUT_OBJECT = "input_object"


class OperationKind(Enum):
    QUERY = "query"
    MUTATION = "mutation"


@dataclass(frozen=True)
class TypeRef:
    """A reference to a named type, possibly wrapped in list / non-null.

    ``[User!]!`` is non_null(list(non_null(named("User")))).
    """
    kind: str  # 'named', 'list' or 'non_null'
    name: str | None = None
    of_type: "TypeRef | None" = None

    NAMED = "named"
    LIST = "list"
    NON_NULL = "non_null"

    @classmethod
    def named(cls, name: str) -> "TypeRef":
        return cls(kind=cls.NAMED, name=name)

    @classmethod
    def list_of(cls, of_type: "TypeRef") -> "TypeRef":
        return cls(kind=cls.LIST, of_type=of_type)

    @classmethod
    def non_null(cls, of_type: "TypeRef") -> "TypeRef":
        return cls(kind=cls.NON_NULL, of_type=of_type)

    @classmethod
    def from_node(cls, node: TypeNode) -> "TypeRef":
        """Build a TypeRef from a graphql-core type node."""
        if isinstance(node, NonNullTypeNode):
            return cls.non_null(cls.from_node(node.type))
        if isinstance(node, ListTypeNode):
            return cls.list_of(cls.from_node(node.type))
        assert isinstance(node, NamedTypeNode), f"Expected NamedTypeNode, got {type(node)}"
        return cls.named(node.name.value)

    @classmethod
    def parse(cls, text: str) -> "TypeRef":
        """Parse SDL type notation such as ``[User!]!``."""
        return cls.from_node(parse_type(text))

    @property
    def named_type(self) -> str:
        """The innermost type name, with every wrapper removed."""
        ref = self
        while ref.of_type is not None:
            ref = ref.of_type
        return ref.name

    @property
    def is_non_null(self) -> bool:
        return self.kind == self.NON_NULL

    @property
    def nullable(self) -> "TypeRef":
        """This reference without its outer non-null wrapper."""
        return self.of_type if self.is_non_null else self

    @property
    def is_list(self) -> bool:
        return self.nullable.kind == self.LIST

    def __str__(self) -> str:
        if self.kind == self.NON_NULL:
            return f"{self.of_type}!"
        if self.kind == self.LIST:
            return f"[{self.of_type}]"
        return self.name


@dataclass(frozen=True)
class VariableRef:
    """An argument value that refers to an operation variable."""
    name: str


@dataclass(frozen=True)
class EnumLiteral:
    """An enum value written as a literal in an operation document."""
    name: str


def plain_value(value: Any) -> Any:
    """Replace every EnumLiteral in ``value`` by its name."""
    if isinstance(value, EnumLiteral):
        return value.name
    if isinstance(value, list):
        return [plain_value(v) for v in value]
    if isinstance(value, dict):
        return {k: plain_value(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class ArgumentDefinition:
    """An argument of a field, or a field of an input object."""
    name: str
    type: TypeRef
    default_value: Any = None
    has_default: bool = False
    description: str | None = None
    location: SourceLocation | None = field(default=None, compare=False, repr=False)

    @property
    def is_required(self) -> bool:
        return self.type.is_non_null and not self.has_default

    @property
    def python_name(self) -> str:
        return safe_identifier(to_snake_case(self.name))


@dataclass(frozen=True)
class FieldDefinition:
    """A field on an object type."""
    name: str
    type: TypeRef
    arguments: tuple[ArgumentDefinition, ...] = ()
    description: str | None = None
    location: SourceLocation | None = field(default=None, compare=False, repr=False)

    def argument(self, name: str) -> ArgumentDefinition | None:
        for arg in self.arguments:
            if arg.name == name:
                return arg
        return None


@dataclass(frozen=True)
class TypeDefinition:
    """A named type: scalar, object, enum or input object."""
    name: str
    kind: TypeKind
    fields: tuple[FieldDefinition, ...] = ()
    input_fields: tuple[ArgumentDefinition, ...] = ()
    values: tuple[str, ...] = ()
    description: str | None = None
    location: SourceLocation | None = field(default=None, compare=False, repr=False)

    @property
    def is_leaf(self) -> bool:
        return self.kind in (TypeKind.SCALAR, TypeKind.ENUM)

    @property
    def is_output(self) -> bool:
        return self.kind is not TypeKind.INPUT_OBJECT

    @property
    def is_input(self) -> bool:
        return self.kind is not TypeKind.OBJECT

    def field(self, name: str) -> FieldDefinition | None:
        for type_field in self.fields:
            if type_field.name == name:
                return type_field
        return None

    def input_field(self, name: str) -> ArgumentDefinition | None:
        for input_field in self.input_fields:
            if input_field.name == name:
                return input_field
        return None


@dataclass(frozen=True)
class Selection:
    """A selected field, with its arguments and nested selections."""
    name: str
    alias: str | None = None
    arguments: tuple[tuple[str, Any], ...] = ()
    selections: tuple["Selection", ...] = ()
    location: SourceLocation | None = field(default=None, compare=False, repr=False)

    @property
    def response_key(self) -> str:
        return self.alias or self.name


@dataclass(frozen=True)
class VariableDefinition:
    """A variable declared by an operation, e.g. ``$id: ID!``."""
    name: str
    type: TypeRef
    default_value: Any = None
    has_default: bool = False
    location: SourceLocation | None = field(default=None, compare=False, repr=False)

    @property
    def is_required(self) -> bool:
        return self.type.is_non_null and not self.has_default

    @property
    def python_name(self) -> str:
        return safe_identifier(to_snake_case(self.name))


@dataclass(frozen=True)
class OperationDocument:
    """A named query or mutation with its selection tree."""
    name: str
    kind: OperationKind
    root_type: str
    variables: tuple[VariableDefinition, ...] = ()
    selections: tuple[Selection, ...] = ()
    location: SourceLocation | None = field(default=None, compare=False, repr=False)

    def variable(self, name: str) -> VariableDefinition | None:
        for variable in self.variables:
            if variable.name == name:
                return variable
        return None


# Python reserved keywords that cannot be used as identifiers
PYTHON_KEYWORDS = {
    'False', 'None', 'True', 'and', 'as', 'assert', 'async', 'await',
    'break', 'class', 'continue', 'def', 'del', 'elif', 'else', 'except',
    'finally', 'for', 'from', 'global', 'if', 'import', 'in', 'is',
    'lambda', 'nonlocal', 'not', 'or', 'pass', 'raise', 'return', 'try',
    'while', 'with', 'yield'
}


def safe_identifier(name: str) -> str:
    """Make a name usable as a Python identifier by suffixing keywords with underscore."""
    if name in PYTHON_KEYWORDS:
        return f"{name}_"
    return name
