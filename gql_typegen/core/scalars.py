"""Scalar handlers for code generation and execution.

A handler says how a GraphQL scalar maps to Python: the type used in
generated models (``python_type`` / ``runtime_type``) and how values are
serialized by the dispatcher and deserialized by clients.

Example usage:
    from gql_typegen.core.scalars import ScalarRegistry

    class MoneyHandler:
        python_type = "Decimal"
        import_statement = "from decimal import Decimal"
        runtime_type = Decimal

        def serialize(self, value):
            return str(value)

        def deserialize(self, value):
            return Decimal(value)

    registry = ScalarRegistry()
    registry.register("Money", MoneyHandler())
"""

from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from graphql import GRAPHQL_MAX_INT, GRAPHQL_MIN_INT, GraphQLError, specified_scalar_types

MAX_INT = GRAPHQL_MAX_INT
MIN_INT = GRAPHQL_MIN_INT


@runtime_checkable
class ScalarHandler(Protocol):
    """Protocol for scalar handlers.

    Attributes:
        python_type: The Python type name used in rendered code (e.g., "datetime")
        import_statement: The import needed for this type, or "" for builtins
        runtime_type: The Python type used in runtime-built models
    """

    python_type: str
    import_statement: str
    runtime_type: Any

    def serialize(self, value: Any) -> Any:
        """Convert a resolver value to its JSON-serializable form."""
        ...

    def deserialize(self, value: Any) -> Any:
        """Convert a JSON value to the Python type."""
        ...


class _SpecifiedScalarHandler:
    """Built-in scalar; leaf values are coerced by graphql-core's serializers."""

    scalar_name = ""

    def serialize(self, value: Any) -> Any:
        try:
            return specified_scalar_types[self.scalar_name].serialize(value)
        except GraphQLError as e:
            raise TypeError(e.message) from e

    def deserialize(self, value: Any) -> Any:
        return value


class StringHandler(_SpecifiedScalarHandler):
    python_type = "str"
    import_statement = ""
    runtime_type = str
    scalar_name = "String"


class IntHandler(_SpecifiedScalarHandler):
    python_type = "int"
    import_statement = ""
    runtime_type = int
    scalar_name = "Int"


class FloatHandler(_SpecifiedScalarHandler):
    python_type = "float"
    import_statement = ""
    runtime_type = float
    scalar_name = "Float"


class BooleanHandler(_SpecifiedScalarHandler):
    python_type = "bool"
    import_statement = ""
    runtime_type = bool
    scalar_name = "Boolean"


class IDHandler(_SpecifiedScalarHandler):
    python_type = "str"
    import_statement = ""
    runtime_type = str
    scalar_name = "ID"

    def deserialize(self, value: Any) -> str:
        return str(value)


class DateTimeHandler:
    """Handler for DateTime scalars using ISO 8601 format."""

    python_type = "datetime"
    import_statement = "from datetime import datetime"
    runtime_type = datetime

    def serialize(self, value: datetime) -> str:
        """Convert datetime to ISO 8601 string."""
        return value.isoformat()

    def deserialize(self, value: str) -> datetime:
        """Parse ISO 8601 string to datetime."""
        return datetime.fromisoformat(value.replace("Z", "+00:00"))


class DateHandler:
    """Handler for Date scalars using ISO 8601 date format."""

    python_type = "date"
    import_statement = "from datetime import date"
    runtime_type = date

    def serialize(self, value: date) -> str:
        return value.isoformat()

    def deserialize(self, value: str) -> date:
        return date.fromisoformat(value)


class UUIDHandler:
    python_type = "UUID"
    import_statement = "from uuid import UUID"
    runtime_type = UUID

    def serialize(self, value: UUID) -> str:
        return str(value)

    def deserialize(self, value: str) -> UUID:
        return UUID(value)


class JSONHandler:
    """Handler for JSON scalars (pass-through). Also the fallback for unknown scalars."""

    python_type = "Any"
    import_statement = "from typing import Any"
    runtime_type = Any

    def serialize(self, value: Any) -> Any:
        return value

    def deserialize(self, value: Any) -> Any:
        return value


class ScalarRegistry:
    """Registry for scalar handlers.

    Built-in GraphQL scalars and a few common custom scalars are registered
    by default. Scalars without a handler fall back to pass-through JSON.

    Example:
        registry = ScalarRegistry()
        registry.get("DateTime").python_type  # "datetime"
    """

    def __init__(self):
        self._handlers: dict[str, ScalarHandler] = {}
        self._fallback = JSONHandler()
        self._register_defaults()

    def _register_defaults(self):
        """Register built-in default handlers."""
        self.register("String", StringHandler())
        self.register("Int", IntHandler())
        self.register("Float", FloatHandler())
        self.register("Boolean", BooleanHandler())
        self.register("ID", IDHandler())
        self.register("DateTime", DateTimeHandler())
        self.register("Date", DateHandler())
        self.register("UUID", UUIDHandler())
        self.register("JSON", JSONHandler())
        self.register("JSONObject", JSONHandler())

    def register(self, scalar_name: str, handler: ScalarHandler):
        """Register a handler for a scalar type."""
        self._handlers[scalar_name] = handler

    def get(self, scalar_name: str) -> ScalarHandler:
        """Get the handler for a scalar type, falling back to pass-through."""
        return self._handlers.get(scalar_name, self._fallback)

    def has(self, scalar_name: str) -> bool:
        """Check if a handler is registered for a scalar type."""
        return scalar_name in self._handlers

    def get_imports(self, scalar_names: set[str]) -> set[str]:
        """Import statements needed to render the given scalars."""
        imports = {self.get(name).import_statement for name in scalar_names}
        imports.discard("")
        return imports
