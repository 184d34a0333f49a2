"""Error taxonomy for gql-typegen.

Build-time and startup errors (SchemaError, GenerationError, BindingError)
are fatal. Request-time errors are either request-level (OperationError
subclasses) or isolated to one field (FieldResolutionError). Client-side
errors end up in the Failed state of the calling observable.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SourceLocation:
    """A position inside a schema source."""
    source: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.source}:{self.line}:{self.column}"


@dataclass(frozen=True)
class SchemaIssue:
    """One problem found while validating a schema source."""
    cause: str
    location: SourceLocation | None = None

    def __str__(self) -> str:
        if self.location is None:
            return self.cause
        return f"{self.location}: {self.cause}"


class TypegenError(Exception):
    """Base class for all gql-typegen errors."""


class SchemaError(TypegenError):
    """Raised when a schema source is malformed or inconsistent.

    The first issue found provides ``location`` and ``cause``; every issue
    (including the first) is available in ``issues``.
    """

    def __init__(self, issues: list[SchemaIssue]):
        if not issues:
            raise ValueError("SchemaError requires at least one issue")
        self.issues = tuple(issues)
        self.location = issues[0].location
        self.cause = issues[0].cause
        message = str(issues[0])
        if len(issues) > 1:
            message += f" (and {len(issues) - 1} more issue(s))"
        super().__init__(message)


class GenerationError(TypegenError):
    """Raised when the generator meets a selection the registry should have rejected."""


class BindingError(TypegenError):
    """Raised when resolver implementations do not satisfy a contract.

    Reports every missing and mismatched field at once.
    """

    def __init__(
        self,
        missing_fields: set[str] | frozenset[str] = frozenset(),
        mismatched: dict[str, str] | None = None,
        message: str | None = None,
    ):
        self.missing_fields = frozenset(missing_fields)
        self.mismatched = dict(mismatched or {})
        if message is None:
            parts = []
            if self.missing_fields:
                parts.append("missing resolvers: " + ", ".join(sorted(self.missing_fields)))
            for path in sorted(self.mismatched):
                parts.append(f"{path}: {self.mismatched[path]}")
            message = "; ".join(parts) or "binding failed"
        super().__init__(message)


class OperationError(TypegenError):
    """Request-level failure: the operation could not be executed at all."""

    def __init__(self, message: str, operation_name: str | None = None):
        self.message = message
        self.operation_name = operation_name
        super().__init__(message)


class UnknownOperation(OperationError):
    """The requested operation name is not registered."""

    def __init__(self, operation_name: str):
        super().__init__(f"Unknown operation: {operation_name}", operation_name)


class InvalidVariables(OperationError):
    """Variables are missing, unknown, or explicitly null for a non-null type."""


class StaleOperation(OperationError):
    """The submitted document no longer matches the registered one."""


class FieldResolutionError(TypegenError):
    """A single field failed to resolve; isolated to that field's subtree."""

    def __init__(
        self,
        path: tuple[str | int, ...],
        message: str,
        original: BaseException | None = None,
    ):
        self.path = tuple(path)
        self.message = message
        self.original = original
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"path": list(self.path), "message": self.message}


class NetworkError(TypegenError):
    """The client could not complete the round trip to the server."""


class ShapeMismatchError(TypegenError):
    """A response does not match the shape the client artifact expects."""


class GraphQLError(TypegenError):
    """Error reported by the server in a response's ``errors`` list."""

    def __init__(self, message: str, path: list[str | int] | None = None):
        self.message = message
        self.path = list(path or [])
        super().__init__(message)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphQLError":
        return cls(data.get("message", str(data)), data.get("path"))
