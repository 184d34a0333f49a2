"""Schema-driven GraphQL type generation and typed query execution."""

from .core import (
    CodeGenerator,
    HttpTransport,
    LocalTransport,
    QueryExecutor,
    RequestDispatcher,
    SchemaRegistry,
    bind,
    generate,
)

__all__ = [
    "CodeGenerator",
    "HttpTransport",
    "LocalTransport",
    "QueryExecutor",
    "RequestDispatcher",
    "SchemaRegistry",
    "bind",
    "generate",
]
