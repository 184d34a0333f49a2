"""Query builder for operation documents.

Renders an OperationDocument back into GraphQL query text. The output is
canonical (fixed indentation, document order), so client artifacts embed
the exact text that the dispatcher will compare against its registry.
"""

import json
from typing import Any

from .ir import EnumLiteral, OperationDocument, Selection, VariableDefinition, VariableRef


class QueryBuilder:
    """Builds GraphQL query strings from operation documents."""

    indent = "  "

    def __init__(self):
        self._query_cache: dict[int, tuple[OperationDocument, str]] = {}

    def build(self, operation: OperationDocument) -> str:
        """Build the query/mutation string for an operation document.

        Example:
            query UserById($id: ID!) {
              user(id: $id) {
                name
              }
            }
        """
        cache_key = id(operation)
        cached = self._query_cache.get(cache_key)
        if cached is not None and cached[0] is operation:
            return cached[1]

        var_decls = self._build_variable_declarations(operation.variables)
        header = f"{operation.kind.value} {operation.name}"
        if var_decls:
            header += f"({var_decls})"

        body = self._build_selections(operation.selections, depth=1)
        query = f"{header} {{\n{body}\n}}"

        self._query_cache[cache_key] = (operation, query)
        return query

    def _build_variable_declarations(self, variables: tuple[VariableDefinition, ...]) -> str:
        """Build the variable declaration part: ``$id: ID!, $first: Int = 10``"""
        decls = []
        for variable in variables:
            decl = f"${variable.name}: {variable.type}"
            if variable.has_default:
                decl += f" = {self.format_value(variable.default_value)}"
            decls.append(decl)
        return ", ".join(decls)

    def _build_selections(self, selections: tuple[Selection, ...], depth: int) -> str:
        indent = self.indent * depth
        lines = []
        for selection in selections:
            line = f"{indent}{selection.alias}: {selection.name}" if selection.alias else f"{indent}{selection.name}"
            if selection.arguments:
                args = ", ".join(
                    f"{name}: {self.format_value(value)}" for name, value in selection.arguments
                )
                line += f"({args})"
            if selection.selections:
                nested = self._build_selections(selection.selections, depth + 1)
                lines.append(f"{line} {{\n{nested}\n{indent}}}")
            else:
                lines.append(line)
        return "\n".join(lines)

    @classmethod
    def format_value(cls, value: Any) -> str:
        """Format an argument value as a GraphQL literal.

        Enum values print bare, plain strings print quoted.
        """
        if isinstance(value, VariableRef):
            return f"${value.name}"
        if isinstance(value, EnumLiteral):
            return value.name
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return json.dumps(value)
        if isinstance(value, str):
            return json.dumps(value)
        if isinstance(value, list):
            return "[" + ", ".join(cls.format_value(v) for v in value) + "]"
        if isinstance(value, dict):
            fields = ", ".join(f"{k}: {cls.format_value(v)}" for k, v in value.items())
            return "{" + fields + "}"
        raise TypeError(f"Cannot format value of type {type(value).__name__}")
