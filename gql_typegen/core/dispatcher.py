"""Request dispatcher: executes registered operations against bound resolvers.

Only operations registered in the SchemaRegistry can be executed; clients
refer to them by name and may send the query text they were generated
with so stale client artifacts are detected.

Field resolution follows GraphQL semantics:
    - a failing resolver nulls its field and records an error with the
      field's response path, siblings keep resolving;
    - a null in a non-null position propagates to the nearest nullable
      ancestor (or nulls the whole ``data`` at the root);
    - output keys always follow document order, even when sibling
      resolvers complete out of order.
"""

import asyncio
import enum
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from .binder import BoundResolvers
from .errors import (
    BindingError,
    FieldResolutionError,
    InvalidVariables,
    OperationError,
    SchemaError,
    StaleOperation,
    UnknownOperation,
)
from .ir import (
    EnumLiteral,
    OperationDocument,
    OperationKind,
    Selection,
    TypeDefinition,
    TypeKind,
    TypeRef,
    VariableRef,
    to_snake_case,
)
from .parser import SchemaParser
from .registry import SchemaRegistry
from .scalars import ScalarRegistry

logger = logging.getLogger(__name__)

Path = tuple[str | int, ...]


@dataclass(frozen=True)
class Response:
    """Result of dispatching one operation."""
    data: dict[str, Any] | None
    errors: tuple[FieldResolutionError, ...] = field(default=())

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "errors": [e.to_dict() for e in self.errors]}


class _NullBubble(Exception):
    """A null reached a non-null position; the error is already recorded."""


def default_resolver(parent: Any, field_name: str) -> Any:
    """Serve a field from its parent: mapping key, then attribute, then snake_case attribute."""
    if parent is None:
        return None
    if isinstance(parent, Mapping):
        return parent.get(field_name)
    if hasattr(parent, field_name):
        return getattr(parent, field_name)
    return getattr(parent, to_snake_case(field_name), None)


class RequestDispatcher:
    """Dispatches operations by name.

    Example:
        dispatcher = RequestDispatcher(registry, resolvers)
        response = await dispatcher.dispatch("ALL_USERS")
        response.data  # {"users": [{"name": "A"}, {"name": "B"}]}
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        resolvers: BoundResolvers,
        *,
        scalars: ScalarRegistry | None = None,
    ):
        self.registry = registry
        self.scalars = scalars or ScalarRegistry()
        self._check_fingerprint(resolvers)
        self.resolvers = resolvers
        # Last submitted text per operation, with its parsed document
        self._parsed_queries: dict[str, tuple[str, OperationDocument]] = {}

    def _check_fingerprint(self, resolvers: BoundResolvers):
        if resolvers.schema_fingerprint != self.registry.fingerprint:
            raise BindingError(message=(
                "Resolvers were bound to a contract generated from a different schema "
                f"(contract {resolvers.schema_fingerprint[:12]}, "
                f"registry {self.registry.fingerprint[:12]}); regenerate and rebind"
            ))

    async def dispatch(
        self,
        operation_name: str,
        variables: Mapping[str, Any] | None = None,
        resolvers: BoundResolvers | None = None,
        *,
        query: str | None = None,
        schema_fingerprint: str | None = None,
    ) -> Response:
        """Execute a registered operation.

        ``schema_fingerprint`` is the fingerprint the client was generated
        from; any difference from the registry's means the client is stale.

        Raises:
            UnknownOperation: No operation with this name is registered
            StaleOperation: ``query`` differs from the registered document,
                or ``schema_fingerprint`` from the registry's
            InvalidVariables: Variables are missing, unknown or ill-typed
        """
        if resolvers is not None:
            self._check_fingerprint(resolvers)
        operation = self.registry.document(operation_name)
        if operation is None:
            raise UnknownOperation(operation_name)
        if schema_fingerprint is not None and schema_fingerprint != self.registry.fingerprint:
            raise StaleOperation(
                f"Client for '{operation_name}' was generated from schema {schema_fingerprint[:12]}, "
                f"server schema is {self.registry.fingerprint[:12]}; regenerate the client",
                operation_name,
            )
        if query is not None:
            self._check_query(operation, query)
        coerced = self._coerce_variables(operation, variables or {})

        execution = _Execution(self, resolvers or self.resolvers, coerced)
        root = self.registry.lookup(operation.root_type)
        data = await execution.execute_root(
            root, operation.selections, serial=operation.kind is OperationKind.MUTATION
        )
        logger.debug(
            "Dispatched %s with %d field error(s)", operation_name, len(execution.errors)
        )
        return Response(data=data, errors=tuple(execution.errors))

    async def handle(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Transport bridge: ``{operationName, query, variables, extensions}`` to ``{data, errors}``."""
        operation_name = payload.get("operationName")
        try:
            if not operation_name:
                raise OperationError("Request has no operationName")
            variables = payload.get("variables") or {}
            if not isinstance(variables, Mapping):
                raise InvalidVariables("Variables must be an object", operation_name)
            extensions = payload.get("extensions") or {}
            if not isinstance(extensions, Mapping):
                raise OperationError("Extensions must be an object", operation_name)
            response = await self.dispatch(
                operation_name,
                variables,
                query=payload.get("query"),
                schema_fingerprint=extensions.get("schemaFingerprint"),
            )
        except OperationError as e:
            logger.warning("Rejected operation %s: %s", operation_name, e.message)
            return {"data": None, "errors": [{"path": [], "message": e.message}]}
        return response.to_dict()

    def _check_query(self, operation: OperationDocument, query: str):
        cached = self._parsed_queries.get(operation.name)
        if cached is not None and cached[0] == query:
            submitted = cached[1]
        else:
            try:
                submitted = SchemaParser.parse_operation(
                    query, dict(self.registry.types), dict(self.registry.root_types)
                )
            except SchemaError as e:
                raise StaleOperation(
                    f"Query for '{operation.name}' is not valid against the current schema: {e}",
                    operation.name,
                ) from e
            self._parsed_queries[operation.name] = (query, submitted)
        if submitted != operation:
            raise StaleOperation(
                f"Query for '{operation.name}' does not match the registered document; "
                f"regenerate the client",
                operation.name,
            )

    def _coerce_variables(
        self, operation: OperationDocument, variables: Mapping[str, Any]
    ) -> dict[str, Any]:
        problems = []
        declared = {v.name for v in operation.variables}
        for name in sorted(set(variables) - declared):
            problems.append(f"unknown variable '${name}'")

        coerced = {}
        for variable in operation.variables:
            if variable.name in variables:
                value = variables[variable.name]
            elif variable.has_default:
                value = variable.default_value
            else:
                if variable.type.is_non_null:
                    problems.append(f"variable '${variable.name}' of type '{variable.type}' is required")
                continue
            try:
                coerced[variable.name] = self.coerce_input(variable.type, value, f"${variable.name}")
            except ValueError as e:
                problems.append(str(e))

        if problems:
            raise InvalidVariables(
                f"Invalid variables for '{operation.name}': " + "; ".join(problems),
                operation.name,
            )
        return coerced

    def coerce_input(
        self,
        ref: TypeRef,
        value: Any,
        where: str,
        variables: Mapping[str, Any] | None = None,
    ) -> Any:
        """Coerce a JSON-like input value to ``ref``. Raises ValueError.

        Variable references are replaced by their already coerced values.
        """
        if isinstance(value, VariableRef):
            return (variables or {}).get(value.name)
        if value is None:
            if ref.is_non_null:
                raise ValueError(f"{where}: expected non-null value of type '{ref}'")
            return None
        ref = ref.nullable
        if ref.kind == TypeRef.LIST:
            items = value if isinstance(value, list) else [value]
            return [
                self.coerce_input(ref.of_type, item, f"{where}[{i}]", variables)
                for i, item in enumerate(items)
            ]

        type_def = self.registry.lookup(ref.name)
        if type_def.kind is TypeKind.ENUM:
            if isinstance(value, EnumLiteral):
                value = value.name
            if value not in type_def.values:
                raise ValueError(f"{where}: '{value}' is not a value of enum '{type_def.name}'")
            return value
        if type_def.kind is TypeKind.SCALAR:
            if isinstance(value, EnumLiteral):
                raise ValueError(f"{where}: enum value {value.name} given for scalar '{type_def.name}'")
            try:
                return self.scalars.get(type_def.name).deserialize(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"{where}: invalid {type_def.name}: {e}") from e

        if not isinstance(value, Mapping):
            raise ValueError(f"{where}: expected an object for input type '{type_def.name}'")
        unknown = sorted(set(value) - {f.name for f in type_def.input_fields})
        if unknown:
            raise ValueError(f"{where}: unknown field(s) for '{type_def.name}': {', '.join(unknown)}")
        result = {}
        for input_field in type_def.input_fields:
            field_where = f"{where}.{input_field.name}"
            if input_field.name in value:
                result[input_field.name] = self.coerce_input(
                    input_field.type, value[input_field.name], field_where, variables
                )
            elif input_field.has_default:
                result[input_field.name] = self.coerce_input(
                    input_field.type, input_field.default_value, field_where
                )
            elif input_field.type.is_non_null:
                raise ValueError(f"{field_where}: required field of type '{input_field.type}' is missing")
        return result

    def serialize_leaf(self, type_def: TypeDefinition, value: Any) -> Any:
        if type_def.kind is TypeKind.ENUM:
            if isinstance(value, enum.Enum):
                value = value.name
            if value not in type_def.values:
                raise ValueError(f"Enum '{type_def.name}' cannot represent value: {value!r}")
            return value
        return self.scalars.get(type_def.name).serialize(value)


class _Execution:
    """State for one dispatched operation."""

    def __init__(
        self, dispatcher: RequestDispatcher, resolvers: BoundResolvers, variables: dict[str, Any]
    ):
        self.dispatcher = dispatcher
        self.registry = dispatcher.registry
        self.resolvers = resolvers
        self.variables = variables
        self.errors: list[FieldResolutionError] = []

    async def execute_root(
        self, root: TypeDefinition, selections: tuple[Selection, ...], serial: bool
    ) -> dict[str, Any] | None:
        try:
            return await self._execute_fields(root, None, selections, (), serial=serial)
        except _NullBubble:
            return None

    async def _execute_fields(
        self,
        type_def: TypeDefinition,
        parent: Any,
        selections: tuple[Selection, ...],
        path: Path,
        serial: bool = False,
    ) -> dict[str, Any]:
        if serial:
            values = [await self._resolve_field(type_def, parent, s, path) for s in selections]
        else:
            values = await self._gather(
                self._resolve_field(type_def, parent, s, path) for s in selections
            )
        return {s.response_key: value for s, value in zip(selections, values)}

    @staticmethod
    async def _gather(coroutines: Iterable) -> list[Any]:
        """Run siblings concurrently; results keep their input order."""
        results = await asyncio.gather(*coroutines, return_exceptions=True)
        bubbled = False
        for result in results:
            if isinstance(result, _NullBubble):
                bubbled = True
            elif isinstance(result, BaseException):
                raise result
        if bubbled:
            raise _NullBubble()
        return results

    async def _resolve_field(
        self, type_def: TypeDefinition, parent: Any, selection: Selection, path: Path
    ) -> Any:
        field_def = type_def.field(selection.name)
        field_path = path + (selection.response_key,)
        resolver = self.resolvers.resolver(type_def.name, selection.name)
        try:
            if resolver is None:
                value = default_resolver(parent, selection.name)
            else:
                value = resolver(parent, **self._arguments(field_def, selection))
                if inspect.isawaitable(value):
                    value = await value
        except Exception as e:
            self._record(field_path, str(e) or type(e).__name__, e)
            if field_def.type.is_non_null:
                raise _NullBubble() from e
            return None
        return await self._complete(field_def.type, value, selection, field_path)

    def _arguments(self, field_def, selection: Selection) -> dict[str, Any]:
        """Keyword arguments for a resolver: provided or defaulted arguments only."""
        provided = dict(selection.arguments)
        kwargs = {}
        for argument in field_def.arguments:
            where = f"{field_def.name}({argument.name})"
            raw = provided.get(argument.name)
            # An argument bound to an absent variable counts as not provided
            given = argument.name in provided and not (
                isinstance(raw, VariableRef) and raw.name not in self.variables
            )
            if given:
                kwargs[argument.python_name] = self.dispatcher.coerce_input(
                    argument.type, raw, where, self.variables
                )
            elif argument.has_default:
                kwargs[argument.python_name] = self.dispatcher.coerce_input(
                    argument.type, argument.default_value, where
                )
        return kwargs

    async def _complete(self, ref: TypeRef, value: Any, selection: Selection, path: Path) -> Any:
        if ref.is_non_null:
            if value is None:
                self._record(path, f"Cannot return null for non-nullable field of type '{ref}'")
                raise _NullBubble()
            return await self._complete_value(ref.of_type, value, selection, path)
        if value is None:
            return None
        try:
            return await self._complete_value(ref, value, selection, path)
        except _NullBubble:
            return None

    async def _complete_value(self, ref: TypeRef, value: Any, selection: Selection, path: Path) -> Any:
        if ref.kind == TypeRef.LIST:
            if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
                self._record(path, f"Expected a list for field of type '{ref}', got {type(value).__name__}")
                raise _NullBubble()
            return await self._gather(
                self._complete(ref.of_type, item, selection, path + (index,))
                for index, item in enumerate(value)
            )

        type_def = self.registry.lookup(ref.name)
        if type_def.is_leaf:
            try:
                return self.dispatcher.serialize_leaf(type_def, value)
            except Exception as e:
                self._record(path, str(e), e)
                raise _NullBubble() from e
        return await self._execute_fields(type_def, value, selection.selections, path)

    def _record(self, path: Path, message: str, original: BaseException | None = None):
        logger.warning("Field %s failed: %s", ".".join(str(p) for p in path), message)
        self.errors.append(FieldResolutionError(path, message, original))
