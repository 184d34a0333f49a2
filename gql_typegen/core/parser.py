"""GraphQL schema parser using graphql-core.

Parses SDL sources (type definitions plus named operations) and produces
the IR held by the SchemaRegistry. Validation is exhaustive: every issue
is collected and reported together in one SchemaError.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

from graphql import (
    DirectiveDefinitionNode,
    DocumentNode,
    EnumTypeDefinitionNode,
    EnumTypeExtensionNode,
    EnumValueNode,
    FieldNode,
    FragmentDefinitionNode,
    FragmentSpreadNode,
    GraphQLSyntaxError,
    InlineFragmentNode,
    InputObjectTypeDefinitionNode,
    InputObjectTypeExtensionNode,
    InterfaceTypeDefinitionNode,
    ListValueNode,
    Node,
    ObjectTypeDefinitionNode,
    ObjectTypeExtensionNode,
    ObjectValueNode,
    OperationDefinitionNode,
    OperationType,
    ScalarTypeDefinitionNode,
    SchemaDefinitionNode,
    Source,
    UnionTypeDefinitionNode,
    VariableNode,
    get_location,
    parse,
    value_from_ast_untyped,
)

from .errors import SchemaError, SchemaIssue, SourceLocation
from .ir import (
    BUILTIN_SCALARS,
    ArgumentDefinition,
    EnumLiteral,
    FieldDefinition,
    OperationDocument,
    OperationKind,
    Selection,
    TypeDefinition,
    TypeKind,
    TypeRef,
    VariableDefinition,
    VariableRef,
)

logger = logging.getLogger(__name__)

SCHEMA_EXTENSIONS = (".graphql", ".graphqls")

_TYPE_NODES = (
    ScalarTypeDefinitionNode,
    ObjectTypeDefinitionNode,
    EnumTypeDefinitionNode,
    InputObjectTypeDefinitionNode,
)
_EXTENSION_NODES = (
    ObjectTypeExtensionNode,
    InputObjectTypeExtensionNode,
    EnumTypeExtensionNode,
)
_UNSUPPORTED = {
    InterfaceTypeDefinitionNode: "interface types are not supported",
    UnionTypeDefinitionNode: "union types are not supported",
    FragmentDefinitionNode: "fragments are not supported",
    DirectiveDefinitionNode: "directive definitions are not supported",
}


@dataclass(frozen=True)
class ParsedSchema:
    """Validated output of the parser."""
    types: dict[str, TypeDefinition]
    root_types: dict[OperationKind, str]
    documents: tuple[OperationDocument, ...]


def collect_schema_files(schema_path: str) -> list[str]:
    """Collect all .graphql/.graphqls files from a file or directory path."""
    files = []
    if os.path.isfile(schema_path):
        if schema_path.endswith(SCHEMA_EXTENSIONS):
            files.append(schema_path)
    else:
        for root, _, filenames in os.walk(schema_path):
            for filename in filenames:
                if filename.endswith(SCHEMA_EXTENSIONS):
                    files.append(os.path.join(root, filename))
    return sorted(files)


class SchemaParser:
    """Parses schema sources into validated IR."""

    def __init__(self, sources: list[tuple[str, str]]):
        """Initialize a parser with (source name, text) pairs."""
        self.sources = sources
        self._issues: list[SchemaIssue] = []
        self._type_nodes: dict[str, Node] = {}
        self._extensions: list[Node] = []
        self._operation_nodes: list[OperationDefinitionNode] = []
        self._schema_node: SchemaDefinitionNode | None = None
        self._types: dict[str, TypeDefinition] = {}

    @classmethod
    def from_path(cls, schema_path: str) -> "SchemaParser":
        """Create a parser for a schema file or a directory of schema files."""
        sources = []
        for file_path in collect_schema_files(schema_path):
            with open(file_path) as f:
                sources.append((os.path.basename(file_path), f.read()))
        if not sources:
            raise SchemaError([SchemaIssue(f"No schema files found at {schema_path}")])
        return cls(sources)

    def parse_all(self) -> ParsedSchema:
        """Parse and validate every source. Raises SchemaError on any issue."""
        documents = [self._parse_source(name, text) for name, text in self.sources]
        self._raise_if_issues()

        for document in documents:
            self._collect_definitions(document)
        self._build_types()
        root_types = self._resolve_root_types()
        self._validate_type_references()
        self._validate_input_cycles()
        operations = self._build_operations(root_types)
        self._raise_if_issues()

        logger.debug(
            "Parsed %d type(s) and %d operation(s) from %d source(s)",
            len(self._types), len(operations), len(self.sources),
        )
        return ParsedSchema(
            types=dict(self._types),
            root_types=root_types,
            documents=tuple(operations),
        )

    @classmethod
    def parse_operation(
        cls,
        query: str,
        types: dict[str, TypeDefinition],
        root_types: dict[OperationKind, str],
        source_name: str = "request",
    ) -> OperationDocument:
        """Parse a single operation against already validated types.

        Used to compare a submitted query with the registered document.
        Raises SchemaError if the text is not exactly one valid operation.
        """
        parser = cls([(source_name, query)])
        document = parser._parse_source(source_name, query)
        parser._raise_if_issues()
        parser._types = dict(types)
        for definition in document.definitions:
            if isinstance(definition, OperationDefinitionNode):
                parser._operation_nodes.append(definition)
            else:
                parser._issue(f"Expected only operations, got {definition.kind}", definition)
        if len(parser._operation_nodes) != 1:
            parser._issue(f"Expected exactly one operation, got {len(parser._operation_nodes)}")
        operations = parser._build_operations(dict(root_types))
        parser._raise_if_issues()
        return operations[0]

    def _issue(self, cause: str, node: Node | None = None):
        self._issues.append(SchemaIssue(cause, self._location(node)))

    def _raise_if_issues(self):
        if self._issues:
            raise SchemaError(self._issues)

    @staticmethod
    def _location(node: Node | None) -> SourceLocation | None:
        if node is None or node.loc is None:
            return None
        source = node.loc.source
        position = get_location(source, node.loc.start)
        return SourceLocation(source.name, position.line, position.column)

    def _parse_source(self, name: str, text: str) -> DocumentNode | None:
        try:
            return parse(Source(text, name))
        except GraphQLSyntaxError as e:
            location = None
            if e.locations:
                location = SourceLocation(name, e.locations[0].line, e.locations[0].column)
            self._issues.append(SchemaIssue(e.message, location))
            return None

    # -- Type definitions ---------------------------------------------------

    def _collect_definitions(self, document: DocumentNode):
        """Sort definitions by kind; later passes build IR from them."""
        for definition in document.definitions:
            if isinstance(definition, _TYPE_NODES):
                name = definition.name.value
                if name in self._type_nodes or name in BUILTIN_SCALARS:
                    self._issue(f"Duplicate type name '{name}'", definition)
                else:
                    self._type_nodes[name] = definition
            elif isinstance(definition, _EXTENSION_NODES):
                self._extensions.append(definition)
            elif isinstance(definition, OperationDefinitionNode):
                self._operation_nodes.append(definition)
            elif isinstance(definition, SchemaDefinitionNode):
                if self._schema_node is not None:
                    self._issue("Duplicate schema definition", definition)
                else:
                    self._schema_node = definition
            else:
                cause = _UNSUPPORTED.get(
                    type(definition), f"unsupported definition: {definition.kind}"
                )
                self._issue(cause[0].upper() + cause[1:], definition)

    def _build_types(self):
        for name in BUILTIN_SCALARS:
            self._types[name] = TypeDefinition(name=name, kind=TypeKind.SCALAR)

        extensions_by_type: dict[str, list[Node]] = {}
        for extension in self._extensions:
            name = extension.name.value
            base = self._type_nodes.get(name)
            expected = {
                ObjectTypeExtensionNode: ObjectTypeDefinitionNode,
                InputObjectTypeExtensionNode: InputObjectTypeDefinitionNode,
                EnumTypeExtensionNode: EnumTypeDefinitionNode,
            }[type(extension)]
            if base is None:
                self._issue(f"Cannot extend unknown type '{name}'", extension)
            elif not isinstance(base, expected):
                self._issue(f"Extension kind does not match type '{name}'", extension)
            else:
                extensions_by_type.setdefault(name, []).append(extension)

        for name, node in self._type_nodes.items():
            extensions = extensions_by_type.get(name, [])
            description = node.description.value if node.description else None
            location = self._location(node)
            if isinstance(node, ScalarTypeDefinitionNode):
                self._types[name] = TypeDefinition(
                    name=name, kind=TypeKind.SCALAR,
                    description=description, location=location,
                )
            elif isinstance(node, EnumTypeDefinitionNode):
                values = self._unique_names(
                    [v for n in [node, *extensions] for v in n.values or ()],
                    f"enum value in '{name}'",
                )
                self._types[name] = TypeDefinition(
                    name=name, kind=TypeKind.ENUM,
                    values=tuple(v.name.value for v in values),
                    description=description, location=location,
                )
            elif isinstance(node, InputObjectTypeDefinitionNode):
                field_nodes = self._unique_names(
                    [f for n in [node, *extensions] for f in n.fields or ()],
                    f"field in '{name}'",
                )
                self._types[name] = TypeDefinition(
                    name=name, kind=TypeKind.INPUT_OBJECT,
                    input_fields=tuple(self._input_value(f) for f in field_nodes),
                    description=description, location=location,
                )
            else:
                if node.interfaces:
                    self._issue("Interface types are not supported", node)
                field_nodes = self._unique_names(
                    [f for n in [node, *extensions] for f in n.fields or ()],
                    f"field in '{name}'",
                )
                if not field_nodes:
                    self._issue(f"Type '{name}' must define one or more fields", node)
                self._types[name] = TypeDefinition(
                    name=name, kind=TypeKind.OBJECT,
                    fields=tuple(self._field(f, name) for f in field_nodes),
                    description=description, location=location,
                )

    def _unique_names(self, nodes: list[Node], what: str) -> list[Node]:
        seen: set[str] = set()
        unique = []
        for node in nodes:
            name = node.name.value
            if name in seen:
                self._issue(f"Duplicate {what}: '{name}'", node)
                continue
            seen.add(name)
            unique.append(node)
        return unique

    def _field(self, node, type_name: str) -> FieldDefinition:
        arguments = self._unique_names(
            list(node.arguments or ()),
            f"argument on '{type_name}.{node.name.value}'",
        )
        return FieldDefinition(
            name=node.name.value,
            type=TypeRef.from_node(node.type),
            arguments=tuple(self._input_value(a) for a in arguments),
            description=node.description.value if node.description else None,
            location=self._location(node),
        )

    def _input_value(self, node) -> ArgumentDefinition:
        has_default = node.default_value is not None
        return ArgumentDefinition(
            name=node.name.value,
            type=TypeRef.from_node(node.type),
            default_value=value_from_ast_untyped(node.default_value) if has_default else None,
            has_default=has_default,
            description=node.description.value if node.description else None,
            location=self._location(node),
        )

    def _resolve_root_types(self) -> dict[OperationKind, str]:
        """Find the root operation types, from `schema {}` or by convention."""
        roots: dict[OperationKind, str] = {}
        if self._schema_node is not None:
            for op_type in self._schema_node.operation_types:
                if op_type.operation == OperationType.SUBSCRIPTION:
                    self._issue("Subscriptions are not supported", op_type)
                    continue
                kind = OperationKind(op_type.operation.value)
                roots[kind] = op_type.type.name.value
        else:
            for kind, default in ((OperationKind.QUERY, "Query"), (OperationKind.MUTATION, "Mutation")):
                if default in self._types:
                    roots[kind] = default

        for kind, name in roots.items():
            type_def = self._types.get(name)
            if type_def is None:
                self._issue(f"Unknown {kind.value} root type '{name}'", self._schema_node)
            elif type_def.kind is not TypeKind.OBJECT:
                self._issue(f"Root {kind.value} type '{name}' must be an object type", self._schema_node)
        if OperationKind.QUERY not in roots:
            self._issue("Schema does not define a query root type", self._schema_node)
        return roots

    def _validate_type_references(self):
        for type_def in self._types.values():
            for type_field in type_def.fields:
                where = f"{type_def.name}.{type_field.name}"
                self._check_reference(type_field.type, where, type_field.location, output=True)
                for arg in type_field.arguments:
                    self._check_reference(arg.type, f"{where}({arg.name})", arg.location, output=False)
            for input_field in type_def.input_fields:
                self._check_reference(
                    input_field.type, f"{type_def.name}.{input_field.name}",
                    input_field.location, output=False,
                )

    def _check_reference(
        self, ref: TypeRef, where: str, location: SourceLocation | None, output: bool
    ) -> bool:
        target = self._types.get(ref.named_type)
        if target is None:
            self._issues.append(SchemaIssue(
                f"Unknown type '{ref.named_type}' referenced by {where}", location
            ))
            return False
        if output and not target.is_output:
            self._issues.append(SchemaIssue(
                f"{where} must have an output type, got input type '{target.name}'", location
            ))
            return False
        if not output and not target.is_input:
            self._issues.append(SchemaIssue(
                f"{where} must have an input type, got object type '{target.name}'", location
            ))
            return False
        return True

    def _validate_input_cycles(self):
        """Reject input objects that can only be satisfied by infinite values."""
        inputs = {n: t for n, t in self._types.items() if t.kind is TypeKind.INPUT_OBJECT}
        visited: set[str] = set()

        def visit(name: str, stack: list[str]):
            if name in stack:
                cycle = stack[stack.index(name):] + [name]
                self._issues.append(SchemaIssue(
                    "Input object cycle through non-null fields: " + " -> ".join(cycle),
                    inputs[name].location,
                ))
                return
            if name in visited:
                return
            visited.add(name)
            for input_field in inputs[name].input_fields:
                ref = input_field.type
                if ref.is_non_null and ref.of_type.kind == TypeRef.NAMED and ref.named_type in inputs:
                    visit(ref.named_type, stack + [name])

        for name in inputs:
            visit(name, [])

    # -- Operations ---------------------------------------------------------

    def _build_operations(self, root_types: dict[OperationKind, str]) -> list[OperationDocument]:
        operations = []
        seen: set[str] = set()
        for node in self._operation_nodes:
            if node.name is None:
                self._issue("Anonymous operations are not supported; every operation needs a name", node)
                continue
            name = node.name.value
            if node.operation == OperationType.SUBSCRIPTION:
                self._issue(f"Subscriptions are not supported: '{name}'", node)
                continue
            if name in seen:
                self._issue(f"Duplicate operation name '{name}'", node)
                continue
            seen.add(name)
            kind = OperationKind(node.operation.value)
            root_name = root_types.get(kind)
            if root_name is None or root_name not in self._types:
                self._issue(f"Schema has no {kind.value} root type for operation '{name}'", node)
                continue
            document = self._build_operation(node, name, kind, root_name)
            if document is not None:
                operations.append(document)
        return operations

    def _build_operation(
        self, node: OperationDefinitionNode, name: str, kind: OperationKind, root_name: str
    ) -> OperationDocument | None:
        if node.directives:
            self._issue(f"Directives on operation '{name}' are not supported", node)
        variables = []
        for var_node in self._unique_names_of_variables(node):
            ref = TypeRef.from_node(var_node.type)
            self._check_reference(
                ref, f"variable '${var_node.variable.name.value}' of '{name}'",
                self._location(var_node), output=False,
            )
            has_default = var_node.default_value is not None
            variables.append(VariableDefinition(
                name=var_node.variable.name.value,
                type=ref,
                default_value=self._literal(var_node.default_value) if has_default else None,
                has_default=has_default,
                location=self._location(var_node),
            ))

        defined = {v.name: v for v in variables}
        used: set[str] = set()
        selections = self._build_selections(
            node.selection_set, self._types[root_name], defined, used
        )
        for variable in variables:
            if variable.name not in used:
                self._issues.append(SchemaIssue(
                    f"Variable '${variable.name}' is never used in operation '{name}'",
                    variable.location,
                ))
        return OperationDocument(
            name=name,
            kind=kind,
            root_type=root_name,
            variables=tuple(variables),
            selections=selections,
            location=self._location(node),
        )

    def _unique_names_of_variables(self, node: OperationDefinitionNode) -> list:
        seen: set[str] = set()
        unique = []
        for var_node in node.variable_definitions or ():
            var_name = var_node.variable.name.value
            if var_name in seen:
                self._issue(f"Duplicate variable '${var_name}'", var_node)
                continue
            seen.add(var_name)
            unique.append(var_node)
        return unique

    def _build_selections(
        self, selection_set, parent: TypeDefinition, defined: dict[str, VariableDefinition], used: set[str]
    ) -> tuple[Selection, ...]:
        selections = []
        response_keys: set[str] = set()
        for node in selection_set.selections:
            if isinstance(node, (FragmentSpreadNode, InlineFragmentNode)):
                self._issue("Fragments are not supported", node)
                continue
            assert isinstance(node, FieldNode)
            selection = self._build_selection(node, parent, defined, used)
            if selection is None:
                continue
            if selection.response_key in response_keys:
                self._issue(
                    f"Duplicate response key '{selection.response_key}' on '{parent.name}'", node
                )
                continue
            response_keys.add(selection.response_key)
            selections.append(selection)
        return tuple(selections)

    def _build_selection(
        self, node: FieldNode, parent: TypeDefinition, defined: dict[str, VariableDefinition], used: set[str]
    ) -> Selection | None:
        name = node.name.value
        if node.directives:
            self._issue(f"Directives on field '{name}' are not supported", node)
        field_def = parent.field(name)
        if field_def is None:
            self._issue(f"Cannot query field '{name}' on type '{parent.name}'", node)
            return None

        arguments = []
        provided: set[str] = set()
        for arg_node in node.arguments or ():
            arg_name = arg_node.name.value
            if field_def.argument(arg_name) is None:
                self._issue(f"Unknown argument '{arg_name}' on field '{parent.name}.{name}'", arg_node)
                continue
            if arg_name in provided:
                self._issue(f"Duplicate argument '{arg_name}' on field '{parent.name}.{name}'", arg_node)
                continue
            provided.add(arg_name)
            argument = field_def.argument(arg_name)
            arguments.append((arg_name, self._value(
                arg_node.value, argument.type, defined, used, argument.has_default
            )))
        for arg in field_def.arguments:
            if arg.is_required and arg.name not in provided:
                self._issue(
                    f"Field '{parent.name}.{name}' argument '{arg.name}' of type '{arg.type}' "
                    f"is required but not provided", node,
                )

        target = self._types.get(field_def.type.named_type)
        selections: tuple[Selection, ...] = ()
        if target is None:
            return None
        if target.is_leaf:
            if node.selection_set is not None:
                self._issue(f"Field '{name}' of leaf type '{target.name}' must not have a selection", node)
        elif node.selection_set is None:
            self._issue(f"Field '{name}' of type '{target.name}' must have a selection of subfields", node)
        else:
            selections = self._build_selections(node.selection_set, target, defined, used)

        return Selection(
            name=name,
            alias=node.alias.value if node.alias else None,
            arguments=tuple(arguments),
            selections=selections,
            location=self._location(node),
        )

    def _value(
        self,
        node,
        expected: TypeRef | None,
        defined: dict[str, VariableDefinition],
        used: set[str],
        location_has_default: bool = False,
    ) -> Any:
        """Convert an argument value node, keeping variables as VariableRef.

        Variables are checked against the type expected where they are used.
        """
        if isinstance(node, VariableNode):
            var_name = node.name.value
            variable = defined.get(var_name)
            if variable is None:
                self._issue(f"Variable '${var_name}' is not defined", node)
            elif expected is not None and not _variable_allowed(variable, expected, location_has_default):
                self._issue(
                    f"Variable '${var_name}' of type '{variable.type}' used in position "
                    f"expecting type '{expected}'", node,
                )
            used.add(var_name)
            return VariableRef(var_name)
        if isinstance(node, ListValueNode):
            item_type = None
            if expected is not None and expected.is_list:
                item_type = expected.nullable.of_type
            return [self._value(v, item_type, defined, used) for v in node.values]
        if isinstance(node, ObjectValueNode):
            input_type = self._types.get(expected.named_type) if expected is not None else None
            values = {}
            for f in node.fields:
                input_field = input_type.input_field(f.name.value) if input_type is not None else None
                values[f.name.value] = self._value(
                    f.value,
                    input_field.type if input_field is not None else None,
                    defined,
                    used,
                    input_field is not None and input_field.has_default,
                )
            return values
        return self._literal(node)

    @staticmethod
    def _literal(node) -> Any:
        """Convert a constant value node, keeping enum values as EnumLiteral."""
        if isinstance(node, EnumValueNode):
            return EnumLiteral(node.value)
        if isinstance(node, ListValueNode):
            return [SchemaParser._literal(v) for v in node.values]
        if isinstance(node, ObjectValueNode):
            return {f.name.value: SchemaParser._literal(f.value) for f in node.fields}
        return value_from_ast_untyped(node)


def _is_subtype(variable_type: TypeRef, expected: TypeRef) -> bool:
    """Whether a value of ``variable_type`` is always valid where ``expected`` is."""
    if expected.is_non_null:
        if not variable_type.is_non_null:
            return False
        return _is_subtype(variable_type.of_type, expected.of_type)
    if variable_type.is_non_null:
        return _is_subtype(variable_type.of_type, expected)
    if expected.kind == TypeRef.LIST:
        return variable_type.kind == TypeRef.LIST and _is_subtype(variable_type.of_type, expected.of_type)
    if variable_type.kind == TypeRef.LIST:
        return False
    return variable_type.name == expected.name


def _variable_allowed(
    variable: VariableDefinition, expected: TypeRef, location_has_default: bool
) -> bool:
    # A nullable variable may fill a non-null position that has a default.
    if expected.is_non_null and not variable.type.is_non_null:
        if not (variable.has_default and variable.default_value is not None) and not location_has_default:
            return False
        return _is_subtype(variable.type, expected.of_type)
    return _is_subtype(variable.type, expected)
