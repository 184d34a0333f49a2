"""Generated artifacts: the server resolver contract and client operation descriptors.

Artifacts are immutable and carry the fingerprint of the registry they were
generated from. A registry reload produces a new fingerprint; artifacts from
the old registry are stale and must be regenerated, never patched.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Generic, Iterator, Mapping, TypeVar

from pydantic import BaseModel

from .ir import ArgumentDefinition, TypeRef, safe_identifier, to_snake_case

ResultT = TypeVar("ResultT", bound=BaseModel)


@dataclass(frozen=True)
class ResolverSignature:
    """What a resolver for ``parent_type.field_name`` receives and returns."""
    parent_type: str
    field_name: str
    arguments: tuple[ArgumentDefinition, ...]
    return_type: TypeRef

    @property
    def path(self) -> str:
        return f"{self.parent_type}.{self.field_name}"

    @property
    def python_name(self) -> str:
        """Method name used by resolver objects and the rendered Protocol."""
        return safe_identifier(to_snake_case(self.field_name))


@dataclass(frozen=True, eq=False)
class ResolverContract:
    """Server-side contract: one signature per field needing a resolver.

    ``default_fields`` lists, per type, the fields served by the default
    accessor instead.
    """
    schema_fingerprint: str
    entries: Mapping[str, Mapping[str, ResolverSignature]]
    default_fields: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "entries", MappingProxyType({
            type_name: MappingProxyType(dict(fields))
            for type_name, fields in self.entries.items()
        }))
        object.__setattr__(self, "default_fields", MappingProxyType(dict(self.default_fields)))

    def signature(self, type_name: str, field_name: str) -> ResolverSignature | None:
        return self.entries.get(type_name, {}).get(field_name)

    def is_default(self, type_name: str, field_name: str) -> bool:
        return field_name in self.default_fields.get(type_name, ())

    def paths(self) -> list[str]:
        return [signature.path for signature in self]

    def __iter__(self) -> Iterator[ResolverSignature]:
        for fields in self.entries.values():
            yield from fields.values()

    def __len__(self) -> int:
        return sum(len(fields) for fields in self.entries.values())


@dataclass(frozen=True)
class ResultField:
    """One node of an operation's narrowed result shape.

    ``type`` keeps the wrappers in SDL notation (``[User!]!``) so the
    shape renders as a plain literal in generated code.
    """
    name: str
    field_name: str
    type: str
    type_name: str
    fields: tuple["ResultField", ...] = ()

    @property
    def type_ref(self) -> TypeRef:
        return TypeRef.parse(self.type)

    @property
    def is_leaf(self) -> bool:
        return not self.fields


@dataclass(frozen=True)
class VariableSpec:
    """A variable of a client operation."""
    name: str
    type: str
    default_value: Any = None
    has_default: bool = False


@dataclass(frozen=True)
class OperationDescriptor(Generic[ResultT]):
    """Client-side artifact for one operation document.

    ``result_model`` is exactly as wide as the document's selection;
    ``variables_model`` validates the variables before a request is sent.
    """
    name: str
    kind: str
    document: str
    root_type: str
    schema_fingerprint: str
    variables: tuple[VariableSpec, ...]
    selection: tuple[ResultField, ...]
    result_model: type[ResultT] = field(compare=False, repr=False)
    variables_model: type[BaseModel] = field(compare=False, repr=False)


@dataclass(frozen=True, eq=False)
class GeneratedArtifacts:
    """Everything generated from one registry snapshot."""
    schema_fingerprint: str
    server_contract: ResolverContract
    client_artifacts: Mapping[str, OperationDescriptor]

    def __post_init__(self):
        object.__setattr__(self, "client_artifacts", MappingProxyType(dict(self.client_artifacts)))

    def operation(self, name: str) -> OperationDescriptor:
        return self.client_artifacts[name]
