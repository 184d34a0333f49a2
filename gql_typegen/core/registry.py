"""Schema registry: the validated, immutable view of a schema and its documents."""

import hashlib
import logging
from types import MappingProxyType
from typing import Iterable, Mapping

from .ir import OperationDocument, OperationKind, TypeDefinition, TypeKind
from .parser import SchemaParser

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """Holds the type definitions and operation documents of one schema.

    A registry is immutable once loaded. Reloading means calling ``load``
    again and replacing the old registry wholesale; the new registry gets
    a new ``fingerprint`` so artifacts generated from the old one can be
    told apart.

    Example:
        registry = SchemaRegistry.load('''
            type Query { users: [User!]! }
            type User { name: String }
            query ALL_USERS { users { name } }
        ''')
        registry.lookup("User").field("name")
    """

    def __init__(
        self,
        types: Mapping[str, TypeDefinition],
        root_types: Mapping[OperationKind, str],
        documents: Iterable[OperationDocument],
    ):
        self._types = MappingProxyType(dict(types))
        self._root_types = MappingProxyType(dict(root_types))
        self._documents = tuple(documents)
        self._documents_by_name = MappingProxyType({d.name: d for d in self._documents})
        self.fingerprint = self._compute_fingerprint()

    @classmethod
    def load(cls, source: str, *, name: str = "schema.graphql") -> "SchemaRegistry":
        """Load a registry from SDL text. Raises SchemaError; never returns a partial registry."""
        return cls._from_parser(SchemaParser([(name, source)]))

    @classmethod
    def load_sources(cls, sources: list[tuple[str, str]]) -> "SchemaRegistry":
        """Load a registry from several (source name, text) pairs."""
        return cls._from_parser(SchemaParser(sources))

    @classmethod
    def load_path(cls, schema_path: str) -> "SchemaRegistry":
        """Load a registry from a schema file or a directory of schema files."""
        return cls._from_parser(SchemaParser.from_path(schema_path))

    @classmethod
    def _from_parser(cls, parser: SchemaParser) -> "SchemaRegistry":
        parsed = parser.parse_all()
        registry = cls(parsed.types, parsed.root_types, parsed.documents)
        logger.debug("Loaded schema registry %s", registry.fingerprint[:12])
        return registry

    def lookup(self, type_name: str) -> TypeDefinition | None:
        """Look up a type definition by name; built-in scalars included."""
        return self._types.get(type_name)

    def documents(self) -> tuple[OperationDocument, ...]:
        """All operation documents, in declaration order."""
        return self._documents

    def document(self, name: str) -> OperationDocument | None:
        return self._documents_by_name.get(name)

    def root_type(self, kind: OperationKind) -> TypeDefinition | None:
        name = self._root_types.get(kind)
        return self._types.get(name) if name else None

    @property
    def types(self) -> Mapping[str, TypeDefinition]:
        return self._types

    @property
    def root_types(self) -> Mapping[OperationKind, str]:
        return self._root_types

    @property
    def root_type_names(self) -> frozenset[str]:
        return frozenset(self._root_types.values())

    def object_types(self) -> list[TypeDefinition]:
        """Object types in name order."""
        return [t for _, t in sorted(self._types.items()) if t.kind is TypeKind.OBJECT]

    def _compute_fingerprint(self) -> str:
        """Hash of the structural content (source locations excluded)."""
        content = repr((
            sorted(self._types.items()),
            sorted((k.value, v) for k, v in self._root_types.items()),
            self._documents,
        ))
        return hashlib.sha256(content.encode()).hexdigest()

    def __repr__(self) -> str:
        return (
            f"SchemaRegistry(types={len(self._types)}, documents={len(self._documents)}, "
            f"fingerprint={self.fingerprint[:12]!r})"
        )
