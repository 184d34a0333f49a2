"""Core modules for schema-driven type generation and query execution."""

from .artifacts import (
    GeneratedArtifacts,
    OperationDescriptor,
    ResolverContract,
    ResolverSignature,
    ResultField,
    VariableSpec,
)
from .binder import BoundResolvers, ResolverBinder, bind
from .cache import NormalizedCache
from .conventions import ExplicitResolversPolicy, ScalarPropertyPolicy, TrivialFieldPolicy
from .dispatcher import RequestDispatcher, Response, default_resolver
from .errors import (
    BindingError,
    FieldResolutionError,
    GenerationError,
    GraphQLError,
    InvalidVariables,
    NetworkError,
    OperationError,
    SchemaError,
    SchemaIssue,
    ShapeMismatchError,
    SourceLocation,
    StaleOperation,
    TypegenError,
    UnknownOperation,
)
from .executor import Failed, ObservableResult, Pending, QueryExecutor, Resolved
from .generator import CodeGenerator, generate
from .hooks import AddHeaderHook, HookRunner, PostGenerateHook
from .ir import (
    ArgumentDefinition,
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
from .parser import SchemaParser
from .query_builder import QueryBuilder
from .registry import SchemaRegistry
from .scalars import (
    DateHandler,
    DateTimeHandler,
    JSONHandler,
    ScalarHandler,
    ScalarRegistry,
    UUIDHandler,
)
from .transport import HttpTransport, LocalTransport, Transport

__all__ = [
    # Errors
    "TypegenError",
    "SchemaError",
    "SchemaIssue",
    "SourceLocation",
    "GenerationError",
    "BindingError",
    "OperationError",
    "UnknownOperation",
    "InvalidVariables",
    "StaleOperation",
    "FieldResolutionError",
    "NetworkError",
    "ShapeMismatchError",
    "GraphQLError",
    # IR types
    "ArgumentDefinition",
    "FieldDefinition",
    "OperationDocument",
    "OperationKind",
    "Selection",
    "TypeDefinition",
    "TypeKind",
    "TypeRef",
    "VariableDefinition",
    "VariableRef",
    # Registry
    "SchemaParser",
    "SchemaRegistry",
    # Scalars
    "ScalarHandler",
    "ScalarRegistry",
    "DateTimeHandler",
    "DateHandler",
    "UUIDHandler",
    "JSONHandler",
    # Generation
    "TrivialFieldPolicy",
    "ScalarPropertyPolicy",
    "ExplicitResolversPolicy",
    "GeneratedArtifacts",
    "OperationDescriptor",
    "ResolverContract",
    "ResolverSignature",
    "ResultField",
    "VariableSpec",
    "CodeGenerator",
    "QueryBuilder",
    "generate",
    # Hooks
    "PostGenerateHook",
    "AddHeaderHook",
    "HookRunner",
    # Server
    "BoundResolvers",
    "ResolverBinder",
    "bind",
    "RequestDispatcher",
    "Response",
    "default_resolver",
    # Client
    "NormalizedCache",
    "Transport",
    "HttpTransport",
    "LocalTransport",
    "QueryExecutor",
    "ObservableResult",
    "Pending",
    "Failed",
    "Resolved",
]
