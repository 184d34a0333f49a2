"""Resolver binder: checks implementations against a resolver contract.

Binding is all-or-nothing and happens once, at startup. Every problem is
collected and reported in a single BindingError.

Implementations are keyed by GraphQL type name. Each value is either a
mapping of field name to callable, or an object with one method per
field named after the snake_case field name (the shape of the rendered
``<Type>Resolvers`` Protocol):

    class QueryResolvers:
        async def user(self, parent, *, id):
            return await db.get_user(id)

    resolvers = bind(artifacts.server_contract, {
        "Query": QueryResolvers(),
        "User": {"fullName": lambda user: f"{user.first} {user.last}"},
    })

A resolver is called as ``resolver(parent, **arguments)`` with the
arguments under their snake_case Python names, and may return an
awaitable.
"""

import inspect
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping

from .artifacts import ResolverContract, ResolverSignature
from .errors import BindingError
from .ir import safe_identifier, to_snake_case

logger = logging.getLogger(__name__)

Resolver = Callable[..., Any]

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
_VARIADIC = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)


@dataclass(frozen=True, eq=False)
class BoundResolvers:
    """Immutable table of resolvers, validated against one contract."""
    schema_fingerprint: str
    resolvers: Mapping[str, Mapping[str, Resolver]]

    def __post_init__(self):
        object.__setattr__(self, "resolvers", MappingProxyType({
            type_name: MappingProxyType(dict(fields))
            for type_name, fields in self.resolvers.items()
        }))

    def resolver(self, type_name: str, field_name: str) -> Resolver | None:
        """The bound resolver, or None if the field uses the default accessor."""
        return self.resolvers.get(type_name, {}).get(field_name)

    def paths(self) -> list[str]:
        return [f"{t}.{f}" for t, fields in self.resolvers.items() for f in fields]

    def __iter__(self) -> Iterator[tuple[str, str]]:
        for type_name, fields in self.resolvers.items():
            for field_name in fields:
                yield type_name, field_name

    def __len__(self) -> int:
        return sum(len(fields) for fields in self.resolvers.values())


class ResolverBinder:
    """Binds resolver implementations to a ResolverContract."""

    def __init__(self, contract: ResolverContract):
        self.contract = contract
        self._known_types = set(contract.entries) | set(contract.default_fields)

    def bind(self, implementations: Mapping[str, Any]) -> BoundResolvers:
        """Validate and bind. Raises BindingError listing every problem at once."""
        missing: set[str] = set()
        mismatched: dict[str, str] = {}
        bound: dict[str, dict[str, Resolver]] = {}

        for type_name, implementation in implementations.items():
            if type_name not in self._known_types:
                mismatched[type_name] = "no object type with this name in the contract"
            elif isinstance(implementation, Mapping):
                for field_name in implementation:
                    if not self._is_known_field(type_name, field_name):
                        mismatched[f"{type_name}.{field_name}"] = "field is not defined in the schema"

        for signature in self.contract:
            implementation = implementations.get(signature.parent_type)
            resolver = self._find(implementation, signature.field_name)
            if resolver is None:
                missing.add(signature.path)
                continue
            problem = self._check(resolver, signature)
            if problem:
                mismatched[signature.path] = problem
                continue
            bound.setdefault(signature.parent_type, {})[signature.field_name] = resolver

        # Trivial fields may be overridden; they take the parent only
        for type_name, field_names in self.contract.default_fields.items():
            implementation = implementations.get(type_name)
            for field_name in sorted(field_names):
                resolver = self._find(implementation, field_name)
                if resolver is None:
                    continue
                problem = self._check(resolver, None)
                if problem:
                    mismatched[f"{type_name}.{field_name}"] = problem
                else:
                    bound.setdefault(type_name, {})[field_name] = resolver

        if missing or mismatched:
            logger.error(
                "Binding failed: %d missing and %d mismatched resolver(s)",
                len(missing), len(mismatched),
            )
            raise BindingError(missing, mismatched)

        resolvers = BoundResolvers(self.contract.schema_fingerprint, bound)
        logger.debug("Bound %d resolver(s)", len(resolvers))
        return resolvers

    def _is_known_field(self, type_name: str, field_name: str) -> bool:
        return (
            self.contract.signature(type_name, field_name) is not None
            or self.contract.is_default(type_name, field_name)
        )

    @staticmethod
    def _find(implementation: Any, field_name: str) -> Resolver | None:
        if implementation is None:
            return None
        if isinstance(implementation, Mapping):
            resolver = implementation.get(field_name)
        else:
            resolver = getattr(implementation, safe_identifier(to_snake_case(field_name)), None)
        return resolver if callable(resolver) else None

    @staticmethod
    def _check(resolver: Resolver, signature: ResolverSignature | None) -> str | None:
        """Describe why ``resolver`` cannot serve ``signature``, or return None."""
        try:
            params = list(inspect.signature(resolver).parameters.values())
        except (TypeError, ValueError):
            # Builtins without introspectable signatures are taken on trust
            return None

        accepts_any_keyword = any(p.kind is inspect.Parameter.VAR_KEYWORD for p in params)
        positional = [p for p in params if p.kind in _POSITIONAL]
        if not positional and not any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in params):
            return "resolver must accept the parent value as its first positional parameter"
        rest = params[1:] if positional and params[0] is positional[0] else params

        expected = {a.python_name: a for a in signature.arguments} if signature else {}
        keywords = {
            p.name for p in rest
            if p.kind in (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)
        }
        problems = []
        for python_name, argument in expected.items():
            if python_name not in keywords and not accepts_any_keyword:
                problems.append(f"missing parameter '{python_name}' for argument '{argument.name}'")
        for p in rest:
            if p.kind in _VARIADIC or p.default is not inspect.Parameter.empty:
                continue
            if p.name not in expected:
                problems.append(f"unexpected required parameter '{p.name}'")
            elif not expected[p.name].is_required and not expected[p.name].has_default:
                problems.append(f"parameter '{p.name}' needs a default; its argument is optional")
        return "; ".join(problems) or None


def bind(contract: ResolverContract, implementations: Mapping[str, Any]) -> BoundResolvers:
    """Bind resolver implementations to a contract. Raises BindingError."""
    return ResolverBinder(contract).bind(implementations)
