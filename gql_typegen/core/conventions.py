"""Trivial-field policies.

A trivial field is served by the default accessor (key or attribute of the
parent value with the field's name) and gets no entry in the resolver
contract. Which fields count as trivial is a convention, so it is pluggable.

Example usage:
    from gql_typegen.core.conventions import ScalarPropertyPolicy

    # Only User.name and User.email may use the default accessor
    policy = ScalarPropertyPolicy(property_names={"User": {"name", "email"}})
    artifacts = generate(registry, trivial_policy=policy)
"""

from typing import Mapping, Protocol, runtime_checkable

from .ir import FieldDefinition, TypeDefinition


@runtime_checkable
class TrivialFieldPolicy(Protocol):
    """Protocol deciding which fields need no explicit resolver."""

    def is_trivial(
        self, parent: TypeDefinition, field: FieldDefinition, target: TypeDefinition
    ) -> bool:
        """Return True if ``parent.field`` can be served by the default accessor.

        Args:
            parent: The object type declaring the field
            field: The field definition
            target: The named type the field returns (unwrapped)
        """
        ...


class ScalarPropertyPolicy:
    """Argument-less scalar/enum fields use the default accessor.

    With ``property_names``, a field is trivial only if its name is listed
    for its parent type; types not in the mapping get no trivial fields.
    Lists of scalars are trivial too unless ``include_lists`` is False.
    """

    def __init__(
        self,
        property_names: Mapping[str, set[str] | frozenset[str]] | None = None,
        include_lists: bool = True,
    ):
        self.property_names = property_names
        self.include_lists = include_lists

    def is_trivial(
        self, parent: TypeDefinition, field: FieldDefinition, target: TypeDefinition
    ) -> bool:
        if field.arguments or not target.is_leaf:
            return False
        if field.type.is_list and not self.include_lists:
            return False
        if self.property_names is None:
            return True
        return field.name in self.property_names.get(parent.name, ())


class ExplicitResolversPolicy:
    """No field is trivial; every field needs an explicit resolver."""

    def is_trivial(
        self, parent: TypeDefinition, field: FieldDefinition, target: TypeDefinition
    ) -> bool:
        return False
