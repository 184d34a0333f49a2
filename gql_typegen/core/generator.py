"""Code generator: derives the resolver contract and client artifacts from a registry.

Runtime artifacts are built directly (pydantic models via ``create_model``).
The same artifacts can be rendered as Python source with Jinja2 templates.

Supports custom templates via the template_dir parameter:
    generator = CodeGenerator(registry, template_dir="./my_templates")

Template lookup order:
1. User's template directory (if provided)
2. Package default templates
"""

import ast
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ForwardRef, List, Literal, Optional

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, PackageLoader, select_autoescape
from pydantic import BaseModel, ConfigDict, Field, create_model

from .artifacts import (
    GeneratedArtifacts,
    OperationDescriptor,
    ResolverContract,
    ResolverSignature,
    ResultField,
    VariableSpec,
)
from .conventions import ScalarPropertyPolicy, TrivialFieldPolicy
from .errors import GenerationError
from .hooks import HookRunner
from .ir import (
    PYTHON_KEYWORDS,
    OperationDocument,
    Selection,
    TypeDefinition,
    TypeKind,
    TypeRef,
    plain_value,
    safe_identifier,
    to_pascal_case,
    to_snake_case,
)
from .query_builder import QueryBuilder
from .registry import SchemaRegistry
from .scalars import ScalarRegistry

logger = logging.getLogger(__name__)

RESULT_CONFIG = ConfigDict(extra="forbid", frozen=True, populate_by_name=True, protected_namespaces=())
INPUT_CONFIG = ConfigDict(extra="forbid", populate_by_name=True, protected_namespaces=())


def safe_docstring(text: str) -> str:
    """Escape text for use in docstrings."""
    if not text:
        return ""
    text = text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
    if text.endswith('"'):
        text += " "
    return text


def safe_comment(text: str) -> str:
    """Make text safe for a single-line Python comment."""
    if not text:
        return ""
    text = re.sub(r'\s+', ' ', text)
    if len(text) > 120:
        text = text[:117] + "..."
    return text.strip()


@dataclass
class ModelField:
    """A field of a generated pydantic model."""
    python_name: str
    alias: str
    annotation: Any
    annotation_src: str
    required: bool = True
    default: Any = None
    description: str | None = None


@dataclass
class ModelSpec:
    """A generated pydantic model, usable both at runtime and for rendering."""
    class_name: str
    fields: list[ModelField] = field(default_factory=list)
    frozen: bool = True
    description: str | None = None


class CodeGenerator:
    """Generates resolver contracts and client artifacts from a SchemaRegistry.

    Available templates to override:
        - server_contract.py.j2: resolver Protocol classes
        - client.py.j2: client models, descriptors and operation functions

    Example:
        generator = CodeGenerator(registry)
        artifacts = generator.generate()
        generator.write("./generated")
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        *,
        trivial_policy: TrivialFieldPolicy | None = None,
        scalars: ScalarRegistry | None = None,
        template_dir: str | None = None,
        hooks: HookRunner | None = None,
    ):
        """Initialize the code generator.

        Args:
            registry: The loaded schema registry
            trivial_policy: Decides which fields use the default accessor
                            (default: ScalarPropertyPolicy())
            scalars: Scalar handlers used for Python types
            template_dir: Optional directory with custom Jinja2 templates.
                          Templates here override the built-in templates.
            hooks: Post-generation hooks applied to rendered files
        """
        self.registry = registry
        self.trivial_policy = trivial_policy or ScalarPropertyPolicy()
        self.scalars = scalars or ScalarRegistry()
        self.hooks = hooks or HookRunner()
        self.query_builder = QueryBuilder()

        # Build template loader - custom templates take precedence
        loaders = []
        if template_dir:
            template_path = Path(template_dir)
            if template_path.is_dir():
                loaders.append(FileSystemLoader(str(template_path)))
        loaders.append(PackageLoader("gql_typegen", "templates"))

        self.env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape(),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["repr"] = repr
        self.env.filters["snake_case"] = to_snake_case
        self.env.filters["pascal_case"] = to_pascal_case
        self.env.filters["safe_docstring"] = safe_docstring
        self.env.filters["safe_comment"] = safe_comment

        self._artifacts: GeneratedArtifacts | None = None
        self._input_specs: dict[str, ModelSpec] = {}
        self._input_models: dict[str, type[BaseModel]] = {}
        self._result_specs: dict[str, list[ModelSpec]] = {}
        self._variables_specs: dict[str, ModelSpec] = {}
        self._class_names: set[str] = set()

    # -- Runtime artifacts --------------------------------------------------

    def generate(self) -> GeneratedArtifacts:
        """Generate the server contract and client artifacts (once per generator)."""
        if self._artifacts is None:
            contract = self._build_contract()
            self._build_input_models()
            descriptors = {
                doc.name: self._build_descriptor(doc) for doc in self.registry.documents()
            }
            self._artifacts = GeneratedArtifacts(
                schema_fingerprint=self.registry.fingerprint,
                server_contract=contract,
                client_artifacts=descriptors,
            )
            logger.debug(
                "Generated %d resolver signature(s) and %d client operation(s)",
                len(contract), len(descriptors),
            )
        return self._artifacts

    def _lookup(self, type_name: str, where: str) -> TypeDefinition:
        type_def = self.registry.lookup(type_name)
        if type_def is None:
            logger.error("Unknown type '%s' at %s", type_name, where)
            raise GenerationError(
                f"Unknown type '{type_name}' at {where}; the registry should have rejected it"
            )
        return type_def

    def _build_contract(self) -> ResolverContract:
        """One signature per object field, except fields the trivial policy accepts."""
        entries: dict[str, dict[str, ResolverSignature]] = {}
        defaults: dict[str, set[str]] = {}
        roots = self.registry.root_type_names

        for type_def in self.registry.object_types():
            for type_field in type_def.fields:
                target = self._lookup(type_field.type.named_type, f"{type_def.name}.{type_field.name}")
                if type_def.name not in roots and self.trivial_policy.is_trivial(
                    type_def, type_field, target
                ):
                    defaults.setdefault(type_def.name, set()).add(type_field.name)
                    continue
                entries.setdefault(type_def.name, {})[type_field.name] = ResolverSignature(
                    parent_type=type_def.name,
                    field_name=type_field.name,
                    arguments=type_field.arguments,
                    return_type=type_field.type,
                )

        return ResolverContract(
            schema_fingerprint=self.registry.fingerprint,
            entries=entries,
            default_fields={name: frozenset(fields) for name, fields in defaults.items()},
        )

    def _build_descriptor(self, doc: OperationDocument) -> OperationDescriptor:
        root = self._lookup(doc.root_type, f"operation '{doc.name}'")
        specs: list[ModelSpec] = []
        selection, result_model = self._narrow(
            root, doc.selections, self._class_name(f"{to_pascal_case(doc.name)}Result"), specs,
            doc.name,
        )
        self._result_specs[doc.name] = specs
        variables_model = self._build_variables_model(doc)

        return OperationDescriptor(
            name=doc.name,
            kind=doc.kind.value,
            document=self.query_builder.build(doc),
            root_type=doc.root_type,
            schema_fingerprint=self.registry.fingerprint,
            variables=tuple(
                VariableSpec(v.name, str(v.type), plain_value(v.default_value), v.has_default)
                for v in doc.variables
            ),
            selection=selection,
            result_model=result_model,
            variables_model=variables_model,
        )

    def _narrow(
        self,
        parent: TypeDefinition,
        selections: tuple[Selection, ...],
        class_name: str,
        specs: list[ModelSpec],
        where: str,
    ) -> tuple[tuple[ResultField, ...], type[BaseModel]]:
        """Build the result shape for a selection set: exactly the selected fields.

        Nested models are appended to ``specs`` before their parent.
        """
        result_fields = []
        model_fields = []
        names = self._python_names([s.response_key for s in selections])
        for selection, python_name in zip(selections, names):
            path = f"{where}.{selection.response_key}"
            field_def = parent.field(selection.name)
            if field_def is None:
                logger.error("Field '%s' missing on '%s' at %s", selection.name, parent.name, path)
                raise GenerationError(
                    f"Field '{selection.name}' does not exist on '{parent.name}' at {path}; "
                    f"the registry should have rejected it"
                )
            target = self._lookup(field_def.type.named_type, path)
            if target.is_leaf:
                if selection.selections:
                    raise GenerationError(f"Leaf field selected with subfields at {path}")
                children: tuple[ResultField, ...] = ()
                base = self._leaf_base(target)
            else:
                if not selection.selections:
                    raise GenerationError(f"Object field selected without subfields at {path}")
                child_class = self._class_name(class_name + to_pascal_case(selection.response_key))
                children, child_model = self._narrow(
                    target, selection.selections, child_class, specs, path
                )
                base = (child_model, child_class)

            annotation, annotation_src = self._annotation(field_def.type, *base)
            result_fields.append(ResultField(
                name=selection.response_key,
                field_name=selection.name,
                type=str(field_def.type),
                type_name=target.name,
                fields=children,
            ))
            model_fields.append(ModelField(
                python_name=python_name,
                alias=selection.response_key,
                annotation=annotation,
                annotation_src=annotation_src,
                description=field_def.description,
            ))

        spec = ModelSpec(class_name, model_fields, frozen=True, description=parent.description)
        specs.append(spec)
        return tuple(result_fields), self._create_model(spec, RESULT_CONFIG)

    def _build_input_models(self):
        """Models for input objects; references between them are lazy (by name)."""
        inputs = [t for t in self.registry.types.values() if t.kind is TypeKind.INPUT_OBJECT]
        for type_def in sorted(inputs, key=lambda t: t.name):
            self._class_names.add(type_def.name)
            names = self._python_names([f.name for f in type_def.input_fields])
            fields = []
            for input_field, python_name in zip(type_def.input_fields, names):
                target = self._lookup(input_field.type.named_type, f"{type_def.name}.{input_field.name}")
                if target.kind is TypeKind.INPUT_OBJECT:
                    base = (ForwardRef(target.name), target.name)
                else:
                    base = self._leaf_base(target)
                annotation, annotation_src = self._annotation(input_field.type, *base)
                fields.append(ModelField(
                    python_name=python_name,
                    alias=input_field.name,
                    annotation=annotation,
                    annotation_src=annotation_src,
                    required=input_field.is_required,
                    default=input_field.default_value,
                    description=input_field.description,
                ))
            spec = ModelSpec(type_def.name, fields, frozen=False, description=type_def.description)
            self._input_specs[type_def.name] = spec
            self._input_models[type_def.name] = self._create_model(spec, INPUT_CONFIG)

        namespace = dict(self._input_models)
        for model in self._input_models.values():
            model.model_rebuild(_types_namespace=namespace)

    def _build_variables_model(self, doc: OperationDocument) -> type[BaseModel]:
        names = self._python_names([v.name for v in doc.variables])
        fields = []
        for variable, python_name in zip(doc.variables, names):
            target = self._lookup(variable.type.named_type, f"{doc.name}(${variable.name})")
            if target.kind is TypeKind.INPUT_OBJECT:
                base = (self._input_models[target.name], target.name)
            else:
                base = self._leaf_base(target)
            annotation, annotation_src = self._annotation(variable.type, *base)
            fields.append(ModelField(
                python_name=python_name,
                alias=variable.name,
                annotation=annotation,
                annotation_src=annotation_src,
                required=variable.is_required,
                default=plain_value(variable.default_value),
            ))
        spec = ModelSpec(self._class_name(f"{to_pascal_case(doc.name)}Variables"), fields, frozen=False)
        self._variables_specs[doc.name] = spec
        return self._create_model(spec, INPUT_CONFIG)

    def _leaf_base(self, type_def: TypeDefinition) -> tuple[Any, str]:
        if type_def.kind is TypeKind.ENUM:
            return Literal[type_def.values], type_def.name
        handler = self.scalars.get(type_def.name)
        return handler.runtime_type, handler.python_type

    def _annotation(self, ref: TypeRef, base: Any, base_src: str) -> tuple[Any, str]:
        """Wrap a base type in the list/optional structure of ``ref``."""
        if ref.is_non_null:
            return self._unwrapped(ref.of_type, base, base_src)
        annotation, annotation_src = self._unwrapped(ref, base, base_src)
        return Optional[annotation], f"Optional[{annotation_src}]"

    def _unwrapped(self, ref: TypeRef, base: Any, base_src: str) -> tuple[Any, str]:
        if ref.kind == TypeRef.LIST:
            annotation, annotation_src = self._annotation(ref.of_type, base, base_src)
            return List[annotation], f"list[{annotation_src}]"
        return base, base_src

    def _class_name(self, candidate: str) -> str:
        """Claim a model class name, numbering it if already taken."""
        unique, counter = candidate, 2
        while unique in self._class_names:
            unique = f"{candidate}{counter}"
            counter += 1
        self._class_names.add(unique)
        return unique

    @staticmethod
    def _python_names(names: list[str]) -> list[str]:
        """Unique snake_case attribute names that do not clash with BaseModel."""
        used: set[str] = set()
        result = []
        for name in names:
            candidate = to_snake_case(name).lstrip("_") or "field"
            if candidate in PYTHON_KEYWORDS or hasattr(BaseModel, candidate):
                candidate += "_"
            unique, counter = candidate, 2
            while unique in used:
                unique = f"{candidate}_{counter}"
                counter += 1
            used.add(unique)
            result.append(unique)
        return result

    @staticmethod
    def _create_model(spec: ModelSpec, config: ConfigDict) -> type[BaseModel]:
        definitions = {}
        for model_field in spec.fields:
            default = ... if model_field.required else model_field.default
            definitions[model_field.python_name] = (
                model_field.annotation,
                Field(default, alias=model_field.alias, description=model_field.description),
            )
        return create_model(spec.class_name, __config__=config, **definitions)

    # -- Rendered source ----------------------------------------------------

    def render_server(self) -> str:
        """Render the resolver contract as Protocol classes."""
        contract = self.generate().server_contract
        types = []
        for type_name in sorted(contract.entries):
            type_def = self.registry.lookup(type_name)
            methods = []
            for signature in contract.entries[type_name].values():
                params = ["self", "parent: Any"]
                if signature.arguments:
                    params.append("*")
                # Required keyword arguments first, then the ones with defaults
                for arg in sorted(signature.arguments, key=lambda a: not a.is_required):
                    param = f"{arg.python_name}: {self._server_annotation(arg.type)}"
                    if not arg.is_required:
                        param += f" = {arg.default_value!r}" if arg.has_default else " = None"
                    params.append(param)
                methods.append({
                    "name": signature.python_name,
                    "field_name": signature.field_name,
                    "signature": ", ".join(params),
                    "returns": self._server_annotation(signature.return_type),
                    "sdl_type": str(signature.return_type),
                    "description": type_def.field(signature.field_name).description,
                })
            types.append({
                "name": type_name,
                "class_name": f"{type_name}Resolvers",
                "description": type_def.description,
                "methods": methods,
                "default_fields": sorted(contract.default_fields.get(type_name, ())),
            })
        return self._render("server_contract.py.j2", "server_contract.py", {
            "fingerprint": contract.schema_fingerprint,
            "types": types,
            "scalar_imports": self._scalar_imports(),
        })

    def _server_annotation(self, ref: TypeRef) -> str:
        target = self.registry.lookup(ref.named_type)
        if target.kind is TypeKind.SCALAR:
            base = self.scalars.get(target.name).python_type
        elif target.kind is TypeKind.ENUM:
            base = "str"
        elif target.kind is TypeKind.INPUT_OBJECT:
            base = "dict[str, Any]"
        else:
            base = "Any"
        return self._annotation(ref, None, base)[1]

    def render_client(self) -> str:
        """Render client models, operation descriptors and typed operation functions."""
        artifacts = self.generate()
        operations = []
        for doc in self.registry.documents():
            descriptor = artifacts.client_artifacts[doc.name]
            variables_spec = self._variables_specs[doc.name]
            operations.append({
                "descriptor": descriptor,
                "constant": to_snake_case(doc.name).upper(),
                "function": safe_identifier(to_snake_case(doc.name)),
                "result_class": self._result_specs[doc.name][-1].class_name,
                "result_specs": self._result_specs[doc.name],
                "variables_spec": variables_spec,
                "required_params": [f for f in variables_spec.fields if f.required],
                "optional_params": [f for f in variables_spec.fields if not f.required],
            })
        enums = [
            {"name": t.name, "values": t.values}
            for _, t in sorted(self.registry.types.items())
            if t.kind is TypeKind.ENUM
        ]
        model_classes = [spec.class_name for spec in self._input_specs.values()]
        for op in operations:
            model_classes.extend(spec.class_name for spec in op["result_specs"])
            model_classes.append(op["variables_spec"].class_name)
        return self._render("client.py.j2", "client.py", {
            "fingerprint": artifacts.schema_fingerprint,
            "enums": enums,
            "input_specs": list(self._input_specs.values()),
            "operations": operations,
            "model_classes": model_classes,
            "scalar_imports": self._scalar_imports(),
        })

    def _scalar_imports(self) -> list[str]:
        names = {n for n, t in self.registry.types.items() if t.kind is TypeKind.SCALAR}
        return sorted(self.scalars.get_imports(names))

    def _render(self, template_name: str, filename: str, context: dict[str, Any]) -> str:
        """Render a template, validate its Python syntax and run post hooks."""
        template = self.env.get_template(template_name)
        content = template.render(context)
        try:
            ast.parse(content)
        except SyntaxError as e:
            raise GenerationError(
                f"Generated invalid Python for {filename}: {e}\nTemplate: {template_name}"
            ) from e
        return self.hooks.run_post_hooks(filename, content)

    def write(
        self,
        output_dir: str,
        server_module: str = "server_contract.py",
        client_module: str = "client.py",
    ) -> list[str]:
        """Render and write both modules. Returns the written paths."""
        os.makedirs(output_dir, exist_ok=True)
        written = []
        for filename, content in (
            (server_module, self.render_server()),
            (client_module, self.render_client()),
        ):
            full_path = os.path.join(output_dir, filename)
            with open(full_path, "w") as f:
                f.write(content)
            written.append(full_path)
        return written


def generate(
    registry: SchemaRegistry,
    *,
    trivial_policy: TrivialFieldPolicy | None = None,
    scalars: ScalarRegistry | None = None,
) -> GeneratedArtifacts:
    """Generate the server contract and client artifacts for a registry."""
    return CodeGenerator(registry, trivial_policy=trivial_policy, scalars=scalars).generate()
