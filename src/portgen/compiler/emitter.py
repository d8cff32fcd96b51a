"""
Emission of the companion mixin for one port schema.

Every dispatch method has the same shape::

    def get_array_size(self, field_name: str) -> int:
        match field_name:
            case "weights":
                return len(self._weights_array)
        return super().get_array_size(field_name)

Each class level only knows its own ports; anything it does not match goes
up the MRO unchanged (names) or shifted by its own port count (indices).
"""
import ast
import builtins
from typing import List, Sequence, Set, Tuple

from portgen.compiler.pipeline import ClassUnit, DiagnosticSink, GenerationError, GeneratorConfig, Pass
from portgen.compiler.schema import Port, PortSchema
from portgen.compiler.writer import IndentedWriter
from portgen.core.types import PortRole

HEADER = "# This file is auto-generated, do not edit."

# Ordered import list of portgen.core.node helpers generated code may use.
_NODE_HELPERS = (
    "EMPTY_CONNECTION",
    "BaseNode",
    "Connection",
    "base_value_getter",
    "resolve_port_type",
    "safe_cast",
)

Case = Tuple[str, Sequence[str]]


class EmitContext:
    def __init__(self, schema: PortSchema, config: GeneratorConfig):
        self.schema = schema
        self.config = config
        self.w = IndentedWriter()
        self.helpers: Set[str] = {"BaseNode", "Connection"}

    def use(self, helper: str) -> str:
        self.helpers.add(helper)
        return helper


def _is_builtin_expression(expression: str) -> bool:
    for node in ast.walk(ast.parse(expression, mode="eval")):
        if isinstance(node, ast.Attribute):
            return False
        if isinstance(node, ast.Name) and not hasattr(builtins, node.id):
            return False
    return True


def type_ref(ctx: EmitContext, port: Port) -> str:
    """Expression evaluating to the runtime class used for a reference-typed read."""
    decl = ctx.schema.class_decl
    desc = port.type
    if desc.name in decl.type_params:
        # A type variable cannot narrow at runtime.
        return "object"
    if _is_builtin_expression(desc.expression):
        return desc.expression
    if decl.module is None:
        raise GenerationError(
            "MOD001",
            f"Cannot derive the module of '{decl.name}', so the type of port '{port.name}' "
            f"({desc.expression}) cannot be resolved at runtime; pass an import root containing the file",
            location=decl.location,
        )
    ctx.use("resolve_port_type")
    element = ", element=True" if port.role is PortRole.INPUT_ARRAY else ""
    return f'resolve_port_type(_SOURCE_MODULE, "{decl.name}", "{port.name}"{element})'


def read_expr(ctx: EmitContext, port: Port, node: str, field_name: str) -> str:
    if port.type.is_value:
        return f"{node}.get_value_{port.type.name}({field_name})"
    return f"{node}.get_value_class({field_name}, {type_ref(ctx, port)})"


def emit_dispatch(ctx: EmitContext, signature: str, subject: str, cases: List[Case], fallback: str) -> None:
    w = ctx.w
    with w.block(f"def {signature}"):
        if cases:
            with w.block(f"match {subject}"):
                for label, body in cases:
                    with w.block(f"case {label}"):
                        for text in body:
                            w.line(text)
        w.line(fallback)
    w.blank()


def _name_label(port: Port) -> str:
    return f'"{port.name}"'


# -- state ---------------------------------------------------------------


def emit_state(ctx: EmitContext) -> None:
    # Left unannotated: resolve_port_type reads the node class's type hints,
    # which walk this mixin too.
    w = ctx.w
    for port in ctx.schema.inputs:
        w.line(f"{port.node_attr} = None")
        w.line(f"{port.field_name_attr} = None")
    for port in ctx.schema.input_arrays:
        w.line(f"{port.array_attr} = ()")
    w.blank()


# -- outputs -------------------------------------------------------------


def emit_get_value_class(ctx: EmitContext) -> None:
    ports = ctx.schema.reference_outputs
    if not ports:
        return
    ctx.use("safe_cast")
    cases = [(_name_label(p), [f"return safe_cast(self.{p.name}, cls)"]) for p in ports]
    emit_dispatch(
        ctx,
        "get_value_class(self, field_name: str, cls: Type[Any]) -> Any",
        "field_name",
        cases,
        "return super().get_value_class(field_name, cls)",
    )


def emit_get_value_typed(ctx: EmitContext) -> None:
    groups = ctx.schema.value_groups
    if groups:
        ctx.use("base_value_getter")
    for type_name, ports in groups.items():
        cases = [(_name_label(p), [f"return self.{p.name}"]) for p in ports]
        emit_dispatch(
            ctx,
            f"get_value_{type_name}(self, field_name: str) -> Any",
            "field_name",
            cases,
            f'return base_value_getter(super(), "{type_name}")(field_name)',
        )


# -- scalar inputs -------------------------------------------------------


def emit_set_connected_node(ctx: EmitContext) -> None:
    ports = ctx.schema.inputs
    if not ports:
        return
    cases = [
        (
            _name_label(p),
            [
                f"self.{p.node_attr} = output_node",
                f"self.{p.field_name_attr} = output_field",
                "return",
            ],
        )
        for p in ports
    ]
    emit_dispatch(
        ctx,
        "set_connected_node(self, input_field: str, output_node: Optional[BaseNode], output_field: Optional[str]) -> None",
        "input_field",
        cases,
        "super().set_connected_node(input_field, output_node, output_field)",
    )


def emit_get_connected_node(ctx: EmitContext) -> None:
    ports = ctx.schema.inputs
    if not ports:
        return
    cases = [(_name_label(p), [f"return Connection(self.{p.node_attr}, self.{p.field_name_attr})"]) for p in ports]
    emit_dispatch(
        ctx,
        "get_connected_node(self, field_name: str) -> Tuple[Optional[BaseNode], Optional[str]]",
        "field_name",
        cases,
        "return super().get_connected_node(field_name)",
    )


# -- update --------------------------------------------------------------


def emit_update_values(ctx: EmitContext) -> None:
    schema = ctx.schema
    if not (schema.inputs or schema.input_arrays):
        return
    w = ctx.w
    with w.block("def update_values(self) -> None"):
        for port in schema.inputs:
            node = f"self.{port.node_attr}"
            with w.block(f"if {node} is not None"):
                if ctx.config.eager_inputs and not port.no_auto_update:
                    w.line(f"{node}.update_values()")
                w.line(f"self.{port.name} = {read_expr(ctx, port, node, f'self.{port.field_name_attr}')}")
            w.blank()

        for port in schema.input_arrays:
            connections = f"self.{port.array_attr}"
            with w.block(f'if not isinstance(getattr(self, "{port.name}", None), list) or len(self.{port.name}) != len({connections})'):
                w.line(f"self.{port.name} = [None] * len({connections})")
            with w.block(f"for i, connection in enumerate({connections})"):
                with w.block("if connection.node is None"):
                    w.line("continue")
                if not port.no_auto_update:
                    w.line("connection.node.update_values()")
                w.line(f"self.{port.name}[i] = {read_expr(ctx, port, 'connection.node', 'connection.field_name')}")
            w.blank()

        w.line("super().update_values()")
    w.blank()


# -- array inputs --------------------------------------------------------


def emit_get_array_size(ctx: EmitContext) -> None:
    ports = ctx.schema.input_arrays
    if not ports:
        return
    cases = [(_name_label(p), [f"return len(self.{p.array_attr})"]) for p in ports]
    emit_dispatch(
        ctx,
        "get_array_size(self, field_name: str) -> int",
        "field_name",
        cases,
        "return super().get_array_size(field_name)",
    )


def emit_set_connected_node_array(ctx: EmitContext) -> None:
    ports = ctx.schema.input_arrays
    if not ports:
        return
    ctx.use("EMPTY_CONNECTION")
    cases = []
    for p in ports:
        cases.append(
            (
                _name_label(p),
                [
                    "if array_index < 0:",
                    '    raise IndexError(f"array index must not be negative, got {array_index}")',
                    f"array = list(self.{p.array_attr})",
                    "if len(array) <= array_index:",
                    "    array.extend([EMPTY_CONNECTION] * (array_index + 1 - len(array)))",
                    "array[array_index] = Connection(output_node, output_field)",
                    "while array and array[-1].node is None:",
                    "    array.pop()",
                    f"self.{p.array_attr} = tuple(array)",
                    "return",
                ],
            )
        )
    emit_dispatch(
        ctx,
        "set_connected_node_array(self, input_field: str, output_node: Optional[BaseNode], "
        "output_field: Optional[str], array_index: int) -> None",
        "input_field",
        cases,
        "super().set_connected_node_array(input_field, output_node, output_field, array_index)",
    )


def emit_get_connected_node_array(ctx: EmitContext) -> None:
    ports = ctx.schema.input_arrays
    if not ports:
        return
    cases = [
        (
            _name_label(p),
            [
                f"if 0 <= array_index < len(self.{p.array_attr}):",
                f"    return self.{p.array_attr}[array_index]",
                "return None, None",
            ],
        )
        for p in ports
    ]
    emit_dispatch(
        ctx,
        "get_connected_node_array(self, field_name: str, array_index: int) -> Tuple[Optional[BaseNode], Optional[str]]",
        "field_name",
        cases,
        "return super().get_connected_node_array(field_name, array_index)",
    )


# -- counts and indices --------------------------------------------------


def emit_counts(ctx: EmitContext) -> None:
    w = ctx.w
    schema = ctx.schema
    with w.block("def get_node_count(self) -> int"):
        w.line(f"return {len(schema.inputs)} + super().get_node_count()")
    w.blank()
    with w.block("def get_node_array_count(self) -> int"):
        w.line(f"return {len(schema.input_arrays)} + super().get_node_array_count()")
    w.blank()

    ports = schema.input_arrays
    if not ports:
        return
    cases = [(str(i), [f"return len(self.{p.array_attr})"]) for i, p in enumerate(ports)]
    emit_dispatch(
        ctx,
        "get_node_array_element_count(self, index: int) -> int",
        "index",
        cases,
        f"return super().get_node_array_element_count(index - {len(ports)})",
    )


def emit_get_node_at_index(ctx: EmitContext) -> None:
    ports = ctx.schema.inputs
    if not ports:
        return
    cases = []
    for i, p in enumerate(ports):
        body = ["return None"] if p.no_auto_update else [f"return self.{p.node_attr}"]
        cases.append((str(i), body))
    emit_dispatch(
        ctx,
        "get_node_at_index(self, index: int) -> Optional[BaseNode]",
        "index",
        cases,
        f"return super().get_node_at_index(index - {len(ports)})",
    )


def emit_get_node_at_array_index(ctx: EmitContext) -> None:
    ports = ctx.schema.input_arrays
    if not ports:
        return
    cases = []
    for i, p in enumerate(ports):
        if p.no_auto_update:
            body = ["return None"]
        else:
            body = [
                f"if 0 <= element_index < len(self.{p.array_attr}):",
                f"    return self.{p.array_attr}[element_index].node",
                "return None",
            ]
        cases.append((str(i), body))
    emit_dispatch(
        ctx,
        "get_node_at_array_index(self, array_index: int, element_index: int) -> Optional[BaseNode]",
        "array_index",
        cases,
        f"return super().get_node_at_array_index(array_index - {len(ports)}, element_index)",
    )


METHOD_EMITTERS = (
    emit_get_value_class,
    emit_get_value_typed,
    emit_set_connected_node,
    emit_get_connected_node,
    emit_update_values,
    emit_get_array_size,
    emit_set_connected_node_array,
    emit_get_connected_node_array,
    emit_counts,
    emit_get_node_at_index,
    emit_get_node_at_array_index,
)


def emit_companion(schema: PortSchema, config: GeneratorConfig) -> str:
    decl = schema.class_decl
    ctx = EmitContext(schema, config)
    source = f"{decl.module}.{decl.name}" if decl.module else decl.name

    # Body first so the import list only names what the body uses.
    base = f"(Generic[{', '.join(decl.type_params)}])" if decl.is_generic else ""
    with ctx.w.block(f"class {decl.companion_name}{base}"):
        ctx.w.line(f'"""Port dispatch for {source}."""')
        ctx.w.blank()
        emit_state(ctx)
        for emit in METHOD_EMITTERS:
            emit(ctx)

    out = IndentedWriter()
    out.line(HEADER)
    out.line(f"# Source: {source}")
    out.blank()
    out.line("from __future__ import annotations")
    out.blank()
    typing_names = ["Any", "Optional", "Tuple", "Type"]
    if decl.is_generic:
        typing_names = ["Any", "Generic", "Optional", "Tuple", "Type", "TypeVar"]
    out.line(f"from typing import {', '.join(typing_names)}")
    out.blank()
    helpers = [name for name in _NODE_HELPERS if name in ctx.helpers]
    out.line(f"from portgen.core.node import {', '.join(helpers)}")
    out.blank()
    out.line(f"_SOURCE_MODULE = {decl.module!r}")
    for param in decl.type_params:
        out.line(f'{param} = TypeVar("{param}")')
    out.blank()
    out.line(f'__all__ = ["{decl.companion_name}"]')
    return str(out) + "\n\n" + str(ctx.w)


class EmitPass(Pass):
    name = "EmitPass"

    def run(self, unit: ClassUnit, config: GeneratorConfig, diag: DiagnosticSink) -> None:
        unit.code = emit_companion(unit.schema, config)
