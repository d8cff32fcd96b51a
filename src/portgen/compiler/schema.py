from dataclasses import dataclass, field
from typing import Dict, List, Optional

from portgen.compiler.classifier import ClassifiedFields, PortConfig
from portgen.compiler.pipeline import ClassUnit, DiagnosticSink, GenerationError, GeneratorConfig, Pass
from portgen.core.types import PortName, PortRole
from portgen.model.type_model import ClassDecl, FieldDecl, TypeDescriptor


@dataclass(frozen=True)
class Port:
    name: PortName
    role: PortRole
    # Element type for InputArray ports.
    type: TypeDescriptor
    no_auto_update: bool = False

    @property
    def node_attr(self) -> str:
        return f"_{self.name}_node"

    @property
    def field_name_attr(self) -> str:
        return f"_{self.name}_field_name"

    @property
    def array_attr(self) -> str:
        return f"_{self.name}_array"


@dataclass
class PortSchema:
    class_decl: ClassDecl
    inputs: List[Port] = field(default_factory=list)
    input_arrays: List[Port] = field(default_factory=list)
    outputs: List[Port] = field(default_factory=list)

    @property
    def reference_outputs(self) -> List[Port]:
        return [p for p in self.outputs if not p.type.is_value]

    @property
    def value_groups(self) -> Dict[str, List[Port]]:
        groups: Dict[str, List[Port]] = {}
        for port in self.outputs:
            if port.type.is_value:
                groups.setdefault(port.type.name, []).append(port)
        return groups


def _port(decl: ClassDecl, fld: FieldDecl, config: PortConfig, diag: DiagnosticSink) -> Port:
    if config.role is PortRole.INPUT_ARRAY:
        if fld.type is None or fld.element_type is None:
            raise GenerationError(
                "TYPE003",
                f"Array input '{decl.name}.{fld.name}' must be declared as list[T] or tuple[T, ...] with a resolvable T",
                location=fld.location,
            )
        port_type = fld.element_type
    else:
        if fld.type is None:
            raise GenerationError(
                "TYPE001",
                f"Cannot resolve the declared type of '{decl.name}.{fld.name}'",
                location=fld.location,
            )
        port_type = fld.type

    if port_type.arg_count > 1:
        diag.warning(
            "TYPE002",
            f"Port '{decl.name}.{fld.name}' type '{port_type.expression}' has {port_type.arg_count} type arguments; "
            f"it is read through its full expression",
            location=fld.location,
        )
    if port_type.is_value and not port_type.name.isidentifier():
        raise GenerationError(
            "TYPE004",
            f"Value type '{port_type.name}' of '{decl.name}.{fld.name}' cannot name a getter",
            location=fld.location,
        )

    return Port(
        name=PortName(fld.name),
        role=config.role,
        type=port_type,
        no_auto_update=config.no_auto_update,
    )


def build_schema(decl: ClassDecl, classified: ClassifiedFields, diag: Optional[DiagnosticSink] = None) -> PortSchema:
    diag = diag if diag is not None else DiagnosticSink()
    schema = PortSchema(class_decl=decl)
    targets = [
        (classified.inputs, schema.inputs),
        (classified.input_arrays, schema.input_arrays),
        (classified.outputs, schema.outputs),
    ]
    for source, target in targets:
        for fld, config in source:
            target.append(_port(decl, fld, config, diag))
    return schema


class SchemaPass(Pass):
    name = "SchemaPass"

    def run(self, unit: ClassUnit, config: GeneratorConfig, diag: DiagnosticSink) -> None:
        unit.schema = build_schema(unit.decl, unit.classified, diag)
