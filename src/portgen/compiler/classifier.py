from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from portgen.compiler.pipeline import ClassUnit, DiagnosticSink, GenerationError, GeneratorConfig, Pass
from portgen.core.types import PortRole
from portgen.model.type_model import ClassDecl, FieldDecl


@dataclass(frozen=True)
class PortConfig:
    role: PortRole
    no_auto_update: bool = False


@dataclass
class ClassifiedFields:
    inputs: List[Tuple[FieldDecl, PortConfig]] = field(default_factory=list)
    input_arrays: List[Tuple[FieldDecl, PortConfig]] = field(default_factory=list)
    outputs: List[Tuple[FieldDecl, PortConfig]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.inputs or self.input_arrays or self.outputs)


def port_config(decl: ClassDecl, fld: FieldDecl, diag: Optional[DiagnosticSink] = None) -> Optional[PortConfig]:
    """Map a field's tags to its role; None for untagged fields."""
    tags = set(fld.tags)
    if not tags:
        return None

    if diag is not None:
        for tag, count in Counter(fld.tags).items():
            if count > 1:
                diag.warning(
                    "PORT002",
                    f"Field '{decl.name}.{fld.name}' repeats tag '{tag}'",
                    location=fld.location,
                )

    no_update = "InputNoUpdate" in tags
    roles = []
    if "Input" in tags or (no_update and "InputArray" not in tags):
        roles.append(PortRole.INPUT)
    if "InputArray" in tags:
        roles.append(PortRole.INPUT_ARRAY)
    if "Output" in tags:
        roles.append(PortRole.OUTPUT)

    if len(roles) > 1:
        raise GenerationError(
            "PORT001",
            f"Field '{decl.name}.{fld.name}' has conflicting port tags {sorted(tags)}",
            location=fld.location,
        )

    return PortConfig(role=roles[0], no_auto_update=no_update)


def _base_name(base: str) -> str:
    # "gen.HolderPorts[T]" -> "HolderPorts"
    return base.split("[", 1)[0].rsplit(".", 1)[-1].strip()


def classify(decl: ClassDecl, diag: Optional[DiagnosticSink] = None) -> ClassifiedFields:
    result = ClassifiedFields()
    buckets = {
        PortRole.INPUT: result.inputs,
        PortRole.INPUT_ARRAY: result.input_arrays,
        PortRole.OUTPUT: result.outputs,
    }
    for fld in decl.fields:
        config = port_config(decl, fld, diag)
        if config is not None:
            buckets[config.role].append((fld, config))
    return result


class ClassifyPass(Pass):
    name = "ClassifyPass"

    def run(self, unit: ClassUnit, config: GeneratorConfig, diag: DiagnosticSink) -> None:
        unit.classified = classify(unit.decl, diag)
        if unit.classified.is_empty():
            unit.skipped = True
            return

        decl = unit.decl
        if decl.bases and _base_name(decl.bases[0]) != decl.companion_name:
            diag.warning(
                "PORT003",
                f"Class '{decl.name}' should list '{decl.companion_name}' as its first base, "
                f"generated methods are shadowed by '{decl.bases[0]}'",
                location=decl.location,
            )
