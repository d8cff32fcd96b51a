from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from portgen.core.types import TypeKind

DEFAULT_VALUE_TYPES: Tuple[str, ...] = ("int", "float", "bool", "complex", "str", "bytes")


@dataclass(frozen=True)
class TypeDescriptor:
    name: str
    kind: TypeKind
    expression: str
    generic_arg: Optional[str] = None
    # Number of type arguments seen; only a single one counts as generic_arg.
    arg_count: int = 0

    @property
    def is_value(self) -> bool:
        return self.kind is TypeKind.VALUE


@dataclass(frozen=True)
class FieldDecl:
    name: str
    tags: Tuple[str, ...] = ()
    type: Optional[TypeDescriptor] = None
    element_type: Optional[TypeDescriptor] = None
    location: Optional[str] = None


@dataclass(frozen=True)
class ClassDecl:
    name: str
    module: Optional[str] = None
    type_params: Tuple[str, ...] = ()
    bases: Tuple[str, ...] = ()
    fields: Tuple[FieldDecl, ...] = field(default_factory=tuple)
    location: Optional[str] = None

    @property
    def namespace(self) -> Optional[str]:
        if not self.module or "." not in self.module:
            return None
        return self.module.rsplit(".", 1)[0]

    @property
    def is_generic(self) -> bool:
        return bool(self.type_params)

    @property
    def companion_name(self) -> str:
        return f"{self.name}Ports"


class TypeModel(ABC):
    """Read-only view of annotated class declarations."""

    @abstractmethod
    def classes(self) -> List[ClassDecl]:
        """Class declarations in declaration order."""
        ...

    def declared_value_types(self) -> Set[str]:
        """Value type names this model declares itself (enums, named tuples, frozen dataclasses)."""
        return set()

    def share_value_types(self, names: Set[str]) -> None:
        """Accept value type names declared by the other models of the same run."""
        pass
