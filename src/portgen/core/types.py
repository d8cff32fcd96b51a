from enum import Enum
from typing import NewType

PortName = NewType("PortName", str)
ArtifactKey = NewType("ArtifactKey", str)


class PortRole(Enum):
    INPUT = "Input"
    INPUT_ARRAY = "InputArray"
    OUTPUT = "Output"


class TypeKind(Enum):
    VALUE = "value"
    REFERENCE = "reference"
