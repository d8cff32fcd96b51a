from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from loguru import logger

from portgen.core.types import ArtifactKey
from portgen.model.type_model import ClassDecl


class DuplicateArtifactError(KeyError):
    def __str__(self) -> str:
        return f"Artifact '{self.args[0]}' is already registered"


@dataclass(frozen=True)
class Artifact:
    key: ArtifactKey
    class_name: str
    module: Optional[str]
    namespace: Optional[str]
    code: str

    @classmethod
    def for_class(cls, decl: ClassDecl, code: str) -> "Artifact":
        return cls(
            key=ArtifactKey(f"{decl.name}.generated"),
            class_name=decl.name,
            module=decl.module,
            namespace=decl.namespace,
            code=code,
        )

    @property
    def file_name(self) -> str:
        return self.key.replace(".", "_") + ".py"


class OutputSink(ABC):
    @abstractmethod
    def add(self, artifact: Artifact) -> None:
        """Register one generated artifact; raises DuplicateArtifactError on key reuse."""
        ...


class MemorySink(OutputSink):
    def __init__(self):
        self.artifacts: Dict[ArtifactKey, Artifact] = {}

    def add(self, artifact: Artifact) -> None:
        if artifact.key in self.artifacts:
            raise DuplicateArtifactError(artifact.key)
        self.artifacts[artifact.key] = artifact

    def __getitem__(self, key: str) -> Artifact:
        return self.artifacts[ArtifactKey(key)]

    def __contains__(self, key: str) -> bool:
        return key in self.artifacts

    def keys(self) -> List[str]:
        return list(self.artifacts)


class FileSink(OutputSink):
    """Writes ``<root>/<namespace as path>/<ClassName>_generated.py``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.written: Dict[ArtifactKey, Path] = {}

    def path_for(self, artifact: Artifact) -> Path:
        directory = self.root
        if artifact.namespace:
            directory = directory.joinpath(*artifact.namespace.split("."))
        return directory / artifact.file_name

    def add(self, artifact: Artifact) -> None:
        if artifact.key in self.written:
            raise DuplicateArtifactError(artifact.key)
        path = self.path_for(artifact)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(artifact.code, encoding="utf-8")
        self.written[artifact.key] = path
        logger.debug("Wrote {key} to {path}", key=artifact.key, path=str(path))
