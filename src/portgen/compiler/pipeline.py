import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple

from loguru import logger

from portgen.compiler.sink import Artifact, DuplicateArtifactError, OutputSink
from portgen.model.type_model import DEFAULT_VALUE_TYPES, ClassDecl, TypeModel

if TYPE_CHECKING:
    from portgen.compiler.classifier import ClassifiedFields
    from portgen.compiler.schema import PortSchema


class DiagnosticSeverity(Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


@dataclass
class Diagnostic:
    severity: DiagnosticSeverity
    code: str
    message: str
    location: Optional[str] = None


class DiagnosticSink:
    def __init__(self, strict: bool = False):
        self.strict = strict
        self.diagnostics: List[Diagnostic] = []

    def error(self, code: str, message: str, location: Optional[str] = None):
        self.diagnostics.append(Diagnostic(DiagnosticSeverity.ERROR, code, message, location))

    def warning(self, code: str, message: str, location: Optional[str] = None):
        if self.strict:
            self.error(code, message + " (strict mode)", location)
            return
        self.diagnostics.append(Diagnostic(DiagnosticSeverity.WARNING, code, message, location))

    def errors_since(self, mark: int) -> List[Diagnostic]:
        return [d for d in self.diagnostics[mark:] if d.severity == DiagnosticSeverity.ERROR]


class GenerationError(Exception):
    """Aborts generation of the class being processed; other classes continue."""

    def __init__(self, code: str, message: str, location: Optional[str] = None):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.location = location


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class GeneratorConfig:
    mode: str = "best_effort"
    # Pull connected upstream nodes before reading scalar inputs, like array inputs do.
    eager_inputs: bool = True
    value_types: Tuple[str, ...] = DEFAULT_VALUE_TYPES

    @property
    def strict(self) -> bool:
        return self.mode == "strict"

    @classmethod
    def from_env(cls) -> "GeneratorConfig":
        extra = tuple(name.strip() for name in os.getenv("PORTGEN_VALUE_TYPES", "").split(",") if name.strip())
        return cls(
            mode=os.getenv("PORTGEN_MODE", "best_effort"),
            eager_inputs=_env_flag("PORTGEN_EAGER_INPUTS", True),
            value_types=DEFAULT_VALUE_TYPES + tuple(name for name in extra if name not in DEFAULT_VALUE_TYPES),
        )


@dataclass
class ClassUnit:
    decl: ClassDecl
    classified: Optional["ClassifiedFields"] = None
    schema: Optional["PortSchema"] = None
    code: Optional[str] = None
    skipped: bool = False


@dataclass
class GenerateResult:
    success: bool
    diagnostics: List[Diagnostic]
    artifacts: List[Artifact] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class Pass(ABC):
    name: str

    @abstractmethod
    def run(self, unit: ClassUnit, config: GeneratorConfig, diag: DiagnosticSink) -> None:
        ...


class GeneratorPipeline:
    def __init__(self, config: GeneratorConfig):
        self.config = config
        self.passes: List[Pass] = []

    def add_pass(self, p: Pass):
        self.passes.append(p)

    def build_units(self, models: Iterable[TypeModel]) -> List[ClassUnit]:
        models = list(models)
        # A value type keeps its kind in every module that names it.
        shared = set()
        for model in models:
            shared |= model.declared_value_types()
        for model in models:
            model.share_value_types(shared)

        units = []
        for model in models:
            for decl in model.classes():
                units.append(ClassUnit(decl))
        return units

    def process(self, unit: ClassUnit, diag: DiagnosticSink) -> None:
        for p in self.passes:
            if unit.skipped:
                return
            p.run(unit, self.config, diag)

    def _generate_one(self, unit: ClassUnit, diag: DiagnosticSink, sink: OutputSink) -> Optional[Artifact]:
        decl = unit.decl
        mark = len(diag.diagnostics)
        try:
            self.process(unit, diag)
        except GenerationError as exc:
            diag.error(exc.code, exc.message, location=exc.location or decl.location)

        if unit.skipped:
            logger.debug("No ports declared on {cls}, skipped", cls=decl.name)
            return None
        for d in diag.diagnostics[mark:]:
            log = logger.error if d.severity == DiagnosticSeverity.ERROR else logger.warning
            log("[{code}] {message}", code=d.code, message=d.message)
        if diag.errors_since(mark) or unit.code is None:
            logger.warning("Generation aborted for {cls}", cls=decl.name)
            return None

        artifact = Artifact.for_class(decl, unit.code)
        try:
            sink.add(artifact)
        except DuplicateArtifactError as exc:
            diag.error("SINK001", str(exc), location=decl.location)
            logger.error("[SINK001] {message}", message=str(exc))
            return None
        logger.info("Generated {key} inputs={n} arrays={m} outputs={k}",
                    key=artifact.key,
                    n=len(unit.schema.inputs),
                    m=len(unit.schema.input_arrays),
                    k=len(unit.schema.outputs))
        return artifact

    def run(
        self,
        models: Iterable[TypeModel],
        sink: OutputSink,
        load_errors: Iterable[Diagnostic] = (),
    ) -> GenerateResult:
        """``load_errors`` are problems met while reading sources; they count as failures of this run."""
        diag = DiagnosticSink(strict=self.config.strict)
        diag.diagnostics.extend(load_errors)
        artifacts: List[Artifact] = []
        skipped: List[str] = []

        for unit in self.build_units(models):
            decl = unit.decl
            with logger.contextualize(source_class=decl.location or decl.name):
                artifact = self._generate_one(unit, diag, sink)
            if artifact is not None:
                artifacts.append(artifact)
            elif unit.skipped:
                skipped.append(decl.name)

        has_errors = any(d.severity == DiagnosticSeverity.ERROR for d in diag.diagnostics)
        return GenerateResult(success=not has_errors, diagnostics=diag.diagnostics, artifacts=artifacts, skipped=skipped)
