from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from loguru import logger

from portgen.compiler.classifier import ClassifyPass
from portgen.compiler.emitter import EmitPass
from portgen.compiler.pipeline import Diagnostic, DiagnosticSeverity, GenerateResult, GeneratorConfig, GeneratorPipeline
from portgen.compiler.report import GenerationReport
from portgen.compiler.schema import SchemaPass
from portgen.compiler.sink import MemorySink, OutputSink
from portgen.model.ast_model import AstTypeModel
from portgen.model.reflection_model import ReflectionTypeModel
from portgen.model.type_model import TypeModel


class Generator:
    def __init__(self, config: Optional[GeneratorConfig] = None):
        self.config = config or GeneratorConfig()
        self.models: List[TypeModel] = []
        self.report: Optional[GenerationReport] = None
        self.load_errors: List[Diagnostic] = []

    def add(self, *models: TypeModel):
        self.models.extend(models)

    def add_source(self, source: str, module: Optional[str] = None, filename: str = "<source>"):
        self.add(AstTypeModel.from_source(source, module, filename, self.config.value_types))

    def add_paths(self, paths: Iterable[Union[str, Path]], root: Optional[Union[str, Path]] = None):
        """Read source files; a file that cannot be read or parsed is reported and skipped."""
        for path in paths:
            try:
                self.add(AstTypeModel.from_path(path, root, self.config.value_types))
            except SyntaxError as exc:
                self._load_error("PARSE001", f"Cannot parse {path}: {exc.msg}", f"{path}:{exc.lineno}")
            except (OSError, UnicodeDecodeError) as exc:
                self._load_error("READ001", f"Cannot read {path}: {exc}", str(path))

    def _load_error(self, code: str, message: str, location: str):
        logger.error("[{code}] {message}", code=code, message=message)
        self.load_errors.append(Diagnostic(DiagnosticSeverity.ERROR, code, message, location))

    def add_classes(self, *classes: type):
        self.add(ReflectionTypeModel(classes, self.config.value_types))

    def build_pipeline(self) -> GeneratorPipeline:
        pipeline = GeneratorPipeline(self.config)
        pipeline.add_pass(ClassifyPass())
        pipeline.add_pass(SchemaPass())
        pipeline.add_pass(EmitPass())
        return pipeline

    def generate(self, sink: Optional[OutputSink] = None) -> GenerateResult:
        sink = sink if sink is not None else MemorySink()
        result = self.build_pipeline().run(self.models, sink, self.load_errors)

        self.report = GenerationReport(result)
        if not result.success:
            logger.error("Port generation finished with errors:\n{report}", report=self.report)
        else:
            logger.info("Port generation completed. artifacts={count}", count=len(result.artifacts))
        return result


def generate_source(
    source: str,
    module: Optional[str] = None,
    config: Optional[GeneratorConfig] = None,
) -> Dict[str, str]:
    """Generate companions for one source text; returns code keyed by artifact key."""
    generator = Generator(config)
    generator.add_source(source, module)
    sink = MemorySink()
    generator.generate(sink)
    return {key: artifact.code for key, artifact in sink.artifacts.items()}
