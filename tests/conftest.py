import itertools
import sys
import types
from string import Template
from typing import Dict

import pytest

from portgen.api import Generator
from portgen.compiler.pipeline import GeneratorConfig
from portgen.compiler.sink import MemorySink

_package_ids = itertools.count()


@pytest.fixture
def build_modules(monkeypatch):
    """
    Generate companions for several sources in one run, execute them, then
    execute each source as ``<package>.<name>`` with its companions in scope.
    Sources import their siblings through ``$pkg``.
    """

    def _build(sources: Dict[str, str], config: GeneratorConfig | None = None) -> types.SimpleNamespace:
        package = f"portgen_nodes_{next(_package_ids)}"
        texts = {name: Template(source).substitute(pkg=package) for name, source in sources.items()}

        generator = Generator(config)
        for name, text in texts.items():
            generator.add_source(text, module=f"{package}.{name}")
        sink = MemorySink()
        result = generator.generate(sink)
        assert result.success, str(generator.report)

        root = types.ModuleType(package)
        root.__path__ = []
        monkeypatch.setitem(sys.modules, package, root)
        modules = {}
        for name in texts:
            module = types.ModuleType(f"{package}.{name}")
            monkeypatch.setitem(sys.modules, module.__name__, module)
            setattr(root, name, module)
            modules[name] = module

        for artifact in sink.artifacts.values():
            namespace = {"__name__": f"{artifact.module}_{artifact.class_name}_generated"}
            exec(compile(artifact.code, artifact.key, "exec"), namespace)
            companion = f"{artifact.class_name}Ports"
            owner = modules[artifact.module.rsplit(".", 1)[1]]
            owner.__dict__[companion] = namespace[companion]
        for name, text in texts.items():
            exec(compile(text, modules[name].__name__, "exec"), modules[name].__dict__)
        return types.SimpleNamespace(**modules)

    return _build


@pytest.fixture
def build_module(build_modules):
    """Single-source shorthand for ``build_modules``."""

    def _build(source: str, config: GeneratorConfig | None = None) -> types.ModuleType:
        return build_modules({"nodes": source}, config).nodes

    return _build
