import json
import sys
from typing import Annotated, List, Optional

from loguru import logger

from portgen import logging_config
from portgen.api import Generator
from portgen.cli import run
from portgen.compiler.pipeline import DiagnosticSeverity, GeneratorConfig
from portgen.compiler.sink import Artifact, FileSink, MemorySink
from portgen.core.markers import Input, InputArray, Output
from portgen.core.node import BaseNode
from portgen.model.type_model import DEFAULT_VALUE_TYPES, ClassDecl

NODES = '''
class Good(GoodPorts, BaseNode):
    x: Annotated[float, Input] = 0.0
    y: Annotated[float, Output] = 0.0


class Broken(BrokenPorts, BaseNode):
    x: Annotated[float, Input, Output] = 0.0


class Noisy(NoisyPorts, BaseNode):
    x: Annotated[float, Input, Input] = 0.0
'''


class Mesh:
    pass


class Gauge(BaseNode):
    gain: Annotated[float, Input] = 1.0
    mesh: Annotated[Optional[Mesh], Input] = None
    samples: Annotated[List[float], InputArray] = None
    level: Annotated[float, Output] = 0.0
    note = "not a port"


def _generate(source, config=None, module="demo.nodes"):
    generator = Generator(config)
    generator.add_source(source, module=module)
    sink = MemorySink()
    result = generator.generate(sink)
    return generator, result, sink


def test_failing_class_does_not_stop_the_batch():
    _, result, sink = _generate(NODES)

    assert not result.success
    assert sink.keys() == ["Good.generated", "Noisy.generated"]
    assert [(d.code, d.severity) for d in result.diagnostics] == [
        ("PORT001", DiagnosticSeverity.ERROR),
        ("PORT002", DiagnosticSeverity.WARNING),
    ]
    assert result.diagnostics[0].location == "<source>:8"


def test_strict_mode_fails_on_warnings():
    _, result, sink = _generate(NODES, GeneratorConfig(mode="strict"))

    assert sink.keys() == ["Good.generated"]
    assert all(d.severity == DiagnosticSeverity.ERROR for d in result.diagnostics)
    assert result.diagnostics[-1].message.endswith("(strict mode)")


def test_duplicate_class_names_collide():
    source = "class Twin(TwinPorts, BaseNode):\n    x: Annotated[int, Output] = 0\n"
    generator = Generator()
    generator.add_source(source, module="first.nodes")
    generator.add_source(source, module="second.nodes")
    sink = MemorySink()
    result = generator.generate(sink)

    assert not result.success
    assert sink.keys() == ["Twin.generated"]
    assert sink["Twin.generated"].module == "first.nodes"
    (diagnostic,) = result.diagnostics
    assert diagnostic.code == "SINK001"
    assert "Twin.generated" in diagnostic.message


def test_report_lists_artifacts_and_problems():
    generator, _, _ = _generate(NODES)
    report = str(generator.report)

    assert report.startswith("Port Generator Report")
    assert "Generated: 2" in report
    assert "Errors: 1" in report
    assert "Warnings: 1" in report
    assert "  Good.generated" in report
    assert "[PORT001]" in report
    assert "@ <source>:8" in report


def test_file_sink_mirrors_namespace(tmp_path):
    decl = ClassDecl(name="Blend", module="shaders.nodes")
    artifact = Artifact.for_class(decl, "# generated\n")
    sink = FileSink(tmp_path)
    sink.add(artifact)

    path = tmp_path / "shaders" / "Blend_generated.py"
    assert sink.path_for(artifact) == path
    assert path.read_text(encoding="utf-8") == "# generated\n"
    assert artifact.key == "Blend.generated"

    top_level = Artifact.for_class(ClassDecl(name="Solo", module="solo"), "")
    assert sink.path_for(top_level) == tmp_path / "Solo_generated.py"


def _write_package(tmp_path, body):
    package = tmp_path / "src" / "shaders"
    package.mkdir(parents=True)
    (package / "__init__.py").write_text("")
    nodes = package / "nodes.py"
    nodes.write_text(body, encoding="utf-8")
    return nodes


def test_cli_writes_companions(tmp_path, capsys):
    nodes = _write_package(tmp_path, "class Good(GoodPorts, BaseNode):\n    x: Annotated[float, Input] = 0.0\n")
    out = tmp_path / "generated"

    code = run([str(nodes), "--root", str(tmp_path / "src"), "--out", str(out)])

    assert code == 0
    written = out / "shaders" / "Good_generated.py"
    assert written.exists()
    text = written.read_text(encoding="utf-8")
    assert "_SOURCE_MODULE = 'shaders.nodes'" in text
    assert "Generated: 1" in capsys.readouterr().out


def test_cli_strict_and_value_types(tmp_path):
    nodes = _write_package(
        tmp_path,
        "class Tint(TintPorts, BaseNode):\n"
        "    color: Annotated[Color, Input] = None\n"
        "    gain: Annotated[float, Input, Input] = 1.0\n",
    )
    root = str(tmp_path / "src")

    assert run([str(nodes), "--root", root, "--strict"]) == 1
    assert not (tmp_path / "src" / "shaders" / "Tint_generated.py").exists()

    assert run([str(nodes), "--root", root, "--value-type", "Color", "--lazy-inputs"]) == 0
    text = (tmp_path / "src" / "shaders" / "Tint_generated.py").read_text(encoding="utf-8")
    assert "self.color = self._color_node.get_value_Color(self._color_field_name)" in text
    assert "self._gain_node.update_values()" not in text


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("PORTGEN_MODE", "strict")
    monkeypatch.setenv("PORTGEN_EAGER_INPUTS", "0")
    monkeypatch.setenv("PORTGEN_VALUE_TYPES", "Vector3, float,Color")

    config = GeneratorConfig.from_env()

    assert config.strict
    assert not config.eager_inputs
    assert config.value_types == DEFAULT_VALUE_TYPES + ("Vector3", "Color")


def test_config_defaults(monkeypatch):
    for name in ("PORTGEN_MODE", "PORTGEN_EAGER_INPUTS", "PORTGEN_VALUE_TYPES"):
        monkeypatch.delenv(name, raising=False)

    config = GeneratorConfig.from_env()

    assert config == GeneratorConfig()
    assert not config.strict


def test_imported_classes_generate_through_reflection():
    generator = Generator()
    generator.add_classes(Gauge)
    sink = MemorySink()
    result = generator.generate(sink)

    assert result.success
    # Reflection sees the real bases, so the missing companion is reported.
    assert [d.code for d in result.diagnostics] == ["PORT003"]
    code = sink["Gauge.generated"].code
    assert f"_SOURCE_MODULE = {Gauge.__module__!r}" in code
    assert "self.gain = self._gain_node.get_value_float(self._gain_field_name)" in code
    assert 'resolve_port_type(_SOURCE_MODULE, "Gauge", "mesh")' in code
    assert "return 1 + super().get_node_array_count()" in code


def test_diagnostics_reach_problem_log(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_config, "_CONFIGURED", False)
    monkeypatch.delenv("PORTGEN_DISABLE_FILE_LOGS", raising=False)
    logging_config.configure_logging(log_dir=str(tmp_path))
    try:
        _generate(NODES)
        logger.complete()
    finally:
        logger.remove()
        logger.add(sys.stderr)

    (day_dir,) = tmp_path.iterdir()
    records = [json.loads(line)["record"] for line in (day_dir / "problems.json").read_text().splitlines()]
    port001 = [r for r in records if r["message"].startswith("[PORT001]")]
    assert len(port001) == 1
    assert port001[0]["level"]["name"] == "ERROR"
    assert port001[0]["extra"]["source_class"] == "<source>:7"
    assert port001[0]["extra"]["service"] == "portgen"
    assert all(r["level"]["name"] in ("WARNING", "ERROR") for r in records)
    assert (day_dir / "generation.json").exists()


def test_cli_reports_unparsable_files_and_continues(tmp_path, capsys):
    good = _write_package(tmp_path, "class Good(GoodPorts, BaseNode):\n    x: Annotated[float, Input] = 0.0\n")
    bad = good.parent / "broken.py"
    bad.write_text("class Broken(:\n", encoding="utf-8")
    out = tmp_path / "generated"

    code = run([str(bad), str(good), "--root", str(tmp_path / "src"), "--out", str(out)])

    assert code == 1
    assert (out / "shaders" / "Good_generated.py").exists()
    report = capsys.readouterr().out
    assert "[PARSE001]" in report
    assert f"@ {bad}:1" in report
    assert "Generated: 1" in report


def test_missing_source_file_is_reported():
    generator = Generator()
    generator.add_paths(["does/not/exist.py"])
    result = generator.generate()

    assert not result.success
    (diagnostic,) = result.diagnostics
    assert diagnostic.code == "READ001"
    assert diagnostic.location == "does/not/exist.py"


def test_cli_rejects_reference_ports_outside_the_root(tmp_path, monkeypatch, capsys):
    nodes = _write_package(
        tmp_path,
        "class Mesh:\n"
        "    pass\n"
        "\n"
        "\n"
        "class View(ViewPorts, BaseNode):\n"
        "    mesh: Annotated[Mesh, Input] = None\n",
    )
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)
    out = tmp_path / "generated"

    code = run([str(nodes), "--out", str(out)])

    assert code == 1
    assert "[MOD001]" in capsys.readouterr().out
    assert not out.exists()


class Odd(BaseNode):
    bad: "Annotated[int]" = 0
    good: Annotated[float, Output] = 0.0


def test_malformed_annotations_fall_back_to_raw_hints():
    generator = Generator()
    generator.add_classes(Odd)
    sink = MemorySink()
    result = generator.generate(sink)

    assert result.success
    assert [d.code for d in result.diagnostics] == ["PORT003"]
    assert sink.keys() == ["Odd.generated"]
    assert "get_value_float" in sink["Odd.generated"].code
