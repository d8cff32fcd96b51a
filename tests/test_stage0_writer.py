import pytest

from portgen.compiler.writer import IndentedWriter


def test_block_indents_and_closes():
    w = IndentedWriter()
    with w.block("def f(self)"):
        with w.block("if x"):
            w.line("return 1")
        w.line("return 0")
    w.line("y = 2")

    assert str(w) == "def f(self):\n    if x:\n        return 1\n    return 0\ny = 2\n"


def test_empty_block_gets_pass():
    w = IndentedWriter()
    with w.block("class Empty"):
        w.blank()

    assert str(w) == "class Empty:\n    pass\n"


def test_block_restores_level_on_exception():
    w = IndentedWriter()
    with pytest.raises(RuntimeError):
        with w.block("def broken()"):
            w.line("x = 1")
            raise RuntimeError("boom")

    assert w.level == 0
    w.line("after = True")
    assert w.lines[-1] == "after = True"


def test_blank_lines_do_not_stack():
    w = IndentedWriter()
    w.line("a = 1")
    w.blank()
    w.blank()
    w.line("b = 2")

    assert w.lines == ["a = 1", "", "b = 2"]
