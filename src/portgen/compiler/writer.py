from contextlib import contextmanager
from typing import Iterator, List

INDENT = "    "


class IndentedWriter:
    def __init__(self):
        self.lines: List[str] = []
        self.level = 0

    def line(self, text: str = "") -> None:
        if text:
            self.lines.append(INDENT * self.level + text)
        else:
            self.lines.append("")

    def blank(self) -> None:
        # Never stack blank lines.
        if self.lines and self.lines[-1] != "":
            self.lines.append("")

    @contextmanager
    def block(self, header: str) -> Iterator["IndentedWriter"]:
        """Write ``header:`` and indent until the scope closes, on every exit path."""
        self.line(f"{header}:")
        opened = len(self.lines)
        self.level += 1
        try:
            yield self
        finally:
            while len(self.lines) > opened and self.lines[-1] == "":
                self.lines.pop()
            if len(self.lines) == opened:
                self.line("pass")
            self.level -= 1

    def __str__(self) -> str:
        lines = list(self.lines)
        while lines and lines[-1] == "":
            lines.pop()
        return "\n".join(lines) + "\n"
