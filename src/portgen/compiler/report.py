from typing import List

from portgen.compiler.pipeline import Diagnostic, DiagnosticSeverity, GenerateResult


def _describe(d: Diagnostic) -> str:
    where = f" @ {d.location}" if d.location else ""
    return f"  [{d.code}] {d.message}{where}"


class GenerationReport:
    def __init__(self, result: GenerateResult):
        self.result = result

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return self.result.diagnostics

    def by_severity(self, severity: DiagnosticSeverity) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == severity]

    def __str__(self):
        errors = self.by_severity(DiagnosticSeverity.ERROR)
        warnings = self.by_severity(DiagnosticSeverity.WARNING)

        lines = [
            "Port Generator Report",
            "=====================",
            f"Generated: {len(self.result.artifacts)}",
            f"Skipped (no ports): {len(self.result.skipped)}",
            f"Errors: {len(errors)}",
            f"Warnings: {len(warnings)}",
        ]
        sections = (
            ("Artifacts", [f"  {a.key}" for a in self.result.artifacts]),
            ("Skipped", [f"  {name}" for name in self.result.skipped]),
            ("Errors", [_describe(d) for d in errors]),
            ("Warnings", [_describe(d) for d in warnings]),
        )
        for title, entries in sections:
            if entries:
                lines.append(f"\n{title}:")
                lines.extend(entries)
        return "\n".join(lines)
