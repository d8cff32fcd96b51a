import ast
from pathlib import Path
from typing import Iterable, List, Optional, Set, Union

from loguru import logger

from portgen.core.markers import TAG_NAMES
from portgen.core.types import TypeKind
from portgen.model.type_model import DEFAULT_VALUE_TYPES, ClassDecl, FieldDecl, TypeDescriptor, TypeModel

_VALUE_BASES = {"Enum", "IntEnum", "StrEnum", "Flag", "IntFlag", "NamedTuple"}
_SEQUENCE_NAMES = {"list", "List", "Sequence", "MutableSequence"}
_TUPLE_NAMES = {"tuple", "Tuple"}


def _tail_name(expr: ast.expr) -> Optional[str]:
    if isinstance(expr, ast.Name):
        return expr.id
    if isinstance(expr, ast.Attribute):
        return expr.attr
    if isinstance(expr, ast.Call):
        return _tail_name(expr.func)
    return None


def _is_none(expr: ast.expr) -> bool:
    return isinstance(expr, ast.Constant) and expr.value is None


def _union_members(expr: ast.expr) -> List[ast.expr]:
    if isinstance(expr, ast.BinOp) and isinstance(expr.op, ast.BitOr):
        return _union_members(expr.left) + _union_members(expr.right)
    return [expr]


def _subscript_args(expr: ast.Subscript) -> List[ast.expr]:
    if isinstance(expr.slice, ast.Tuple):
        return list(expr.slice.elts)
    return [expr.slice]


def module_name_for(path: Path, root: Optional[Path] = None) -> Optional[str]:
    """Dotted module name of ``path`` relative to ``root``; None when path is outside root."""
    if root is None:
        return path.stem
    try:
        relative = path.resolve().relative_to(root.resolve())
    except ValueError:
        return None
    parts = list(relative.with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts.pop()
    return ".".join(parts) or None


class AstTypeModel(TypeModel):
    """Type model over Python source read with ``ast``; the source is never imported."""

    def __init__(
        self,
        tree: ast.Module,
        module: Optional[str] = None,
        filename: str = "<source>",
        value_types: Iterable[str] = DEFAULT_VALUE_TYPES,
    ):
        self.tree = tree
        self.module = module
        self.filename = filename
        self.value_types: Set[str] = set(value_types)
        self._local_values = self._collect_local_value_types()

    @classmethod
    def from_source(
        cls,
        source: str,
        module: Optional[str] = None,
        filename: str = "<source>",
        value_types: Iterable[str] = DEFAULT_VALUE_TYPES,
    ) -> "AstTypeModel":
        return cls(ast.parse(source, filename=filename), module, filename, value_types)

    @classmethod
    def from_path(
        cls,
        path: Union[str, Path],
        root: Optional[Union[str, Path]] = None,
        value_types: Iterable[str] = DEFAULT_VALUE_TYPES,
    ) -> "AstTypeModel":
        path = Path(path)
        module = module_name_for(path, Path(root) if root is not None else None)
        if module is None:
            logger.warning("{path} is outside the import root {root}", path=str(path), root=str(root))
        logger.debug("Reading {path} as module={module}", path=str(path), module=module)
        return cls.from_source(path.read_text(encoding="utf-8"), module, str(path), value_types)

    def classes(self) -> List[ClassDecl]:
        return [self._class_decl(node) for node in self.tree.body if isinstance(node, ast.ClassDef)]

    def declared_value_types(self) -> Set[str]:
        return set(self._local_values)

    def share_value_types(self, names: Set[str]) -> None:
        self.value_types |= names

    def _collect_local_value_types(self) -> Set[str]:
        names = set()
        for node in self.tree.body:
            if not isinstance(node, ast.ClassDef):
                continue
            if any(_tail_name(base) in _VALUE_BASES for base in node.bases):
                names.add(node.name)
            for deco in node.decorator_list:
                if isinstance(deco, ast.Call) and _tail_name(deco) == "dataclass":
                    frozen = [kw for kw in deco.keywords if kw.arg == "frozen"]
                    if frozen and isinstance(frozen[0].value, ast.Constant) and frozen[0].value.value is True:
                        names.add(node.name)
        return names

    def _location(self, node: ast.AST) -> str:
        return f"{self.filename}:{getattr(node, 'lineno', 0)}"

    def _class_decl(self, node: ast.ClassDef) -> ClassDecl:
        type_params: List[str] = []
        # PEP 695 class Foo[T]: ...
        for param in getattr(node, "type_params", None) or ():
            type_params.append(param.name)
        for base in node.bases:
            if isinstance(base, ast.Subscript) and _tail_name(base.value) == "Generic":
                for arg in _subscript_args(base):
                    name = _tail_name(arg)
                    if name and name not in type_params:
                        type_params.append(name)

        fields = []
        for stmt in node.body:
            if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                fields.append(self._field_decl(stmt.target.id, stmt.annotation, stmt))

        return ClassDecl(
            name=node.name,
            module=self.module,
            type_params=tuple(type_params),
            bases=tuple(ast.unparse(base) for base in node.bases),
            fields=tuple(fields),
            location=self._location(node),
        )

    def _field_decl(self, name: str, annotation: ast.expr, stmt: ast.AST) -> FieldDecl:
        annotation = self._parse_string(annotation)
        if not (isinstance(annotation, ast.Subscript) and _tail_name(annotation.value) == "Annotated"):
            return FieldDecl(name=name, location=self._location(stmt))

        args = _subscript_args(annotation)
        declared = args[0]
        tags = tuple(tag for tag in (_tail_name(meta) for meta in args[1:]) if tag in TAG_NAMES)
        if not tags:
            return FieldDecl(name=name, location=self._location(stmt))

        return FieldDecl(
            name=name,
            tags=tags,
            type=self.describe(declared),
            element_type=self.element_type(declared),
            location=self._location(stmt),
        )

    def _parse_string(self, expr: ast.expr) -> ast.expr:
        if isinstance(expr, ast.Constant) and isinstance(expr.value, str):
            try:
                return ast.parse(expr.value, mode="eval").body
            except SyntaxError:
                return expr
        return expr

    def _unwrap_optional(self, expr: ast.expr) -> Optional[ast.expr]:
        expr = self._parse_string(expr)
        if isinstance(expr, ast.Subscript):
            base = _tail_name(expr.value)
            if base == "Optional":
                return self._unwrap_optional(expr.slice)
            if base == "Annotated":
                return self._unwrap_optional(_subscript_args(expr)[0])
            if base == "Union":
                members = [m for m in _subscript_args(expr) if not _is_none(m)]
                return self._unwrap_optional(members[0]) if len(members) == 1 else None
        members = [m for m in _union_members(expr) if not _is_none(m)]
        if len(members) != 1:
            return None
        return members[0]

    def kind_of(self, name: str) -> TypeKind:
        if name in self.value_types or name in self._local_values:
            return TypeKind.VALUE
        return TypeKind.REFERENCE

    def describe(self, expr: ast.expr) -> Optional[TypeDescriptor]:
        expr = self._unwrap_optional(expr)
        if expr is None:
            return None
        if isinstance(expr, (ast.Name, ast.Attribute)):
            name = _tail_name(expr)
            return TypeDescriptor(name=name, kind=self.kind_of(name), expression=ast.unparse(expr))
        if isinstance(expr, ast.Subscript) and isinstance(expr.value, (ast.Name, ast.Attribute)):
            name = _tail_name(expr.value)
            args = _subscript_args(expr)
            return TypeDescriptor(
                name=name,
                kind=self.kind_of(name),
                expression=ast.unparse(expr),
                generic_arg=ast.unparse(args[0]) if len(args) == 1 else None,
                arg_count=len(args),
            )
        return None

    def element_type(self, expr: ast.expr) -> Optional[TypeDescriptor]:
        expr = self._unwrap_optional(expr)
        if not isinstance(expr, ast.Subscript):
            return None
        base = _tail_name(expr.value)
        args = _subscript_args(expr)
        if base in _SEQUENCE_NAMES and len(args) == 1:
            return self.describe(args[0])
        if base in _TUPLE_NAMES and len(args) == 2 and isinstance(args[1], ast.Constant) and args[1].value is Ellipsis:
            return self.describe(args[0])
        return None
