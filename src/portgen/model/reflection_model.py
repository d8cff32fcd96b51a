import ast
import collections.abc
import dataclasses
import enum
import inspect
import types
import typing
from typing import Any, Iterable, List, Optional, Set, Union, get_args, get_origin, get_type_hints

from loguru import logger

from portgen.core.markers import TAG_NAMES, PortTag
from portgen.core.types import TypeKind
from portgen.model.ast_model import _subscript_args, _tail_name
from portgen.model.type_model import DEFAULT_VALUE_TYPES, ClassDecl, FieldDecl, TypeDescriptor, TypeModel

_SEQUENCE_ORIGINS = (list, collections.abc.Sequence, collections.abc.MutableSequence)
_UNION_ORIGINS = (Union, getattr(types, "UnionType", Union))


def type_expression(tp: Any) -> str:
    """Source spelling of ``tp`` using bare names, e.g. ``list[Mesh]``."""
    if tp is Ellipsis:
        return "..."
    if tp is type(None):
        return "None"
    origin = get_origin(tp)
    if origin is None:
        return getattr(tp, "__name__", repr(tp))
    args = ", ".join(type_expression(arg) for arg in get_args(tp))
    return f"{origin.__name__}[{args}]"


def _strip_optional(tp: Any) -> Any:
    if get_origin(tp) in _UNION_ORIGINS:
        members = [arg for arg in get_args(tp) if arg is not type(None)]
        return members[0] if len(members) == 1 else None
    return tp


class ReflectionTypeModel(TypeModel):
    """Type model over already imported classes."""

    def __init__(self, classes: Iterable[type], value_types: Iterable[str] = DEFAULT_VALUE_TYPES):
        self._classes = list(classes)
        self.value_types: Set[str] = set(value_types)

    def classes(self) -> List[ClassDecl]:
        return [self._class_decl(cls) for cls in self._classes]

    def kind_of(self, tp: Any) -> TypeKind:
        if getattr(tp, "__name__", None) in self.value_types:
            return TypeKind.VALUE
        if isinstance(tp, type):
            if issubclass(tp, enum.Enum):
                return TypeKind.VALUE
            if issubclass(tp, tuple) and hasattr(tp, "_fields"):
                return TypeKind.VALUE
            params = getattr(tp, "__dataclass_params__", None)
            if dataclasses.is_dataclass(tp) and params is not None and params.frozen:
                return TypeKind.VALUE
        return TypeKind.REFERENCE

    def describe(self, tp: Any) -> Optional[TypeDescriptor]:
        tp = _strip_optional(tp)
        if tp is None:
            return None
        origin = get_origin(tp)
        if origin is None:
            if not isinstance(tp, type):
                return None
            return TypeDescriptor(name=tp.__name__, kind=self.kind_of(tp), expression=type_expression(tp))
        if not isinstance(origin, type):
            return None
        args = get_args(tp)
        return TypeDescriptor(
            name=origin.__name__,
            kind=self.kind_of(origin),
            expression=type_expression(tp),
            generic_arg=type_expression(args[0]) if len(args) == 1 else None,
            arg_count=len(args),
        )

    def element_type(self, tp: Any) -> Optional[TypeDescriptor]:
        tp = _strip_optional(tp)
        origin = get_origin(tp)
        args = get_args(tp)
        if origin in _SEQUENCE_ORIGINS and len(args) == 1:
            return self.describe(args[0])
        if origin is tuple and len(args) == 2 and args[1] is Ellipsis:
            return self.describe(args[0])
        return None

    def _class_decl(self, cls: type) -> ClassDecl:
        own = inspect.get_annotations(cls)
        try:
            hints = get_type_hints(cls, include_extras=True)
        except (NameError, TypeError) as exc:
            logger.warning("Cannot evaluate annotations of {cls}: {exc}", cls=cls.__qualname__, exc=exc)
            hints = {}

        fields = []
        for name, raw in own.items():
            hint = hints.get(name, raw)
            location = f"{cls.__module__}.{cls.__qualname__}.{name}"
            if isinstance(hint, str):
                fields.append(self._unresolved_field(name, hint, location))
                continue
            if get_origin(hint) is not typing.Annotated:
                fields.append(FieldDecl(name=name, location=location))
                continue
            declared, *metadata = get_args(hint)
            tags = tuple(meta.name for meta in metadata if isinstance(meta, PortTag))
            if not tags:
                fields.append(FieldDecl(name=name, location=location))
                continue
            fields.append(
                FieldDecl(
                    name=name,
                    tags=tags,
                    type=self.describe(declared),
                    element_type=self.element_type(declared),
                    location=location,
                )
            )

        return ClassDecl(
            name=cls.__name__,
            module=cls.__module__,
            type_params=tuple(p.__name__ for p in getattr(cls, "__parameters__", ())),
            bases=tuple(base.__name__ for base in cls.__bases__),
            fields=tuple(fields),
            location=f"{cls.__module__}.{cls.__qualname__}",
        )

    def _unresolved_field(self, name: str, hint: str, location: str) -> FieldDecl:
        # Keep the tags so the field still classifies and reports its missing type.
        try:
            expr = ast.parse(hint, mode="eval").body
        except SyntaxError:
            return FieldDecl(name=name, location=location)
        if not (isinstance(expr, ast.Subscript) and _tail_name(expr.value) == "Annotated"):
            return FieldDecl(name=name, location=location)
        tags = tuple(tag for tag in (_tail_name(meta) for meta in _subscript_args(expr)[1:]) if tag in TAG_NAMES)
        return FieldDecl(name=name, tags=tags, location=location)
