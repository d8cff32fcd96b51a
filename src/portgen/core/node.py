import importlib
import types
from functools import lru_cache
from typing import Any, Callable, Iterator, NamedTuple, Optional, Tuple, Type, TypeVar, Union, get_args, get_origin, get_type_hints

T = TypeVar("T")


class Connection(NamedTuple):
    node: Optional["BaseNode"]
    field_name: Optional[str]


EMPTY_CONNECTION = Connection(None, None)


def _no_value(field_name: str) -> None:
    return None


def safe_cast(value: Any, cls: Type[T]) -> Optional[T]:
    """Return ``value`` if it is an instance of ``cls`` (or its generic origin), else None."""
    if value is None:
        return None
    if cls is Any or cls is object:
        return value
    origin = get_origin(cls) or cls
    if isinstance(value, origin):
        return value
    return None


def _strip_optional(tp: Any) -> Any:
    if get_origin(tp) in (Union, types.UnionType):
        members = [arg for arg in get_args(tp) if arg is not type(None)]
        if len(members) == 1:
            return members[0]
    return tp


@lru_cache(maxsize=None)
def resolve_port_type(module: str, class_name: str, port_name: str, element: bool = False) -> Any:
    """
    Declared type of ``class_name.port_name``, read back from the class's type hints.
    ``element`` selects the item type of an array port.
    """
    cls = getattr(importlib.import_module(module), class_name)
    hint = _strip_optional(get_type_hints(cls)[port_name])
    if element:
        hint = get_args(hint)[0]
    return hint


def base_value_getter(proxy: Any, type_name: str) -> Callable[[str], Any]:
    """Look up ``get_value_<type_name>`` further up the MRO, defaulting to a getter returning None."""
    return getattr(proxy, f"get_value_{type_name}", _no_value)


class BaseNode:
    """
    End of every delegation chain. Generated companions override these methods
    for the ports their class declares and defer everything else through
    ``super()``; whatever reaches this class is "no such port".
    """

    def __getattr__(self, name: str) -> Any:
        # Type specific getters for value types nobody in the chain declares.
        if name.startswith("get_value_"):
            return _no_value
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def set_connected_node(self, input_field: str, output_node: Optional["BaseNode"], output_field: Optional[str]) -> None:
        return None

    def get_connected_node(self, field_name: str) -> Tuple[Optional["BaseNode"], Optional[str]]:
        return None, None

    def get_value_class(self, field_name: str, cls: Type[T]) -> Optional[T]:
        return None

    def update_values(self) -> None:
        self.evaluate()

    def evaluate(self) -> None:
        """Hook run once after every level has pulled its inputs."""
        pass

    def get_array_size(self, field_name: str) -> int:
        return 0

    def set_connected_node_array(
        self,
        input_field: str,
        output_node: Optional["BaseNode"],
        output_field: Optional[str],
        array_index: int,
    ) -> None:
        return None

    def get_connected_node_array(self, field_name: str, array_index: int) -> Tuple[Optional["BaseNode"], Optional[str]]:
        return None, None

    def get_node_count(self) -> int:
        return 0

    def get_node_array_count(self) -> int:
        return 0

    def get_node_array_element_count(self, index: int) -> int:
        return 0

    def get_node_at_index(self, index: int) -> Optional["BaseNode"]:
        return None

    def get_node_at_array_index(self, array_index: int, element_index: int) -> Optional["BaseNode"]:
        return None

    def upstream_nodes(self) -> Iterator["BaseNode"]:
        """Connected nodes in port index order, skipping empty and no-auto-update slots."""
        for index in range(self.get_node_count()):
            node = self.get_node_at_index(index)
            if node is not None:
                yield node
        for array_index in range(self.get_node_array_count()):
            for element_index in range(self.get_node_array_element_count(array_index)):
                node = self.get_node_at_array_index(array_index, element_index)
                if node is not None:
                    yield node
