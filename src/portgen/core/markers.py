"""Port role markers used inside ``typing.Annotated`` field declarations.

    class Blend(BlendPorts, BaseNode):
        a: Annotated[float, Input] = 0.0
        weights: Annotated[list[float], InputArray] = None
        mask: Annotated[Texture, InputNoUpdate] = None
        result: Annotated[float, Output] = 0.0

The generator never inspects these objects beyond their tag name.
"""


class PortTag:
    def __init__(self, name: str):
        self.name = name

    def __call__(self) -> "PortTag":
        # Input() and Input are interchangeable.
        return self

    def __repr__(self) -> str:
        return f"PortTag({self.name})"


Input = PortTag("Input")
InputNoUpdate = PortTag("InputNoUpdate")
InputArray = PortTag("InputArray")
Output = PortTag("Output")

TAG_NAMES = frozenset({"Input", "InputNoUpdate", "InputArray", "Output"})
