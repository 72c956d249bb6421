from enum import Enum
from typing import Iterator, List, Optional, Sequence, Union

from pydantic import BaseModel

from models import (
    CallTarget,
    DiagramComment,
    DiagramEdge,
    DiagramElement,
    DiagramNode,
    EdgeStyle,
    NodeShape,
    Subgraph,
)


class ExpansionOrigin(str, Enum):
    """Where in a call flow a target was reached from."""

    TOP_LEVEL = "TopLevel"
    DEFAULT = "Default"
    AFTER_HOURS = "AfterHours"
    HOLIDAY = "Holiday"
    OVERFLOW = "OverFlow"
    TIMEOUT = "TimeOut"


class PlacedTarget(BaseModel):
    node_id: str
    target: CallTarget
    origin: ExpansionOrigin


class Fragment:
    """An ordered, append-only run of diagram elements.

    Builders add nodes, edges and subgraphs in document order; the renderer
    serializes them as-is. A fragment returned by ``subgraph()`` writes
    straight into that subgraph's element list.
    """

    def __init__(self, elements: Optional[List[DiagramElement]] = None):
        self.elements: List[DiagramElement] = elements if elements is not None else []

    def node(
        self,
        node_id: str,
        label: Union[str, Sequence[str]],
        shape: NodeShape = NodeShape.ROUNDED,
        link: Optional[str] = None,
    ) -> str:
        lines = [label] if isinstance(label, str) else list(label)
        self.elements.append(DiagramNode(id=node_id, label=lines, shape=shape, link=link))
        return node_id

    def edge(
        self,
        source: str,
        target: str,
        label: Optional[str] = None,
        style: EdgeStyle = EdgeStyle.SOLID,
    ):
        self.elements.append(
            DiagramEdge(source=source, target=target, label=label, style=style)
        )

    def comment(self, text: str):
        self.elements.append(DiagramComment(text=text))

    def subgraph(
        self, subgraph_id: str, title: str, direction: Optional[str] = None
    ) -> "Fragment":
        sg = Subgraph(id=subgraph_id, title=title, direction=direction)
        self.elements.append(sg)
        return Fragment(sg.elements)

    def extend(self, other: "Fragment"):
        self.elements.extend(other.elements)

    @property
    def is_empty(self) -> bool:
        return not self.elements

    def walk(self) -> Iterator[DiagramElement]:
        for element in self.elements:
            yield element
            if isinstance(element, Subgraph):
                yield from Fragment(element.elements).walk()

    def nodes(self) -> List[DiagramNode]:
        return [e for e in self.walk() if isinstance(e, DiagramNode)]

    def edges(self) -> List[DiagramEdge]:
        return [e for e in self.walk() if isinstance(e, DiagramEdge)]
