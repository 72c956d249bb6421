import re
from typing import Iterable, List, Set

from config import DocType
from diagram import Fragment
from errors import MalformedFragment
from models import (
    DiagramComment,
    DiagramEdge,
    DiagramElement,
    DiagramNode,
    EdgeStyle,
    NodeShape,
    Subgraph,
)
from utils import mermaid_text

# Mermaid node/subgraph IDs must be alphanumeric/underscore and must not start
# with a digit.
MERMAID_ID_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

INDENT = "    "

SHAPES = {
    NodeShape.ROUNDED: ("(", ")"),
    NodeShape.RECTANGLE: ("[", "]"),
    NodeShape.STADIUM: ("([", "])"),
    NodeShape.CIRCLE: ("((", "))"),
    NodeShape.DOUBLE_CIRCLE: ("(((", ")))"),
    NodeShape.RHOMBUS: ("{", "}"),
    NodeShape.SUBROUTINE: ("[[", "]]"),
    NodeShape.CYLINDER: ("[(", ")]"),
}

ARROWS = {
    EdgeStyle.SOLID: "-->",
    EdgeStyle.DOTTED: "-.->",
    EdgeStyle.LONG_DOTTED: "-...->",
}


def mermaid_block(code: str) -> str:
    """Wrap Mermaid source in a Markdown Mermaid code fence."""
    return "```mermaid\n" + code.rstrip() + "\n```\n"


def validate(fragments: List[Fragment]):
    """Checks ids and edge endpoints; raises MalformedFragment on violation."""
    declared: Set[str] = set()
    edges: List[DiagramEdge] = []

    for fragment in fragments:
        if not isinstance(fragment, Fragment):
            raise MalformedFragment(f"Expected a Fragment, got {type(fragment).__name__}")

        for element in fragment.walk():
            if isinstance(element, (DiagramNode, Subgraph)):
                if not MERMAID_ID_RE.match(element.id):
                    raise MalformedFragment(f"Not a Mermaid-safe id: {element.id!r}")
                if element.id in declared:
                    raise MalformedFragment(f"Duplicate id: {element.id}")
                declared.add(element.id)
                if isinstance(element, DiagramNode) and not element.label:
                    raise MalformedFragment(f"Node {element.id} has no label")
            elif isinstance(element, DiagramEdge):
                edges.append(element)
            elif not isinstance(element, DiagramComment):
                raise MalformedFragment(f"Unsupported element {type(element).__name__}")

    for edge in edges:
        for endpoint in (edge.source, edge.target):
            if endpoint not in declared:
                raise MalformedFragment(
                    f"Edge {edge.source} -> {edge.target} references undeclared {endpoint}"
                )


def node_line(node: DiagramNode) -> str:
    opening, closing = SHAPES[node.shape]
    label = "<br>".join(mermaid_text(line) for line in node.label)
    return f'{node.id}{opening}"{label}"{closing}'


def edge_line(edge: DiagramEdge) -> str:
    arrow = ARROWS[edge.style]
    if edge.label:
        return f'{edge.source} {arrow}|"{mermaid_text(edge.label)}"| {edge.target}'
    return f"{edge.source} {arrow} {edge.target}"


def _element_lines(elements: Iterable[DiagramElement], depth: int) -> List[str]:
    pad = INDENT * depth
    lines = []
    for element in elements:
        if isinstance(element, DiagramNode):
            lines.append(pad + node_line(element))
        elif isinstance(element, DiagramEdge):
            lines.append(pad + edge_line(element))
        elif isinstance(element, DiagramComment):
            text = element.text.replace("\n", " ").strip()
            lines.append(f"{pad}%% {text}")
        elif isinstance(element, Subgraph):
            lines.append(f'{pad}subgraph {element.id} ["{mermaid_text(element.title)}"]')
            if element.direction:
                lines.append(f"{pad}{INDENT}direction {element.direction}")
            lines.extend(_element_lines(element.elements, depth + 1))
            lines.append(f"{pad}end")
    return lines


def render_body(fragments: List[Fragment]) -> str:
    validate(fragments)

    lines = ["flowchart TB"]
    links = []
    for fragment in fragments:
        lines.extend(_element_lines(fragment.elements, 1))
        links.extend(n for n in fragment.nodes() if n.link)

    for node in links:
        lines.append(f'{INDENT}click {node.id} "{node.link}" _blank')

    return "\n".join(lines) + "\n"


def render(fragments: List[Fragment], doc_type: DocType = DocType.MARKDOWN) -> str:
    body = render_body(fragments)
    if doc_type == DocType.MARKDOWN:
        return mermaid_block(body)
    return body
