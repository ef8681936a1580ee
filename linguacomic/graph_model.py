"""
LinguaComic — Interactive Graph Model.

Two display modes over a Document's concept graph:

- SIMULATED (default): a ForceLayout is derived from the graph and can be
  stepped and dragged. It is rebuilt from scratch whenever the graph
  changes identity or the model returns from editing.
- EDITING: structural edits go to a scratch copy. save() swaps it into the
  Document in one assignment; cancel() throws it away.
"""

import copy
import logging
from enum import Enum
from typing import Optional

from linguacomic.errors import GraphModeError
from linguacomic.layout import ForceLayout
from linguacomic.models import Document, Graph, Link, Node

logger = logging.getLogger(__name__)

NODE_FIELDS = {"id", "label", "group"}
LINK_FIELDS = {"source_id", "target_id", "relationship"}


class GraphMode(Enum):
    SIMULATED = "simulated"
    EDITING = "editing"


class GraphModel:
    """Concept graph view and editor for one Document."""

    def __init__(
        self,
        document: Document,
        width: float = 800.0,
        height: float = 500.0,
        seed: Optional[int] = None,
    ):
        self.document = document
        self.width = width
        self.height = height
        self.seed = seed
        self.mode = GraphMode.SIMULATED
        self.scratch: Optional[Graph] = None
        self._layout: Optional[ForceLayout] = None
        self._layout_graph: Optional[Graph] = None

    @property
    def graph(self) -> Graph:
        return self.document.graph

    # ============================================================
    # Simulated mode
    # ============================================================

    @property
    def layout(self) -> ForceLayout:
        """The live layout, rebuilt if the Document's graph was replaced."""
        self._require(GraphMode.SIMULATED)
        if self._layout is None or self._layout_graph is not self.document.graph:
            self._rebuild_layout()
        return self._layout

    def attach(self, document: Document):
        """Point at a new Document; the next layout access starts fresh."""
        if self.mode == GraphMode.EDITING:
            logger.info("New document arrived mid-edit; discarding scratch graph")
        self.document = document
        self.mode = GraphMode.SIMULATED
        self.scratch = None
        self._discard_layout()

    def step(self, ticks: int = 1) -> ForceLayout:
        layout = self.layout
        for _ in range(ticks):
            layout.tick()
        return layout

    def drag_start(self, node_id: str) -> bool:
        return self.layout.drag_start(node_id)

    def drag_to(self, node_id: str, x: float, y: float) -> bool:
        return self.layout.drag_to(node_id, x, y)

    def drag_end(self, node_id: str) -> bool:
        return self.layout.drag_end(node_id)

    # ============================================================
    # Editing mode
    # ============================================================

    def begin_edit(self) -> Graph:
        """Enter editing with a deep copy of the current graph."""
        self._require(GraphMode.SIMULATED)
        self._discard_layout()
        self.scratch = copy.deepcopy(self.document.graph)
        self.mode = GraphMode.EDITING
        return self.scratch

    def add_node(self, label: str = "New", group: int = 1) -> Node:
        scratch = self._scratch()
        node = Node(id=self._fresh_node_id(scratch), label=label, group=group)
        scratch.nodes.append(node)
        return node

    def remove_node(self, index: int) -> Node:
        """Remove a node. Links pointing at it are kept (they dangle)."""
        return self._scratch().nodes.pop(index)

    def update_node(self, index: int, **fields) -> Node:
        node = self._scratch().nodes[index]
        _apply_fields(node, fields, NODE_FIELDS)
        return node

    def add_link(self) -> Link:
        scratch = self._scratch()
        source = scratch.nodes[0].id if scratch.nodes else ""
        link = Link(source_id=source, target_id="", relationship="")
        scratch.links.append(link)
        return link

    def remove_link(self, index: int) -> Link:
        return self._scratch().links.pop(index)

    def update_link(self, index: int, **fields) -> Link:
        link = self._scratch().links[index]
        _apply_fields(link, fields, LINK_FIELDS)
        return link

    def save(self) -> Graph:
        """Replace the Document's graph with the scratch copy, all at once."""
        scratch = self._scratch()
        self.document.graph = scratch
        self.scratch = None
        self.mode = GraphMode.SIMULATED
        self._discard_layout()
        logger.info(f"Graph saved: {len(scratch.nodes)} nodes, {len(scratch.links)} links")
        return scratch

    def cancel(self):
        """Drop the scratch copy; the Document's graph is untouched."""
        self._scratch()
        self.scratch = None
        self.mode = GraphMode.SIMULATED
        self._discard_layout()

    # ============================================================
    # Surface
    # ============================================================

    def to_dict(self, ticks: int = 0) -> dict:
        if self.mode == GraphMode.EDITING:
            return {
                "mode": self.mode.value,
                "graph": self.document.graph.to_dict(),
                "scratch": self.scratch.to_dict(),
                "layout": None,
            }
        layout = self.step(ticks) if ticks else self.layout
        return {
            "mode": self.mode.value,
            "graph": self.document.graph.to_dict(),
            "scratch": None,
            "layout": layout.to_dict(),
        }

    # ============================================================
    # Internals
    # ============================================================

    def _rebuild_layout(self):
        graph = self.document.graph
        self._layout = ForceLayout(graph, width=self.width, height=self.height, seed=self.seed)
        self._layout_graph = graph
        logger.debug(f"Layout rebuilt for {len(graph.nodes)} nodes")

    def _discard_layout(self):
        self._layout = None
        self._layout_graph = None

    def _scratch(self) -> Graph:
        self._require(GraphMode.EDITING)
        return self.scratch

    def _require(self, mode: GraphMode):
        if self.mode != mode:
            raise GraphModeError(f"Graph is {self.mode.value}, operation needs {mode.value}")

    @staticmethod
    def _fresh_node_id(graph: Graph) -> str:
        used = graph.node_ids()
        k = len(graph.nodes) + 1
        while f"n{k}" in used:
            k += 1
        return f"n{k}"


def _apply_fields(target, fields: dict, allowed: set):
    unknown = set(fields) - allowed
    if unknown:
        raise KeyError(f"Unknown field(s): {sorted(unknown)}")
    # Convert everything before touching the target so a bad value changes nothing
    converted = {}
    for key, value in fields.items():
        if key == "group":
            converted[key] = int(value)
        elif value is None:
            converted[key] = ""
        else:
            converted[key] = str(value)
    for key, value in converted.items():
        setattr(target, key, value)
