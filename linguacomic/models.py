"""
LinguaComic — Data models.

Dataclasses for one learning bundle:
Panel / VocabItem / Graph → Document.

The Document is the single source of truth for a session. Its camelCase
dict form (to_dict / from_dict) is the canonical interchange shape, used
both for the analysis response and for the dashboard API.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class PipelineState(Enum):
    """Pipeline lifecycle states."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    SYNTHESIZING_IMAGES = "synthesizing_images"
    COMPLETE = "complete"
    ERROR = "error"


# Panel fields a user may edit after analysis
EDITABLE_PANEL_FIELDS = ("caption", "dialogue")

# Prompt used for vocabulary items that came back without one
DEFAULT_VOCAB_PROMPT = "Illustration of {word}"


@dataclass
class Panel:
    """A single comic panel."""
    id: int
    image_prompt: str          # Set by analysis, never edited
    caption: str = ""          # Narrative box
    dialogue: str = ""         # Speech bubble
    image: Optional[str] = None  # Filled after synthesis (URL or data: URL)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "imagePrompt": self.image_prompt,
            "caption": self.caption,
            "dialogue": self.dialogue,
            "image": self.image,
        }


@dataclass
class VocabItem:
    """A vocabulary flashcard."""
    word: str
    definition: str = ""
    example: str = ""
    image_prompt: str = ""
    image: Optional[str] = None

    @property
    def effective_prompt(self) -> str:
        return self.image_prompt or DEFAULT_VOCAB_PROMPT.format(word=self.word)

    def to_dict(self) -> dict:
        return {
            "word": self.word,
            "definition": self.definition,
            "example": self.example,
            "imagePrompt": self.image_prompt,
            "image": self.image,
        }


@dataclass
class Node:
    id: str
    label: str
    group: int = 1  # Colour class only

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "group": self.group}


@dataclass
class Link:
    source_id: str
    target_id: str
    relationship: str = ""

    def to_dict(self) -> dict:
        return {
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "relationship": self.relationship,
        }


@dataclass
class Graph:
    """Concept graph. Links may dangle; that is tolerated everywhere."""
    nodes: list[Node] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def dangling_links(self) -> list[Link]:
        ids = self.node_ids()
        return [l for l in self.links if l.source_id not in ids or l.target_id not in ids]

    def to_dict(self) -> dict:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "links": [l.to_dict() for l in self.links],
        }


@dataclass
class Document:
    """Full learning bundle for one analysis run."""
    summary: str = ""
    comic_panels: list[Panel] = field(default_factory=list)
    vocabulary: list[VocabItem] = field(default_factory=list)
    graph: Graph = field(default_factory=Graph)

    def find_panel(self, panel_id: int) -> Optional[Panel]:
        for panel in self.comic_panels:
            if panel.id == panel_id:
                return panel
        return None

    @property
    def illustrated_panels(self) -> int:
        return sum(1 for p in self.comic_panels if p.image)

    @property
    def illustrated_vocabulary(self) -> int:
        return sum(1 for v in self.vocabulary if v.image)

    def to_dict(self) -> dict:
        """Serialize to the canonical interchange shape."""
        return {
            "summary": self.summary,
            "comicPanels": [p.to_dict() for p in self.comic_panels],
            "graph": self.graph.to_dict(),
            "vocabulary": [v.to_dict() for v in self.vocabulary],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Document":
        """
        Build a Document from the interchange shape, validating as it goes.

        Raises ValueError describing the first mismatch found. Images are
        accepted when present so a serialized Document round-trips.
        """
        root = _require_mapping(data, "document")
        summary = _require_str(root, "summary", "document")

        panels = []
        seen_ids = set()
        for i, raw in enumerate(_require_list(root, "comicPanels", "document")):
            where = f"comicPanels[{i}]"
            item = _require_mapping(raw, where)
            panel_id = _require_int(item, "id", where)
            if panel_id in seen_ids:
                raise ValueError(f"{where}: duplicate panel id {panel_id}")
            seen_ids.add(panel_id)
            panels.append(Panel(
                id=panel_id,
                image_prompt=_require_str(item, "imagePrompt", where),
                caption=_require_str(item, "caption", where),
                dialogue=_require_str(item, "dialogue", where),
                image=_optional_str(item, "image", where),
            ))

        graph_raw = _require_mapping(root.get("graph"), "graph")
        nodes = []
        for i, raw in enumerate(_require_list(graph_raw, "nodes", "graph")):
            where = f"graph.nodes[{i}]"
            item = _require_mapping(raw, where)
            nodes.append(Node(
                id=_require_str(item, "id", where),
                label=_require_str(item, "label", where),
                group=_require_int(item, "group", where),
            ))
        links = []
        for i, raw in enumerate(_require_list(graph_raw, "links", "graph")):
            where = f"graph.links[{i}]"
            item = _require_mapping(raw, where)
            links.append(Link(
                source_id=_require_str(item, "sourceId", where),
                target_id=_require_str(item, "targetId", where),
                relationship=_require_str(item, "relationship", where),
            ))

        vocabulary = []
        for i, raw in enumerate(_require_list(root, "vocabulary", "document")):
            where = f"vocabulary[{i}]"
            item = _require_mapping(raw, where)
            vocabulary.append(VocabItem(
                word=_require_str(item, "word", where),
                definition=_require_str(item, "definition", where),
                example=_require_str(item, "example", where),
                image_prompt=_optional_str(item, "imagePrompt", where) or "",
                image=_optional_str(item, "image", where),
            ))

        return cls(
            summary=summary,
            comic_panels=panels,
            vocabulary=vocabulary,
            graph=Graph(nodes=nodes, links=links),
        )


# ============================================================
# Validation helpers
# ============================================================

def _require_mapping(value: Any, where: str) -> dict:
    if not isinstance(value, dict):
        raise ValueError(f"{where}: expected an object, got {type(value).__name__}")
    return value


def _require_list(obj: dict, key: str, where: str) -> list:
    value = obj.get(key)
    if not isinstance(value, list):
        raise ValueError(f"{where}.{key}: expected a list")
    return value


def _require_str(obj: dict, key: str, where: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{where}.{key}: expected a string")
    return value


def _optional_str(obj: dict, key: str, where: str) -> Optional[str]:
    value = obj.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{where}.{key}: expected a string or null")
    return value


def _require_int(obj: dict, key: str, where: str) -> int:
    value = obj.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{where}.{key}: expected an integer")
    return value
