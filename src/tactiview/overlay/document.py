"""Overlay document model: the accumulable visual spec drawn over a frame.

Coordinates are normalized to a 0-100 scale on both axes (0 = left/top edge,
100 = right/bottom edge). Values outside that range are passed through
untouched; clamping is the renderer's job.

Every collection is an ordered tuple. Later elements paint over earlier ones,
so insertion order is part of the document's meaning.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

LINE_STYLES = ("solid", "dashed", "dotted")
CATEGORIES = ("attack", "defense", "neutral")

COLLECTIONS = ("attack_lines", "defense_lines", "movement_paths", "zones", "annotations")

# Renderer (JSON) key for each collection.
WIRE_NAMES = {
    "attack_lines": "attackLines",
    "defense_lines": "defenseLines",
    "movement_paths": "movementPaths",
    "zones": "zones",
    "annotations": "annotations",
}


@dataclass(frozen=True)
class Position:
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class DirectedSegment:
    """An arrow from one position to another."""

    id: str
    start: Position
    end: Position
    label: str | None = None
    style: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "id": self.id,
            "from": self.start.to_dict(),
            "to": self.end.to_dict(),
        }
        if self.label is not None:
            d["label"] = self.label
        if self.style is not None:
            d["style"] = self.style
        return d


@dataclass(frozen=True)
class PolyPath:
    """Multi-point movement trajectory (at least two points)."""

    id: str
    points: tuple[Position, ...]
    category: str
    label: str | None = None
    style: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "id": self.id,
            "points": [p.to_dict() for p in self.points],
            "type": self.category,
        }
        if self.label is not None:
            d["label"] = self.label
        if self.style is not None:
            d["style"] = self.style
        return d


@dataclass(frozen=True)
class Polygon:
    """Highlighted region (at least three points)."""

    id: str
    points: tuple[Position, ...]
    category: str
    label: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "id": self.id,
            "points": [p.to_dict() for p in self.points],
            "type": self.category,
        }
        if self.label is not None:
            d["label"] = self.label
        return d


@dataclass(frozen=True)
class TextMark:
    id: str
    position: Position
    text: str

    def to_dict(self) -> dict:
        return {"id": self.id, "position": self.position.to_dict(), "text": self.text}


@dataclass(frozen=True)
class OverlayDocument:
    """Named geometry collections. An empty document is the merge identity."""

    attack_lines: tuple[DirectedSegment, ...] = ()
    defense_lines: tuple[DirectedSegment, ...] = ()
    movement_paths: tuple[PolyPath, ...] = ()
    zones: tuple[Polygon, ...] = ()
    annotations: tuple[TextMark, ...] = ()

    def element_count(self) -> int:
        return sum(len(getattr(self, name)) for name in COLLECTIONS)

    def counts(self) -> dict[str, int]:
        """Per-collection element counts, for logging."""
        return {name: len(getattr(self, name)) for name in COLLECTIONS}

    def to_dict(self) -> dict:
        """Serialize to the renderer's camelCase JSON shape."""
        return {
            WIRE_NAMES[name]: [el.to_dict() for el in getattr(self, name)]
            for name in COLLECTIONS
        }


def merge(base: OverlayDocument, delta: OverlayDocument) -> OverlayDocument:
    """Return a new document with each of delta's collections appended to base's.

    Neither input is modified. Base elements come first.
    """
    return OverlayDocument(
        **{name: getattr(base, name) + getattr(delta, name) for name in COLLECTIONS}
    )


def has_visible_content(doc: OverlayDocument) -> bool:
    """True iff at least one collection is non-empty."""
    return any(getattr(doc, name) for name in COLLECTIONS)


@dataclass(frozen=True)
class VisualizationSpec:
    """A complete, stand-alone visualization parsed from single-shot output."""

    type: str
    document: OverlayDocument
    title: str | None = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"type": self.type}
        if self.title is not None:
            d["title"] = self.title
        d.update(self.extra)
        d.update(self.document.to_dict())
        return d
