"""show_overlay tool schema and the validation boundary for its arguments.

Tool arguments arrive from the model as untyped JSON. Nothing reaches the
accumulator without passing through validate_invocation() first.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from google.genai import types

from tactiview.overlay.document import (
    CATEGORIES,
    COLLECTIONS,
    LINE_STYLES,
    WIRE_NAMES,
    DirectedSegment,
    OverlayDocument,
    PolyPath,
    Polygon,
    Position,
    TextMark,
)


TOOL_NAME = "show_overlay"
DEFAULT_STAGES = ("diagram", "think", "finalize")

MIN_PATH_POINTS = 2
MIN_ZONE_POINTS = 3


class ValidationError(Exception):
    """Base class for problems found in a raw tool invocation."""


class SchemaMismatch(ValidationError):
    """A required field is missing or has the wrong shape."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class UnknownStage(ValidationError):
    """Stage tag outside the recognized vocabulary. Advisory only."""

    def __init__(self, stage: str, known: Sequence[str]) -> None:
        super().__init__(f"unknown stage {stage!r} (known: {', '.join(known)})")
        self.stage = stage


@dataclass
class ToolInvocation:
    """A validated show_overlay call.

    ``delta`` holds only the elements drawn by this call. ``issues`` lists the
    elements that were dropped and any advisory problems (unknown stage).
    """

    id: str
    delta: OverlayDocument
    thinking: str
    stage: str | None = None
    issues: list[ValidationError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "overlay": self.delta.to_dict(),
            "thinking": self.thinking,
            "stage": self.stage,
        }


# ---------------------------------------------------------------------------
# Declared schema
# ---------------------------------------------------------------------------

_POSITION = {
    "type": "object",
    "properties": {"x": {"type": "number"}, "y": {"type": "number"}},
    "required": ["x", "y"],
}


def _segment_schema(description: str) -> dict:
    return {
        "type": "array",
        "description": description,
        "items": {
            "type": "object",
            "properties": {
                "id": {"type": "string"},
                "from": _POSITION,
                "to": _POSITION,
                "label": {"type": "string"},
                "style": {"type": "string", "enum": list(LINE_STYLES)},
            },
            "required": ["id", "from", "to"],
        },
    }


def overlay_json_schema() -> dict:
    """JSON schema of an overlay document (a delta or a complete spec)."""
    return {
        "type": "object",
        "description": "Visual elements to display on this step",
        "properties": {
            "attackLines": _segment_schema(
                "Red arrows showing offensive movement, passes, drives"
            ),
            "defenseLines": _segment_schema(
                "Blue arrows showing defensive movement, help rotations"
            ),
            "movementPaths": {
                "type": "array",
                "description": "Multi-point paths showing movement trajectories",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "points": {"type": "array", "items": _POSITION},
                        "type": {"type": "string", "enum": list(CATEGORIES)},
                        "label": {"type": "string"},
                        "style": {"type": "string", "enum": list(LINE_STYLES)},
                    },
                    "required": ["id", "points", "type"],
                },
            },
            "zones": {
                "type": "array",
                "description": "Highlighted polygon regions (gaps, open space, weak side)",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "points": {"type": "array", "items": _POSITION},
                        "label": {"type": "string"},
                        "type": {"type": "string", "enum": list(CATEGORIES)},
                    },
                    "required": ["id", "points", "type"],
                },
            },
            "annotations": {
                "type": "array",
                "description": "Text labels at specific positions",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "position": _POSITION,
                        "text": {"type": "string"},
                    },
                    "required": ["id", "position", "text"],
                },
            },
        },
    }


def show_overlay_parameters(stages: Sequence[str] = DEFAULT_STAGES) -> dict:
    return {
        "type": "object",
        "properties": {
            "id": {
                "type": "string",
                "description": 'Unique identifier for this overlay step (e.g., "step1", '
                '"zones", "attack-lines")',
            },
            "overlay": overlay_json_schema(),
            "thinking": {
                "type": "string",
                "description": "One line explaining your reasoning for this step",
            },
            "stage": {
                "type": "string",
                "enum": list(stages),
                "description": "Current analysis stage: " + ", ".join(stages),
            },
        },
        "required": ["id", "overlay", "thinking"],
    }


def build_show_overlay_declaration(
    stages: Sequence[str] = DEFAULT_STAGES,
) -> types.FunctionDeclaration:
    """Gemini declaration for the drawing tool with the given stage vocabulary."""
    return types.FunctionDeclaration(
        name=TOOL_NAME,
        description=(
            "Display visual overlay elements on the video frame. Call multiple times "
            "to progressively build up the analysis visualization."
        ),
        parameters_json_schema=show_overlay_parameters(stages),
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _position(raw: Any, path: str) -> Position:
    if not isinstance(raw, dict):
        raise SchemaMismatch(path, "expected an object with numeric x and y")
    for axis in ("x", "y"):
        if not _is_number(raw.get(axis)):
            raise SchemaMismatch(f"{path}.{axis}", "missing or not a number")
    return Position(x=raw["x"], y=raw["y"])


def _points(raw: Any, path: str, minimum: int) -> tuple[Position, ...]:
    if not isinstance(raw, list):
        raise SchemaMismatch(path, "expected an array of positions")
    if len(raw) < minimum:
        raise SchemaMismatch(path, f"needs at least {minimum} points, got {len(raw)}")
    return tuple(_position(p, f"{path}[{i}]") for i, p in enumerate(raw))


def _required_str(item: dict, key: str, path: str) -> str:
    value = item.get(key)
    if not isinstance(value, str):
        raise SchemaMismatch(f"{path}.{key}", "missing or not a string")
    return value


def _optional_str(
    item: dict, key: str, path: str, issues: list[ValidationError],
    allowed: Sequence[str] | None = None,
) -> str | None:
    """Return an optional string field, discarding (and reporting) bad values."""
    value = item.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or (allowed is not None and value not in allowed):
        issues.append(SchemaMismatch(f"{path}.{key}", f"ignored invalid value {value!r}"))
        return None
    return value


def _category(item: dict, path: str) -> str:
    value = _required_str(item, "type", path)
    if value not in CATEGORIES:
        raise SchemaMismatch(f"{path}.type", f"must be one of {', '.join(CATEGORIES)}")
    return value


def _segment(item: dict, path: str, issues: list[ValidationError]) -> DirectedSegment:
    return DirectedSegment(
        id=_required_str(item, "id", path),
        start=_position(item.get("from"), f"{path}.from"),
        end=_position(item.get("to"), f"{path}.to"),
        label=_optional_str(item, "label", path, issues),
        style=_optional_str(item, "style", path, issues, LINE_STYLES),
    )


def _path(item: dict, path: str, issues: list[ValidationError]) -> PolyPath:
    return PolyPath(
        id=_required_str(item, "id", path),
        points=_points(item.get("points"), f"{path}.points", MIN_PATH_POINTS),
        category=_category(item, path),
        label=_optional_str(item, "label", path, issues),
        style=_optional_str(item, "style", path, issues, LINE_STYLES),
    )


def _zone(item: dict, path: str, issues: list[ValidationError]) -> Polygon:
    return Polygon(
        id=_required_str(item, "id", path),
        points=_points(item.get("points"), f"{path}.points", MIN_ZONE_POINTS),
        category=_category(item, path),
        label=_optional_str(item, "label", path, issues),
    )


def _annotation(item: dict, path: str, issues: list[ValidationError]) -> TextMark:
    return TextMark(
        id=_required_str(item, "id", path),
        position=_position(item.get("position"), f"{path}.position"),
        text=_required_str(item, "text", path),
    )


_BUILDERS = {
    "attack_lines": _segment,
    "defense_lines": _segment,
    "movement_paths": _path,
    "zones": _zone,
    "annotations": _annotation,
}


def validate_overlay(
    raw: Any, path: str = "overlay",
) -> tuple[OverlayDocument, list[ValidationError]]:
    """Convert a raw overlay object into an OverlayDocument.

    Invalid elements are left out and reported; valid siblings are kept in
    their original order. Raises SchemaMismatch only if ``raw`` itself is not
    an object.
    """
    if not isinstance(raw, dict):
        raise SchemaMismatch(path, "expected an object")

    issues: list[ValidationError] = []
    collections: dict[str, tuple] = {}
    for name in COLLECTIONS:
        wire = WIRE_NAMES[name]
        items = raw.get(wire)
        if items is None:
            collections[name] = ()
            continue
        if not isinstance(items, list):
            issues.append(SchemaMismatch(f"{path}.{wire}", "expected an array"))
            collections[name] = ()
            continue

        kept = []
        for i, item in enumerate(items):
            item_path = f"{path}.{wire}[{i}]"
            if not isinstance(item, dict):
                issues.append(SchemaMismatch(item_path, "expected an object"))
                continue
            try:
                kept.append(_BUILDERS[name](item, item_path, issues))
            except SchemaMismatch as e:
                issues.append(e)
        collections[name] = tuple(kept)

    return OverlayDocument(**collections), issues


def validate_invocation(
    args: Any, stages: Iterable[str] = DEFAULT_STAGES,
) -> ToolInvocation:
    """Validate raw show_overlay arguments.

    Raises:
        SchemaMismatch: if ``id``, ``overlay`` or ``thinking`` is missing or
            malformed. Element-level problems do not raise; they are recorded
            in the returned invocation's ``issues``.
    """
    if not isinstance(args, dict):
        raise SchemaMismatch("args", "expected an object")

    invocation_id = _required_str(args, "id", "args")
    thinking = _required_str(args, "thinking", "args")
    delta, issues = validate_overlay(args.get("overlay"))

    stage = args.get("stage")
    if stage is not None:
        stage = str(stage)
        known = tuple(stages)
        if stage not in known:
            issues.append(UnknownStage(stage, known))

    return ToolInvocation(
        id=invocation_id,
        delta=delta,
        thinking=thinking,
        stage=stage,
        issues=issues,
    )
