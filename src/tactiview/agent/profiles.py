"""Prompt profiles and the settings injected into the agent loop."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from tactiview import config
from tactiview.overlay.schema import DEFAULT_STAGES

TACTICAL_SYSTEM_INSTRUCTION = """\
You are an expert Sports Analyst Agent.
Your role is to analyze sports footage (provided as a specific frame image) to provide \
deep insights into strategy, plays, and tactical movements.

IMPORTANT: Focus on analyzing PLAYS and MOVEMENT PATTERNS, not individual player \
identification. This minimizes errors from misidentifying players and keeps focus on \
the tactical elements.

You have access to a tool called "show_overlay" that displays visual elements on the \
video frame. You MUST use this tool to build up your analysis step by step.

WORKFLOW:
1. First, call show_overlay with stage="diagram" to add key visual elements (zones, \
lines, arrows) showing the main play
2. Then, call show_overlay with stage="think" to add supporting analysis elements and \
refine the diagram
3. Finally, call show_overlay with stage="finalize" to add any final touches and \
annotations

Each tool call should add NEW visual elements. Build up the visualization progressively:
- Start with zones or key areas
- Then add movement lines (attack/defense)
- Then add annotations for labels

COORDINATE SYSTEM:
- All positions use normalized 0-100 scale (resolution-independent)
- x: 0 = left edge, 50 = center, 100 = right edge
- y: 0 = top edge, 50 = middle, 100 = bottom edge

AVOID CONGESTED OVERLAYS:
- Use at most 3-4 annotations/labels total across ALL tool calls
- Labels must be spaced at least 15 units apart (in x or y) to prevent overlap
- Choose EITHER line labels OR separate annotations for the same concept, never both
- Label only the 2-3 most important tactical elements
- Place labels at the END of lines or in clear open areas of the frame

After all tool calls, provide a final text summary of your analysis.

FINAL RESPONSE FORMAT:
- Plain text only: no markdown, no bullet points, no numbered lists
- Limit to 2-3 sentences

TONE:
Professional and analytical. Focus on tactical concepts, not player names or jersey \
numbers."""

SINGLE_SHOT_SYSTEM_INSTRUCTION = """\
You are an expert Sports Analyst.
Analyze the provided frame and explain the play, its spacing and the key tactical \
movements in 2-4 short paragraphs of plain text.

When a diagram would help, append it as a fenced code block tagged `visualization` \
containing one JSON object:

```visualization
{"type": "play_diagram", "title": "...", "attackLines": [], "defenseLines": [], \
"movementPaths": [], "zones": [], "annotations": []}
```

Segments use {"id", "from": {"x", "y"}, "to": {"x", "y"}, "label"?, "style"?}. \
Paths and zones use {"id", "points": [{"x", "y"}, ...], "type": \
"attack"|"defense"|"neutral", "label"?}. Annotations use {"id", "position": \
{"x", "y"}, "text"}. All coordinates are on a 0-100 scale from the top-left corner."""


@dataclass(frozen=True)
class PromptProfile:
    name: str
    system_instruction: str
    stages: tuple[str, ...] = DEFAULT_STAGES
    temperature: float = 0.4
    # False for profiles whose prompt asks for fenced blocks instead of tool calls
    agentic: bool = True


PROFILES: dict[str, PromptProfile] = {
    "tactical": PromptProfile(
        name="tactical",
        system_instruction=TACTICAL_SYSTEM_INSTRUCTION,
        temperature=config.AGENT_TEMPERATURE,
    ),
    "single_shot": PromptProfile(
        name="single_shot",
        system_instruction=SINGLE_SHOT_SYSTEM_INSTRUCTION,
        stages=(),
        temperature=config.SINGLE_SHOT_TEMPERATURE,
        agentic=False,
    ),
}

DEFAULT_PROFILE = "tactical"


def get_profile(name: str) -> PromptProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise KeyError(
            f"Unknown profile {name!r}. Available: {', '.join(sorted(PROFILES))}"
        ) from None


def agentic_profiles() -> list[str]:
    """Names of the profiles the tool-calling loop can run."""
    return sorted(name for name, p in PROFILES.items() if p.agentic)


def get_agentic_profile(name: str) -> PromptProfile:
    profile = get_profile(name)
    if not profile.agentic:
        raise KeyError(
            f"Profile {name!r} does not drive the overlay tool. "
            f"Available: {', '.join(agentic_profiles())}"
        )
    return profile


@dataclass(frozen=True)
class LoopSettings:
    """Everything the agent loop needs that is policy rather than protocol."""

    system_instruction: str
    max_iterations: int = 10
    min_tool_calls: int = 5
    temperature: float = 0.4
    stages: tuple[str, ...] = field(default=DEFAULT_STAGES)
    thinking_budget: int | None = 0

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.min_tool_calls < 0:
            raise ValueError("min_tool_calls must not be negative")

    @classmethod
    def from_profile(cls, profile: PromptProfile | str, **overrides) -> LoopSettings:
        """Build settings from a profile and config defaults; overrides win."""
        if isinstance(profile, str):
            profile = get_profile(profile)
        settings = cls(
            system_instruction=profile.system_instruction,
            max_iterations=config.MAX_ITERATIONS,
            min_tool_calls=config.MIN_TOOL_CALLS,
            temperature=profile.temperature,
            stages=profile.stages,
            thinking_budget=config.THINKING_BUDGET,
        )
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(settings, **overrides) if overrides else settings
