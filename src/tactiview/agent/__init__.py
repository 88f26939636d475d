"""Agent package: the overlay tool-calling loop and the single-shot analyzer."""

from tactiview.agent.loop import AgentLoop, Outcome, SessionResult, create_agent_loop
from tactiview.agent.single_shot import (
    AnalysisResult,
    SingleShotAnalyzer,
    create_single_shot_analyzer,
)

__all__ = [
    "AgentLoop",
    "AnalysisResult",
    "Outcome",
    "SessionResult",
    "SingleShotAnalyzer",
    "create_agent_loop",
    "create_single_shot_analyzer",
]
