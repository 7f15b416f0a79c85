"""
Agent module - the engine that runs turns.

Includes:
- Orchestrator: the model/tool loop with fallback models
- ContextScaler: window, threshold and block history scaling
- summarize: structured conversation summaries
- TurnRunner: stateless agent turns and persisted thread turns
"""

from .core import Orchestrator
from .scaling import ContextScaler
from .session import TurnRunner
from .summarizer import summarize

__all__ = [
    "ContextScaler",
    "Orchestrator",
    "TurnRunner",
    "summarize",
]
