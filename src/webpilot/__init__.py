"""
WebPilot - a conversational browser agent.

A language model drives a shared Playwright browser through a catalogue of
tools while the session keeps a bounded, provider-safe history.

License: Apache-2.0
"""

__version__ = "0.1.0"

from .agents.session import ChatSession, TurnState, TurnSummary
from .config import SessionConfig

__all__ = [
    "ChatSession",
    "SessionConfig",
    "TurnState",
    "TurnSummary",
    "__version__",
]
