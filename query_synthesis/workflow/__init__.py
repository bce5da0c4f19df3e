"""LangGraph synthesis workflow"""
from .context import SynthesisContext
from .graph import create_synthesis_workflow, get_workflow
from .orchestrator import SynthesisOrchestrator
from .state import SynthesisState, create_initial_state

__all__ = [
    "SynthesisContext",
    "SynthesisOrchestrator",
    "SynthesisState",
    "create_initial_state",
    "create_synthesis_workflow",
    "get_workflow",
]
