from .engine import SELECTION_FEATURE_CEILING, SelectionController, SelectionOutcome
from .machine import Phase, SelectionState, transition

__all__ = [
    "SELECTION_FEATURE_CEILING",
    "Phase",
    "SelectionController",
    "SelectionOutcome",
    "SelectionState",
    "transition",
]
