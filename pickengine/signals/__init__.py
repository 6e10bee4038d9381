"""Signal generators: each turns one game's pre-game context into a SignalResult."""

from .angles import DEFAULT_TEMPLATES, AngleIndex, AngleTemplate
from .base import SignalInputs, make_signal
from .registry import GENERATORS, categories_for, generate_signals

__all__ = [
    "AngleIndex",
    "AngleTemplate",
    "DEFAULT_TEMPLATES",
    "GENERATORS",
    "SignalInputs",
    "categories_for",
    "generate_signals",
    "make_signal",
]
