"""
VitruCtrl - Vitruvian Trainer Control Library

A Python library for controlling Vitruvian trainers via Bluetooth.
"""

from .core import __author__, __description__, __version__

from .controller import TrainerController, WorkoutSummary
from .display import DisplayManager
from .plan import EchoItem, ExerciseItem, PlanScheduler
from .storage import PlanStore

__all__ = [
    "TrainerController",
    "WorkoutSummary",
    "DisplayManager",
    "PlanScheduler",
    "ExerciseItem",
    "EchoItem",
    "PlanStore",
    "__version__",
    "__author__",
    "__description__",
]
