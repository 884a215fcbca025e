"""
Inactive Identity Lifecycle Engine (Inactivity Engine)

Finds Microsoft Entra ID member and guest accounts that crossed an
inactivity threshold and disables, soft-deletes, or collects them into
a review group.

Every run recomputes its decisions from the directory; no state is
carried between runs.
"""

__version__ = "1.0.0"
__author__ = "Inactivity Engine Team"
__email__ = "team@example.com"

from .config import EngineSettings, load_settings
from .engine.filter_pipeline import FilterPipeline
from .workflows.group_sync import GroupSynchronizer
from .workflows.inactivity_workflow import InactivityWorkflow
from .workflows.lifecycle_actuator import LifecycleActuator

__all__ = [
    "EngineSettings",
    "load_settings",
    "FilterPipeline",
    "GroupSynchronizer",
    "InactivityWorkflow",
    "LifecycleActuator",
]
