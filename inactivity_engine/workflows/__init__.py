"""
Workflows Package for the Inactivity Engine.

This package provides per-item step execution, the lifecycle actuator,
the review group synchronizer, and the stage workflow that ties them
to the filter pipeline.
"""

from .base_workflow import StepExecutor, WorkflowStep
from .group_sync import GroupSynchronizer
from .inactivity_workflow import InactivityWorkflow
from .lifecycle_actuator import LifecycleActuator

__all__ = [
    "StepExecutor",
    "WorkflowStep",
    "GroupSynchronizer",
    "InactivityWorkflow",
    "LifecycleActuator",
]
