"""Reusable pipeline kernel (step engine + event bus).

This package is intentionally independent of `distforge.*`. Anything specific
to building distributions (stage order, hook names, artifact names) must live
in the consuming application.
"""

from pipelinekit.engine.pipeline import (
    ActionStep,
    Block,
    DefaultStepRecorder,
    FlowContext,
    Node,
    StepRecorder,
    StepRunner,
    utc_now_iso8601,
)
from pipelinekit.events import TriggerBus

__all__ = [
    "ActionStep",
    "Block",
    "DefaultStepRecorder",
    "FlowContext",
    "Node",
    "StepRecorder",
    "StepRunner",
    "TriggerBus",
    "utc_now_iso8601",
]
