"""Engine primitives for building and running Block/ActionStep trees."""

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

__all__ = [
    "ActionStep",
    "Block",
    "DefaultStepRecorder",
    "FlowContext",
    "Node",
    "StepRecorder",
    "StepRunner",
    "utc_now_iso8601",
]
