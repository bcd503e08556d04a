"""Execution engine for Block/ActionStep trees.

This module is intentionally app-agnostic and must not import `distforge.*`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, TypeAlias


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class FlowContext(Protocol):
    logger: logging.Logger
    outputs: dict[str, Any]
    steps: list[dict[str, Any]]


def _clean_label(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{what} must be a non-empty string (got {value!r})")
    return value.strip()


@dataclass(frozen=True)
class ActionStep:
    """`fn(ctx)`; a non-None `capture_key` stores the return value in `ctx.outputs`."""

    name: str
    fn: Callable[[FlowContext], Any]
    capture_key: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _clean_label(self.name, "Action name"))
        if not callable(self.fn):
            raise TypeError(f"Action {self.name} fn must be callable (type={type(self.fn).__name__})")
        if self.capture_key is not None:
            object.__setattr__(
                self, "capture_key", _clean_label(self.capture_key, f"Action {self.name} capture_key")
            )


@dataclass(frozen=True)
class Block:
    name: str
    nodes: list["Node"] = field(default_factory=list)

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _clean_label(self.name, "Block name"))
        names = [node.name for node in self.nodes]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate node name(s) in block {self.name}: {', '.join(duplicates)}")


Node: TypeAlias = ActionStep | Block


class StepRecorder(Protocol):
    def on_step_start(self, ctx: FlowContext, path: str) -> None:
        ...

    def on_step_end(self, ctx: FlowContext, record: dict[str, Any]) -> None:
        ...

    def on_step_error(self, ctx: FlowContext, path: str, exc: Exception) -> None:
        ...


class DefaultStepRecorder:
    """Log each step and keep its record in `ctx.steps`."""

    def on_step_start(self, ctx: FlowContext, path: str) -> None:
        ctx.logger.info("Step: %s", path)

    def on_step_end(self, ctx: FlowContext, record: dict[str, Any]) -> None:
        ctx.steps.append(record)
        ctx.logger.info("Completed step %s", record["path"])

    def on_step_error(self, ctx: FlowContext, path: str, exc: Exception) -> None:
        ctx.logger.error("Step failed: %s (%s)", path, exc)


def _attach_location(exc: BaseException, path: str, node_type: str, name: str) -> None:
    # The innermost node sets these first; enclosing blocks leave them alone.
    if hasattr(exc, "pipeline_path"):
        return
    try:
        exc.pipeline_path = path
        exc.pipeline_node_type = node_type
        exc.pipeline_step = name
    except AttributeError:
        pass


class StepRunner:
    def __init__(self, *, recorder: StepRecorder | None = None):
        recorder = recorder or DefaultStepRecorder()
        for hook in ("on_step_start", "on_step_end", "on_step_error"):
            if not callable(getattr(recorder, hook, None)):
                raise TypeError(f"Step recorder missing required method: {hook}")
        self._recorder = recorder

    def run(self, ctx: FlowContext, node: Node) -> None:
        self._run_node(ctx, node, node.name)

    def _run_node(self, ctx: FlowContext, node: Node, path: str) -> None:
        if isinstance(node, Block):
            try:
                for child in node.nodes:
                    self._run_node(ctx, child, f"{path}/{child.name}")
            except Exception as exc:
                _attach_location(exc, path, "block", node.name)
                raise
        elif isinstance(node, ActionStep):
            self._run_action(ctx, node, path)
        else:
            raise TypeError(f"Unsupported pipeline node (type={type(node).__name__})")

    def _run_action(self, ctx: FlowContext, action: ActionStep, path: str) -> None:
        self._recorder.on_step_start(ctx, path)
        try:
            result = action.fn(ctx)
        except Exception as exc:
            self._recorder.on_step_error(ctx, path, exc)
            _attach_location(exc, path, "action", action.name)
            raise

        if action.capture_key is not None:
            ctx.outputs[action.capture_key] = result
        record: dict[str, Any] = {
            "type": "action",
            "name": action.name,
            "path": path,
            "created_at": utc_now_iso8601(),
        }
        if result is not None:
            record["result"] = (
                [str(item) for item in result] if isinstance(result, (list, tuple)) else str(result)
            )
        self._recorder.on_step_end(ctx, record)
