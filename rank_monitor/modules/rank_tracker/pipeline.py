"""Stage composition: guarded stages and the Ok/Failed outcome of applying one."""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from rank_monitor.modules.rank_tracker.state import MonitoringState, merge_state
from rank_monitor.utils.helpers import describe_error

logger = logging.getLogger(__name__)

StateUpdate = Mapping[str, Any]
Stage = Callable[[MonitoringState], Awaitable[StateUpdate]]


class WorkflowDefinitionError(Exception):
    """A stage broke the pipeline contract (bad return type, unknown field)."""


@dataclass(frozen=True)
class Ok:
    """The state after a stage, with no error recorded."""

    state: MonitoringState


@dataclass(frozen=True)
class Failed:
    """The state after a stage, carrying the first recorded error."""

    state: MonitoringState

    @property
    def error(self) -> str:
        return self.state.error or ""


StageOutcome = Union[Ok, Failed]


def outcome_of(state: MonitoringState) -> StageOutcome:
    return Failed(state) if state.failed else Ok(state)


def pipeline_stage(
    name: str,
    failure_prefix: str,
    on_short_circuit: Optional[Callable[[MonitoringState], None]] = None,
):
    """Turn an async stage body into a guarded pipeline stage.

    The wrapped callable takes the state as its last positional argument,
    so it works for plain functions and methods alike. The guard:

    * echoes ``{"error": ...}`` untouched when the incoming state already
      failed, without running the body (``on_short_circuit`` is called
      first, if given);
    * converts any exception raised by the body into
      ``{"error": failure_prefix + <message>}``.
    """

    def decorator(func: Callable[..., Awaitable[StateUpdate]]):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> StateUpdate:
            state: MonitoringState = args[-1]
            if state.error is not None:
                if on_short_circuit is not None:
                    on_short_circuit(state)
                return {"error": state.error}
            try:
                return await func(*args, **kwargs)
            except Exception as exc:
                message = describe_error(exc)
                logger.exception("Stage %s failed: %s", name, message)
                return {"error": failure_prefix + message}

        wrapper.stage_name = name
        return wrapper

    return decorator


def stage_name(stage: Stage) -> str:
    return getattr(stage, "stage_name", getattr(stage, "__name__", repr(stage)))


async def apply_stage(outcome: StageOutcome, stage: Stage) -> StageOutcome:
    """Run ``stage`` on the outcome's state and merge its update.

    Raises:
        WorkflowDefinitionError: if the stage returns something other than a
            mapping or names a field the state does not have.
    """
    update = await stage(outcome.state)
    if not isinstance(update, Mapping):
        raise WorkflowDefinitionError(
            f"Stage {stage_name(stage)!r} returned {type(update).__name__}, expected a mapping"
        )
    try:
        merged = merge_state(outcome.state, update)
    except ValueError as exc:
        raise WorkflowDefinitionError(f"Stage {stage_name(stage)!r}: {exc}") from exc
    return outcome_of(merged)
