"""Staffing assignments attached to state transitions."""

from collections.abc import Iterable

from .errors import AssignmentRequiredError
from .models import Assignment, OrderState, Shift, TrackingRecord, Worker

# States that need a shift and at least one worker when entered
STAFFED_STATES: frozenset[OrderState] = frozenset([
    OrderState.WASHING,
    OrderState.DRYING,
    OrderState.PRESSING,
    OrderState.REWORK,
    OrderState.PACKING,
])


def requires_staffing(state: OrderState) -> bool:
    return state in STAFFED_STATES


def unique_workers(workers: Iterable[Worker]) -> list[Worker]:
    """Collapse repeated worker IDs, keeping the first occurrence."""
    seen: set[str] = set()
    result: list[Worker] = []
    for w in workers:
        if w.id in seen:
            continue
        seen.add(w.id)
        result.append(w)
    return result


def assign(
    record: TrackingRecord,
    state: OrderState,
    shift: Shift | None,
    workers: Iterable[Worker] | None,
) -> bool:
    """
    Record who staffs `state` on this record.

    The entry for `state` is replaced, never merged. Nothing is written for
    unstaffed states or when the shift or workers are missing.

    Returns:
        True if an assignment entry was written.
    """
    if not requires_staffing(state) or shift is None:
        return False
    crew = unique_workers(workers or [])
    if not crew:
        return False
    record.assignments[state] = Assignment(shift=shift, workers=crew)
    return True


def validate_staffing(
    target: OrderState,
    shift: Shift | None,
    workers: Iterable[Worker] | None,
) -> None:
    """
    Caller-side check before advancing into `target`.

    The engine accepts advances without workers; front-ends call this first so
    that operators cannot skip the assignment step.

    Raises:
        AssignmentRequiredError: If `target` is staffed and the shift or
            workers are missing.
    """
    if not requires_staffing(target):
        return
    if shift is None:
        raise AssignmentRequiredError(target.value, "select a shift")
    if not list(workers or []):
        raise AssignmentRequiredError(target.value, "select at least one worker")
