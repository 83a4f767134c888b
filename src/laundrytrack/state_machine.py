"""
Order status state machine.

Pure functions over an in-memory TrackingRecord: no I/O and no store access.
Each mutating function either fully applies its change or raises before
touching the record, so callers can persist the result as one write.

Forward flow:

    pending -> washing -> drying -> pressing -> packing
    packing -> ready_for_pickup   (pickup orders)
    packing -> ready_for_dispatch (dispatch orders)
    ready_for_pickup -> delivered
    ready_for_dispatch -> dispatching -> delivered

Rework is a side loop: activate_rework() moves any record to `rework`, and
advancing from `rework` always re-enters the flow at `washing`.
"""

from collections.abc import Iterable

from .assignment import assign
from .errors import NoNextStateError, NoPriorStateError
from .models import (
    Actor,
    DeliveryType,
    HistoryEntry,
    OrderState,
    Shift,
    TrackingRecord,
    Worker,
    _utc_now,
)

# None means "no fixed successor": packing branches on delivery type and
# delivered is terminal.
NEXT_STATE: dict[OrderState, OrderState | None] = {
    OrderState.PENDING: OrderState.WASHING,
    OrderState.WASHING: OrderState.DRYING,
    OrderState.DRYING: OrderState.PRESSING,
    OrderState.PRESSING: OrderState.PACKING,
    OrderState.REWORK: OrderState.WASHING,
    OrderState.PACKING: None,
    OrderState.READY_FOR_PICKUP: OrderState.DELIVERED,
    OrderState.READY_FOR_DISPATCH: OrderState.DISPATCHING,
    OrderState.DISPATCHING: OrderState.DELIVERED,
    OrderState.DELIVERED: None,
}

PACKING_BRANCHES: dict[DeliveryType, OrderState] = {
    DeliveryType.PICKUP: OrderState.READY_FOR_PICKUP,
    DeliveryType.DISPATCH: OrderState.READY_FOR_DISPATCH,
}

INITIAL_STATE = OrderState.PENDING
TERMINAL_STATES: frozenset[OrderState] = frozenset([OrderState.DELIVERED])

# States a driver works on
DISPATCH_STATES: frozenset[OrderState] = frozenset([
    OrderState.READY_FOR_DISPATCH,
    OrderState.DISPATCHING,
])

# States where the laundry's own work on the order is over
FINISHED_STATES: frozenset[OrderState] = frozenset([
    OrderState.READY_FOR_PICKUP,
    OrderState.READY_FOR_DISPATCH,
    OrderState.DELIVERED,
])


def resolve_next_state(
    state: OrderState,
    delivery_type: DeliveryType | None = None,
) -> OrderState:
    """
    Return the successor of `state`.

    Args:
        state: Current state.
        delivery_type: Delivery type of the linked order; only consulted
            when `state` is packing.

    Raises:
        NoNextStateError: For terminal states, unmapped states, or packing
            without a delivery type.
    """
    if state in TERMINAL_STATES:
        raise NoNextStateError(state.value, "terminal state")
    if state == OrderState.PACKING:
        if delivery_type is None:
            raise NoNextStateError(state.value, "delivery type unknown")
        return PACKING_BRANCHES[delivery_type]
    next_state = NEXT_STATE.get(state)
    if next_state is None:
        raise NoNextStateError(state.value)
    return next_state


def needs_delivery_type(state: OrderState) -> bool:
    """True if advancing from `state` depends on the order's delivery type."""
    return state == OrderState.PACKING


def record_transition(
    record: TrackingRecord,
    state: OrderState,
    actor_id: str,
    actor_name: str,
    shift: Shift | None,
    comment: str,
) -> HistoryEntry:
    """
    Move `record` to `state` and append the matching history entry.

    State and history change together; `active` follows the terminal state.
    """
    now = _utc_now()
    entry = HistoryEntry(
        state=state,
        changed_at=now,
        actor_id=actor_id,
        actor_name=actor_name,
        shift=shift,
        comment=comment,
    )
    record.history.append(entry)
    record.state = state
    record.active = state not in TERMINAL_STATES
    record.updated_at = now
    return entry


def advance(
    record: TrackingRecord,
    actor: Actor,
    *,
    delivery_type: DeliveryType | None = None,
    shift: Shift | None = None,
    workers: Iterable[Worker] | None = None,
) -> OrderState:
    """
    Advance `record` to its next state.

    Args:
        record: Tracking record to mutate.
        actor: User performing the transition.
        delivery_type: Delivery type of the linked order (required from packing).
        shift: Shift taking over; also becomes the record's current shift.
        workers: Workers staffing the new state.

    Returns:
        The new state.

    Raises:
        NoNextStateError: If there is no successor. The record is unchanged.
    """
    previous = record.state
    target = resolve_next_state(previous, delivery_type)

    record_transition(
        record,
        target,
        actor.id,
        actor.name,
        shift,
        f"Advanced from {previous.value} to {target.value}",
    )
    if shift is not None:
        record.shift = shift
    assign(record, target, shift, workers)
    return target


def previous_state(record: TrackingRecord) -> OrderState:
    """
    Return the state recorded just before the current one.

    The forward table is not injective (washing is reached from pending and
    from rework), so the answer comes from the record's own history.

    Raises:
        NoPriorStateError: If the history has fewer than two entries.
    """
    if len(record.history) < 2:
        raise NoPriorStateError(record.id)
    return record.history[-2].state


def reverse(record: TrackingRecord, actor: Actor) -> OrderState:
    """
    Return `record` to its previous state.

    The reversal is itself appended to the history; nothing is truncated.
    Leaving rework clears the rework flag but keeps the activation count.

    Returns:
        The state returned to.

    Raises:
        NoPriorStateError: If there is no previous state. The record is unchanged.
    """
    current = record.state
    target = previous_state(record)

    record_transition(
        record,
        target,
        actor.id,
        actor.name,
        record.shift,
        f"Reversed from {current.value} to {target.value}",
    )
    if current == OrderState.REWORK:
        record.rework.activated = False
    return target


def activate_rework(record: TrackingRecord, actor: Actor) -> int:
    """
    Send `record` to rework (desmanche).

    Operators trigger this from pressing; the engine itself accepts any state.
    The current shift carries over.

    Returns:
        The number of times rework has been activated on this record.
    """
    entry = record_transition(
        record,
        OrderState.REWORK,
        actor.id,
        actor.name,
        record.shift,
        "Rework started",
    )
    record.rework.activated = True
    record.rework.count += 1
    record.rework.last_activated_at = entry.changed_at
    record.rework.actor_id = actor.id
    record.rework.actor_name = actor.name
    return record.rework.count
