"""Tests for the order state machine."""

import pytest

from laundrytrack.errors import NoNextStateError, NoPriorStateError
from laundrytrack.models import DeliveryType, OrderState, Shift
from laundrytrack.state_machine import (
    NEXT_STATE,
    activate_rework,
    advance,
    previous_state,
    resolve_next_state,
    reverse,
)


def advance_to(record, actor, target, delivery_type=DeliveryType.PICKUP, shift=Shift.A, workers=None):
    """Advance until `record` reaches `target`."""
    while record.state != target:
        advance(record, actor, delivery_type=delivery_type, shift=shift, workers=workers)


class TestResolveNextState:
    def test_linear_steps(self):
        assert resolve_next_state(OrderState.PENDING) == OrderState.WASHING
        assert resolve_next_state(OrderState.WASHING) == OrderState.DRYING
        assert resolve_next_state(OrderState.DRYING) == OrderState.PRESSING
        assert resolve_next_state(OrderState.PRESSING) == OrderState.PACKING
        assert resolve_next_state(OrderState.READY_FOR_PICKUP) == OrderState.DELIVERED
        assert resolve_next_state(OrderState.READY_FOR_DISPATCH) == OrderState.DISPATCHING
        assert resolve_next_state(OrderState.DISPATCHING) == OrderState.DELIVERED

    def test_rework_returns_to_washing(self):
        assert resolve_next_state(OrderState.REWORK) == OrderState.WASHING

    def test_packing_branches_on_delivery_type(self):
        assert (
            resolve_next_state(OrderState.PACKING, DeliveryType.PICKUP)
            == OrderState.READY_FOR_PICKUP
        )
        assert (
            resolve_next_state(OrderState.PACKING, DeliveryType.DISPATCH)
            == OrderState.READY_FOR_DISPATCH
        )

    def test_packing_without_delivery_type_raises(self):
        with pytest.raises(NoNextStateError):
            resolve_next_state(OrderState.PACKING)

    def test_delivered_is_terminal(self):
        with pytest.raises(NoNextStateError) as exc_info:
            resolve_next_state(OrderState.DELIVERED)
        assert exc_info.value.state == "delivered"

    def test_table_covers_every_state(self):
        assert set(NEXT_STATE) == set(OrderState)


class TestAdvance:
    def test_advance_from_pending(self, pickup_record, operator, crew):
        new_state = advance(pickup_record, operator, shift=Shift.A, workers=crew)

        assert new_state == OrderState.WASHING
        assert pickup_record.state == OrderState.WASHING
        assert pickup_record.shift == Shift.A
        assert len(pickup_record.history) == 2

        entry = pickup_record.history[-1]
        assert entry.state == OrderState.WASHING
        assert entry.actor_id == "op-1"
        assert entry.actor_name == "Ana"
        assert entry.shift == Shift.A
        assert entry.comment == "Advanced from pending to washing"

    def test_advance_writes_assignment(self, pickup_record, operator, crew):
        advance(pickup_record, operator, shift=Shift.B, workers=crew)

        assignment = pickup_record.assignments[OrderState.WASHING]
        assert assignment.shift == Shift.B
        assert [w.id for w in assignment.workers] == ["w-1", "w-2"]

    def test_advance_without_shift_keeps_current_shift(self, pickup_record, operator):
        advance(pickup_record, operator, shift=Shift.A)
        advance(pickup_record, operator)

        assert pickup_record.state == OrderState.DRYING
        assert pickup_record.shift == Shift.A
        assert pickup_record.history[-1].shift is None
        assert OrderState.DRYING not in pickup_record.assignments

    def test_pickup_order_full_flow(self, pickup_record, operator, crew):
        advance_to(pickup_record, operator, OrderState.DELIVERED, workers=crew)

        states = [h.state for h in pickup_record.history]
        assert states == [
            OrderState.PENDING,
            OrderState.WASHING,
            OrderState.DRYING,
            OrderState.PRESSING,
            OrderState.PACKING,
            OrderState.READY_FOR_PICKUP,
            OrderState.DELIVERED,
        ]
        assert pickup_record.active is False
        assert set(pickup_record.assignments) == {
            OrderState.WASHING,
            OrderState.DRYING,
            OrderState.PRESSING,
            OrderState.PACKING,
        }

    def test_dispatch_order_branches_at_packing(self, dispatch_record, operator):
        advance_to(
            dispatch_record, operator, OrderState.PACKING, delivery_type=DeliveryType.DISPATCH
        )
        advance(dispatch_record, operator, delivery_type=DeliveryType.DISPATCH)

        assert dispatch_record.state == OrderState.READY_FOR_DISPATCH
        assert dispatch_record.active is True

    def test_packing_without_delivery_type_leaves_record_untouched(self, pickup_record, operator):
        advance_to(pickup_record, operator, OrderState.PACKING)
        before = pickup_record.to_dict()

        with pytest.raises(NoNextStateError):
            advance(pickup_record, operator)

        assert pickup_record.to_dict() == before

    def test_advance_from_delivered_raises(self, pickup_record, operator):
        advance_to(pickup_record, operator, OrderState.DELIVERED)
        before = pickup_record.to_dict()

        with pytest.raises(NoNextStateError):
            advance(pickup_record, operator)

        assert pickup_record.to_dict() == before

    def test_state_matches_last_history_entry(self, pickup_record, operator):
        advance(pickup_record, operator)
        activate_rework(pickup_record, operator)
        advance(pickup_record, operator)
        reverse(pickup_record, operator)

        assert pickup_record.state == pickup_record.history[-1].state


class TestReverse:
    def test_reverse_at_initial_state_raises(self, pickup_record, operator):
        with pytest.raises(NoPriorStateError):
            reverse(pickup_record, operator)

        assert len(pickup_record.history) == 1
        assert pickup_record.state == OrderState.PENDING

    def test_reverse_after_advance_round_trip(self, pickup_record, operator):
        advance_to(pickup_record, operator, OrderState.DRYING)
        history_len = len(pickup_record.history)

        advance(pickup_record, operator)
        restored = reverse(pickup_record, operator)

        assert restored == OrderState.DRYING
        assert pickup_record.state == OrderState.DRYING
        assert len(pickup_record.history) == history_len + 2
        assert pickup_record.history[-1].comment == "Reversed from pressing to drying"

    def test_reverse_uses_current_shift(self, pickup_record, operator):
        advance(pickup_record, operator, shift=Shift.B)
        reverse(pickup_record, operator)

        assert pickup_record.history[-1].shift == Shift.B

    def test_previous_state_reads_history(self, pickup_record, operator):
        advance_to(pickup_record, operator, OrderState.PRESSING)
        activate_rework(pickup_record, operator)
        advance(pickup_record, operator)

        # washing was reached from rework, not from pending
        assert previous_state(pickup_record) == OrderState.REWORK

    def test_reverse_out_of_rework_clears_flag(self, pickup_record, operator):
        advance_to(pickup_record, operator, OrderState.PRESSING)
        activate_rework(pickup_record, operator)

        restored = reverse(pickup_record, operator)

        assert restored == OrderState.PRESSING
        assert pickup_record.rework.activated is False
        assert pickup_record.rework.count == 1

    def test_reverse_out_of_delivered_reactivates(self, pickup_record, operator):
        advance_to(pickup_record, operator, OrderState.DELIVERED)
        assert pickup_record.active is False

        reverse(pickup_record, operator)

        assert pickup_record.state == OrderState.READY_FOR_PICKUP
        assert pickup_record.active is True


class TestRework:
    def test_activate_rework(self, pickup_record, operator):
        advance_to(pickup_record, operator, OrderState.PRESSING, shift=Shift.B)

        count = activate_rework(pickup_record, operator)

        assert count == 1
        assert pickup_record.state == OrderState.REWORK
        assert pickup_record.rework.activated is True
        assert pickup_record.rework.actor_id == "op-1"
        assert pickup_record.rework.last_activated_at == pickup_record.history[-1].changed_at
        assert pickup_record.history[-1].comment == "Rework started"
        assert pickup_record.history[-1].shift == Shift.B

    def test_rework_count_accumulates(self, pickup_record, operator):
        advance_to(pickup_record, operator, OrderState.PRESSING)
        activate_rework(pickup_record, operator)
        advance_to(pickup_record, operator, OrderState.PRESSING)

        assert activate_rework(pickup_record, operator) == 2

    def test_advance_from_rework_goes_to_washing(self, pickup_record, operator):
        advance_to(pickup_record, operator, OrderState.PRESSING)
        activate_rework(pickup_record, operator)

        assert advance(pickup_record, operator) == OrderState.WASHING
