"""
Home delivery sub-workflow.

The dispatch sub-record runs its own small state machine
(pending -> en_route -> delivered | failed) alongside the main state.
Delivery is confirmed only with the order's secret verification code.
A failed attempt is recorded on the sub-record without moving the main
state, so an order can sit in `dispatching` until an administrator follows up.
"""

from .errors import CodeMismatchError, DescriptionRequiredError, InvalidStateError
from .models import (
    Actor,
    DispatchIncident,
    DispatchIncidentCategory,
    DispatchRecord,
    DispatchState,
    Order,
    OrderState,
    TrackingRecord,
)
from .state_machine import record_transition
from .utils import codes_match

DISPATCH_INCIDENT_TEMPLATES: dict[DispatchIncidentCategory, str] = {
    DispatchIncidentCategory.CUSTOMER_ABSENT: "Customer was not at the delivery address",
    DispatchIncidentCategory.WRONG_ADDRESS: "The delivery address is wrong or does not exist",
    DispatchIncidentCategory.VEHICLE_FAILURE: "The vehicle broke down",
    DispatchIncidentCategory.OTHER: "",
}


def _require_dispatch(record: TrackingRecord, operation: str) -> DispatchRecord:
    if record.dispatch is None:
        raise InvalidStateError(operation, record.state.value, "a dispatch order")
    return record.dispatch


def start_dispatch(
    record: TrackingRecord,
    driver: Actor,
    vehicle: str,
    plate: str,
) -> DispatchRecord:
    """
    Hand the order to a driver: ready_for_dispatch -> dispatching.

    Raises:
        InvalidStateError: If the record is not ready for dispatch.
    """
    if record.state != OrderState.READY_FOR_DISPATCH:
        raise InvalidStateError(
            "start dispatch", record.state.value, OrderState.READY_FOR_DISPATCH.value
        )
    dispatch = _require_dispatch(record, "start dispatch")

    entry = record_transition(
        record,
        OrderState.DISPATCHING,
        driver.id,
        driver.name,
        None,
        "Dispatch started",
    )
    dispatch.state = DispatchState.EN_ROUTE
    dispatch.driver_id = driver.id
    dispatch.driver_name = driver.name
    dispatch.vehicle = vehicle.strip()
    dispatch.plate = plate.strip().upper()
    dispatch.departed_at = entry.changed_at
    return dispatch


def confirm_delivery(
    record: TrackingRecord,
    order: Order,
    entered_code: str,
    receiver_name: str,
    driver: Actor,
) -> DispatchRecord:
    """
    Close a delivery after checking the verification code.

    The code comparison is case-insensitive. On a mismatch nothing changes.

    Raises:
        InvalidStateError: If the record is not being dispatched.
        CodeMismatchError: If the code is wrong.
    """
    if record.state != OrderState.DISPATCHING:
        raise InvalidStateError(
            "confirm delivery", record.state.value, OrderState.DISPATCHING.value
        )
    dispatch = _require_dispatch(record, "confirm delivery")
    if not codes_match(entered_code, order.dispatch_code):
        raise CodeMismatchError(record.id)

    receiver_name = receiver_name.strip()
    entry = record_transition(
        record,
        OrderState.DELIVERED,
        driver.id,
        driver.name,
        None,
        f"Delivered to {receiver_name}",
    )
    dispatch.state = DispatchState.DELIVERED
    dispatch.code_verified = True
    dispatch.receiver_name = receiver_name
    dispatch.arrived_at = entry.changed_at
    return dispatch


def report_dispatch_incident(
    record: TrackingRecord,
    category: DispatchIncidentCategory,
    description: str | None = None,
) -> DispatchIncident:
    """
    Mark the delivery attempt as failed. The main state is left as is.

    An empty description falls back to the category template.

    Raises:
        DescriptionRequiredError: If category is OTHER without a description.
        InvalidStateError: If the record has no dispatch sub-record or is
            already delivered.
    """
    dispatch = _require_dispatch(record, "report a dispatch incident")
    if record.state == OrderState.DELIVERED:
        raise InvalidStateError("report a dispatch incident", record.state.value)

    text = (description or "").strip()
    if not text:
        if category == DispatchIncidentCategory.OTHER:
            raise DescriptionRequiredError(category.value)
        text = DISPATCH_INCIDENT_TEMPLATES[category]
    incident = DispatchIncident(category=category, description=text)
    dispatch.state = DispatchState.FAILED
    dispatch.incident = incident
    record.updated_at = incident.reported_at
    return incident
