"""Data models for laundrytrack."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import uuid

from .utils import (
    generate_verification_code,
    normalize_active_flag,
    normalize_customer_type,
    normalize_delivery_type,
    normalize_phone,
)


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new order ID."""
    return str(uuid.uuid4())


class OrderState(str, Enum):
    """Main pipeline states of a tracking record."""

    PENDING = "pending"
    WASHING = "washing"
    DRYING = "drying"
    PRESSING = "pressing"
    REWORK = "rework"
    PACKING = "packing"
    READY_FOR_PICKUP = "ready_for_pickup"
    READY_FOR_DISPATCH = "ready_for_dispatch"
    DISPATCHING = "dispatching"
    DELIVERED = "delivered"


class DeliveryType(str, Enum):
    PICKUP = "pickup"
    DISPATCH = "dispatch"


class CustomerType(str, Enum):
    INDIVIDUAL = "individual"
    HOTEL = "hotel"
    INSTITUTION = "institution"
    COMPANY = "company"


class Shift(str, Enum):
    A = "A"
    B = "B"


class DispatchState(str, Enum):
    """Sub-states of the home delivery workflow."""

    PENDING = "pending"
    EN_ROUTE = "en_route"
    DELIVERED = "delivered"
    FAILED = "failed"


class IncidentCategory(str, Enum):
    """Categories for process incidents reported by operators."""

    DAMAGED_GARMENT = "damaged_garment"
    PERSISTENT_STAIN = "persistent_stain"
    MISSING_GARMENT = "missing_garment"
    WRONG_ITEM_COUNT = "wrong_item_count"
    MACHINE_FAILURE = "machine_failure"
    OTHER = "other"


class DispatchIncidentCategory(str, Enum):
    """Categories for failed delivery attempts reported by drivers."""

    CUSTOMER_ABSENT = "customer_absent"
    WRONG_ADDRESS = "wrong_address"
    VEHICLE_FAILURE = "vehicle_failure"
    OTHER = "other"


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class IncidentFilter(str, Enum):
    """Admin board filter on a record's process incidents."""

    OPEN = "open"  # at least one unresolved
    NONE = "none"  # none ever reported


SYSTEM_ACTOR_ID = "system"
SYSTEM_ACTOR_NAME = "System"


@dataclass(frozen=True)
class Actor:
    """The user performing a mutating operation (already authorized by the caller)."""

    id: str
    name: str
    role: str = "operator"


# --- Order Record (owned by the intake system) ---


@dataclass
class OrderItem:
    name: str
    quantity: int = 1
    unit_price: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity, "unit_price": self.unit_price}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            name=data.get("name", ""),
            quantity=int(data.get("quantity", 1)),
            unit_price=float(data.get("unit_price", 0.0)),
        )


@dataclass
class Order:
    """An order as written by the intake system. Read-only for the tracking core."""

    id: str
    order_number: str
    customer_name: str
    phone: str
    delivery_type: DeliveryType = DeliveryType.PICKUP
    dispatch_code: str | None = None
    voucher_number: str = ""
    customer_type: CustomerType = CustomerType.INDIVIDUAL
    address: str | None = None  # only for dispatch orders
    items: list[OrderItem] = field(default_factory=list)
    subtotal: float = 0.0
    total: float = 0.0
    express: bool = False
    notified: bool = False
    active: bool = True
    received_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "phone": self.phone,
            "delivery_type": self.delivery_type.value,
            "dispatch_code": self.dispatch_code,
            "voucher_number": self.voucher_number,
            "customer_type": self.customer_type.value,
            "items": [i.to_dict() for i in self.items],
            "subtotal": self.subtotal,
            "total": self.total,
            "express": self.express,
            "notified": self.notified,
            "active": self.active,
            "received_at": self.received_at,
        }
        if self.address is not None:
            result["address"] = self.address
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        """
        Build an Order from a stored payload.

        Intake payloads are loosely typed ("Retiro", "Particular", raw phone
        numbers, "Activa"), so every field goes through normalization.
        """
        delivery_type = DeliveryType(normalize_delivery_type(data.get("delivery_type")))
        address = data.get("address") or None
        if delivery_type != DeliveryType.DISPATCH:
            address = None
        return cls(
            id=data["id"],
            order_number=data.get("order_number") or "",
            customer_name=data.get("customer_name", ""),
            phone=normalize_phone(data.get("phone")),
            delivery_type=delivery_type,
            dispatch_code=data.get("dispatch_code") or None,
            voucher_number=data.get("voucher_number", ""),
            customer_type=CustomerType(normalize_customer_type(data.get("customer_type"))),
            address=address,
            items=[OrderItem.from_dict(i) for i in data.get("items", [])],
            subtotal=float(data.get("subtotal", 0.0)),
            total=float(data.get("total", 0.0)),
            express=bool(data.get("express", False)),
            notified=bool(data.get("notified", False)),
            active=normalize_active_flag(data.get("active")),
            received_at=data.get("received_at", ""),
        )

    @classmethod
    def create(
        cls,
        order_number: str,
        customer_name: str,
        phone: str,
        delivery_type: DeliveryType = DeliveryType.PICKUP,
        address: str | None = None,
        items: list[OrderItem] | None = None,
        customer_type: CustomerType = CustomerType.INDIVIDUAL,
        express: bool = False,
        dispatch_code: str | None = None,
    ) -> "Order":
        """Create a new order with generated ID and verification code (intake side)."""
        items = items or []
        subtotal = sum(i.quantity * i.unit_price for i in items)
        return cls(
            id=_generate_id(),
            order_number=order_number,
            customer_name=customer_name,
            phone=normalize_phone(phone),
            delivery_type=delivery_type,
            dispatch_code=dispatch_code or generate_verification_code(),
            customer_type=customer_type,
            address=address if delivery_type == DeliveryType.DISPATCH else None,
            items=items,
            subtotal=subtotal,
            total=subtotal,
            express=express,
        )


@dataclass
class OrderChange:
    """One event from the order change stream."""

    kind: ChangeKind
    order_id: str
    order: Order | None = None  # None for removals


# --- Tracking Record (owned by this system) ---


@dataclass
class HistoryEntry:
    """One transition event. History is append-only."""

    state: OrderState
    changed_at: str
    actor_id: str
    actor_name: str
    shift: Shift | None = None
    comment: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "changed_at": self.changed_at,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "shift": self.shift.value if self.shift else None,
            "comment": self.comment,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryEntry":
        shift = data.get("shift")
        return cls(
            state=OrderState(data["state"]),
            changed_at=data.get("changed_at", ""),
            actor_id=data.get("actor_id", ""),
            actor_name=data.get("actor_name", ""),
            shift=Shift(shift) if shift else None,
            comment=data.get("comment", ""),
        )


@dataclass(frozen=True)
class Worker:
    id: str
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Worker":
        return cls(id=data["id"], name=data.get("name", ""))


@dataclass
class Assignment:
    """Shift and workers staffing one state."""

    shift: Shift
    workers: list[Worker] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"shift": self.shift.value, "workers": [w.to_dict() for w in self.workers]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Assignment":
        return cls(
            shift=Shift(data["shift"]),
            workers=[Worker.from_dict(w) for w in data.get("workers", [])],
        )


@dataclass
class ReworkRecord:
    """Rework (desmanche) counters kept across activations."""

    activated: bool = False
    count: int = 0
    last_activated_at: str | None = None
    actor_id: str | None = None
    actor_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "activated": self.activated,
            "count": self.count,
            "last_activated_at": self.last_activated_at,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReworkRecord":
        return cls(
            activated=data.get("activated", False),
            count=data.get("count", 0),
            last_activated_at=data.get("last_activated_at"),
            actor_id=data.get("actor_id"),
            actor_name=data.get("actor_name"),
        )


@dataclass
class DispatchIncident:
    """A failed delivery attempt recorded on the dispatch sub-record."""

    category: DispatchIncidentCategory
    description: str
    reported_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "description": self.description,
            "reported_at": self.reported_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DispatchIncident":
        return cls(
            category=DispatchIncidentCategory(data["category"]),
            description=data.get("description", ""),
            reported_at=data.get("reported_at", ""),
        )


@dataclass
class DispatchRecord:
    """Home delivery sub-workflow, present only for dispatch orders."""

    state: DispatchState = DispatchState.PENDING
    driver_id: str | None = None
    driver_name: str | None = None
    vehicle: str | None = None
    plate: str | None = None
    departed_at: str | None = None
    arrived_at: str | None = None
    code_verified: bool = False
    receiver_name: str | None = None
    incident: DispatchIncident | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "driver_id": self.driver_id,
            "driver_name": self.driver_name,
            "vehicle": self.vehicle,
            "plate": self.plate,
            "departed_at": self.departed_at,
            "arrived_at": self.arrived_at,
            "code_verified": self.code_verified,
            "receiver_name": self.receiver_name,
            "incident": self.incident.to_dict() if self.incident else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DispatchRecord":
        incident = data.get("incident")
        return cls(
            state=DispatchState(data.get("state", DispatchState.PENDING.value)),
            driver_id=data.get("driver_id"),
            driver_name=data.get("driver_name"),
            vehicle=data.get("vehicle"),
            plate=data.get("plate"),
            departed_at=data.get("departed_at"),
            arrived_at=data.get("arrived_at"),
            code_verified=data.get("code_verified", False),
            receiver_name=data.get("receiver_name"),
            incident=DispatchIncident.from_dict(incident) if incident else None,
        )


@dataclass
class Incident:
    """A non-blocking process incident. Never affects the main state."""

    id: str
    reported_at: str
    state: OrderState
    actor_id: str
    actor_name: str
    category: IncidentCategory
    description: str
    resolved: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "reported_at": self.reported_at,
            "state": self.state.value,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "category": self.category.value,
            "description": self.description,
            "resolved": self.resolved,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Incident":
        return cls(
            id=data["id"],
            reported_at=data.get("reported_at", ""),
            state=OrderState(data["state"]),
            actor_id=data.get("actor_id", ""),
            actor_name=data.get("actor_name", ""),
            category=IncidentCategory(data["category"]),
            description=data.get("description", ""),
            resolved=data.get("resolved", False),
        )


@dataclass
class TrackingRecord:
    """The mutable per-order state machine record."""

    id: str  # same as the order ID
    order_id: str
    order_number: str
    state: OrderState
    history: list[HistoryEntry]
    shift: Shift | None = None
    active: bool = True
    assignments: dict[OrderState, Assignment] = field(default_factory=dict)
    rework: ReworkRecord = field(default_factory=ReworkRecord)
    dispatch: DispatchRecord | None = None
    incidents: list[Incident] = field(default_factory=list)
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "state": self.state.value,
            "shift": self.shift.value if self.shift else None,
            "active": self.active,
            "history": [h.to_dict() for h in self.history],
            "assignments": {s.value: a.to_dict() for s, a in self.assignments.items()},
            "rework": self.rework.to_dict(),
            "incidents": [i.to_dict() for i in self.incidents],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.dispatch is not None:
            result["dispatch"] = self.dispatch.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackingRecord":
        shift = data.get("shift")
        dispatch = data.get("dispatch")
        return cls(
            id=data["id"],
            order_id=data.get("order_id", data["id"]),
            order_number=data.get("order_number", ""),
            state=OrderState(data["state"]),
            history=[HistoryEntry.from_dict(h) for h in data.get("history", [])],
            shift=Shift(shift) if shift else None,
            active=data.get("active", True),
            assignments={
                OrderState(s): Assignment.from_dict(a)
                for s, a in data.get("assignments", {}).items()
            },
            rework=ReworkRecord.from_dict(data.get("rework", {})),
            dispatch=DispatchRecord.from_dict(dispatch) if dispatch else None,
            incidents=[Incident.from_dict(i) for i in data.get("incidents", [])],
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    def touch(self) -> None:
        """Stamp the last-updated timestamp."""
        self.updated_at = _utc_now()


@dataclass
class OrderView:
    """An order joined with its tracking record (client tracking page)."""

    order: Order
    tracking: TrackingRecord


@dataclass
class TrackingSummary:
    """Counters shown at the top of the admin board."""

    total: int = 0
    active: int = 0
    with_open_incidents: int = 0
    in_process: int = 0
    by_state: dict[OrderState, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "active": self.active,
            "with_open_incidents": self.with_open_incidents,
            "in_process": self.in_process,
            "by_state": {s.value: n for s, n in self.by_state.items()},
        }
