"""FastAPI REST API for the laundry role panels."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__, config
from .assignment import validate_staffing
from .errors import (
    AssignmentRequiredError,
    CodeMismatchError,
    DescriptionRequiredError,
    InvalidStateError,
    LaundryTrackError,
    NoNextStateError,
    NoPriorStateError,
    OrderNotFoundError,
    TrackingExistsError,
    TrackingNotFoundError,
)
from .incidents import build_description
from .logger import get_logger
from .models import (
    Actor,
    DispatchIncidentCategory,
    IncidentCategory,
    IncidentFilter,
    Order,
    OrderState,
    OrderView,
    Shift,
    TrackingRecord,
    Worker,
)
from .order_store import OrderStore
from .state_machine import DISPATCH_STATES
from .synchronizer import Synchronizer
from .tracker import Tracker
from .tracking_store import TrackingStore

logger = get_logger("api")


# --- Pydantic Schemas ---


class ActorSchema(BaseModel):
    id: str
    name: str
    role: str = "operator"

    def to_actor(self) -> Actor:
        return Actor(id=self.id, name=self.name, role=self.role)


class WorkerSchema(BaseModel):
    id: str
    name: str


class HistoryEntrySchema(BaseModel):
    state: OrderState
    changed_at: str
    actor_id: str
    actor_name: str
    shift: Optional[Shift] = None
    comment: str = ""


class AssignmentSchema(BaseModel):
    shift: Shift
    workers: list[WorkerSchema]


class ReworkSchema(BaseModel):
    activated: bool
    count: int
    last_activated_at: Optional[str] = None
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None


class DispatchIncidentSchema(BaseModel):
    category: DispatchIncidentCategory
    description: str
    reported_at: str


class DispatchSchema(BaseModel):
    state: str
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    vehicle: Optional[str] = None
    plate: Optional[str] = None
    departed_at: Optional[str] = None
    arrived_at: Optional[str] = None
    code_verified: bool = False
    receiver_name: Optional[str] = None
    incident: Optional[DispatchIncidentSchema] = None


class IncidentSchema(BaseModel):
    id: str
    reported_at: str
    state: OrderState
    actor_id: str
    actor_name: str
    category: IncidentCategory
    description: str
    resolved: bool


class TrackingSchema(BaseModel):
    id: str
    order_id: str
    order_number: str
    state: OrderState
    shift: Optional[Shift] = None
    active: bool
    history: list[HistoryEntrySchema]
    assignments: dict[str, AssignmentSchema]
    rework: ReworkSchema
    dispatch: Optional[DispatchSchema] = None
    incidents: list[IncidentSchema]
    created_at: str
    updated_at: str


class TrackingListResponse(BaseModel):
    records: list[TrackingSchema]
    count: int


class TrackingSummaryResponse(BaseModel):
    total: int
    active: int
    with_open_incidents: int
    in_process: int
    by_state: dict[str, int] = Field(default_factory=dict)


class OrderItemSchema(BaseModel):
    name: str
    quantity: int
    unit_price: float


class OrderSchema(BaseModel):
    id: str
    order_number: str
    customer_name: str
    phone: str
    delivery_type: str
    dispatch_code: Optional[str] = None
    voucher_number: str = ""
    customer_type: str
    address: Optional[str] = None
    items: list[OrderItemSchema]
    subtotal: float
    total: float
    express: bool
    notified: bool
    active: bool
    received_at: str


class OrderViewSchema(BaseModel):
    order: OrderSchema
    tracking: TrackingSchema


class OrderViewListResponse(BaseModel):
    orders: list[OrderViewSchema]
    count: int


class AdvanceRequest(BaseModel):
    """Request body for advancing an order."""

    actor: ActorSchema
    shift: Optional[Shift] = None
    workers: list[WorkerSchema] = Field(default_factory=list)


class ActorRequest(BaseModel):
    actor: ActorSchema


class StartDispatchRequest(BaseModel):
    driver: ActorSchema
    vehicle: str = Field(..., min_length=1)
    plate: str = Field(..., min_length=1)


class ConfirmDeliveryRequest(BaseModel):
    driver: ActorSchema
    code: str = Field(..., min_length=1)
    receiver_name: str = Field(..., min_length=1)


class DispatchIncidentRequest(BaseModel):
    category: DispatchIncidentCategory
    description: Optional[str] = None


class IncidentCreateRequest(BaseModel):
    """Request body for reporting a process incident."""

    actor: ActorSchema
    category: IncidentCategory
    details: Optional[str] = Field(
        default=None,
        description="Free text; required for 'other', appended to the template otherwise",
    )


# --- Helper Functions ---


def get_order_store() -> OrderStore:
    return OrderStore(config.DATA_DIR)


def get_tracking_store() -> TrackingStore:
    return TrackingStore(config.DATA_DIR)


# One tracker per data directory; it owns the pending notification tasks
_trackers: dict[Path, Tracker] = {}


def get_tracker() -> Tracker:
    """Get the Tracker over the configured data directory."""
    tracker = _trackers.get(config.DATA_DIR)
    if tracker is None:
        tracker = Tracker(get_order_store(), get_tracking_store())
        _trackers[config.DATA_DIR] = tracker
    return tracker


def record_to_schema(record: TrackingRecord) -> TrackingSchema:
    """Convert dataclass TrackingRecord to Pydantic schema."""
    return TrackingSchema(**record.to_dict())


def order_to_schema(order: Order) -> OrderSchema:
    return OrderSchema(**order.to_dict())


def view_to_schema(view: OrderView) -> OrderViewSchema:
    return OrderViewSchema(
        order=order_to_schema(view.order),
        tracking=record_to_schema(view.tracking),
    )


# --- App ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    synchronizer = Synchronizer(get_order_store(), get_tracking_store())
    synchronizer.start()
    try:
        yield
    finally:
        await synchronizer.stop()
        await get_tracker().drain(timeout=5.0)


app = FastAPI(
    title="laundrytrack API",
    description="REST API for tracking laundry orders through processing and delivery",
    version=__version__,
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    OrderNotFoundError: 404,
    TrackingNotFoundError: 404,
    NoNextStateError: 409,
    NoPriorStateError: 409,
    InvalidStateError: 409,
    TrackingExistsError: 409,
    CodeMismatchError: 400,
    AssignmentRequiredError: 400,
    DescriptionRequiredError: 400,
}


@app.exception_handler(LaundryTrackError)
async def laundrytrack_error_handler(request: Request, exc: LaundryTrackError) -> JSONResponse:
    """Map LaundryTrackError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code == 500:
        logger.error("Unhandled error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


# --- Endpoints ---


@app.get("/api/health")
async def health_check():
    """
    Health check endpoint.

    Returns basic service status and the number of active orders.
    """
    tracker = get_tracker()
    try:
        records = await tracker.list_active()
        return {"status": "ok", "active_count": len(records)}
    except Exception as e:
        return {"status": "error", "detail": str(e)}


# --- Tracking Endpoints ---


@app.get("/api/tracking", response_model=TrackingListResponse)
async def list_active_tracking(
    state: Optional[OrderState] = Query(default=None),
    incidents: Optional[IncidentFilter] = Query(default=None),
):
    """
    List active orders for the admin board.

    Optionally only those in one state, and only those with open incidents
    (`incidents=open`) or with none reported (`incidents=none`).
    """
    tracker = get_tracker()
    records = await tracker.list_active([state] if state else None, incidents)
    return TrackingListResponse(
        records=[record_to_schema(r) for r in records],
        count=len(records),
    )


@app.get("/api/tracking/summary", response_model=TrackingSummaryResponse)
async def tracking_summary():
    """Admin board counters: total, active, with open incidents, in process."""
    summary = await get_tracker().summary()
    return TrackingSummaryResponse(**summary.to_dict())


@app.get("/api/tracking/{record_id}", response_model=TrackingSchema)
async def get_tracking(record_id: str):
    record = await get_tracker().get(record_id)
    return record_to_schema(record)


@app.post("/api/tracking/{record_id}/advance", response_model=TrackingSchema)
async def advance_order(record_id: str, request: AdvanceRequest):
    """
    Advance an order to its next state.

    Entering a staffed state requires a shift and at least one worker.
    """
    tracker = get_tracker()
    workers = [Worker(id=w.id, name=w.name) for w in request.workers]
    target = await tracker.preview_next_state(record_id)
    validate_staffing(target, request.shift, workers)
    record = await tracker.advance(
        record_id,
        request.actor.to_actor(),
        shift=request.shift,
        workers=workers,
    )
    return record_to_schema(record)


@app.post("/api/tracking/{record_id}/reverse", response_model=TrackingSchema)
async def reverse_order(record_id: str, request: ActorRequest):
    record = await get_tracker().reverse(record_id, request.actor.to_actor())
    return record_to_schema(record)


@app.post("/api/tracking/{record_id}/rework", response_model=TrackingSchema)
async def activate_order_rework(record_id: str, request: ActorRequest):
    record = await get_tracker().activate_rework(record_id, request.actor.to_actor())
    return record_to_schema(record)


# --- Dispatch Endpoints ---


@app.get("/api/dispatch/queue", response_model=TrackingListResponse)
async def dispatch_queue():
    """Orders ready for or out on delivery (driver panel)."""
    tracker = get_tracker()
    records = await tracker.list_active(DISPATCH_STATES)
    return TrackingListResponse(
        records=[record_to_schema(r) for r in records],
        count=len(records),
    )


@app.post("/api/tracking/{record_id}/dispatch/start", response_model=TrackingSchema)
async def start_order_dispatch(record_id: str, request: StartDispatchRequest):
    record = await get_tracker().start_dispatch(
        record_id,
        request.driver.to_actor(),
        request.vehicle,
        request.plate,
    )
    return record_to_schema(record)


@app.post("/api/tracking/{record_id}/dispatch/confirm", response_model=TrackingSchema)
async def confirm_order_delivery(record_id: str, request: ConfirmDeliveryRequest):
    record = await get_tracker().confirm_delivery(
        record_id,
        request.code,
        request.receiver_name,
        request.driver.to_actor(),
    )
    return record_to_schema(record)


@app.post(
    "/api/tracking/{record_id}/dispatch/incident",
    response_model=DispatchIncidentSchema,
    status_code=201,
)
async def report_order_dispatch_incident(record_id: str, request: DispatchIncidentRequest):
    incident = await get_tracker().report_dispatch_incident(
        record_id,
        request.category,
        request.description,
    )
    return DispatchIncidentSchema(**incident.to_dict())


# --- Incident Endpoints ---


@app.post(
    "/api/tracking/{record_id}/incidents",
    response_model=IncidentSchema,
    status_code=201,
)
async def report_order_incident(record_id: str, request: IncidentCreateRequest):
    description = build_description(request.category, request.details)
    incident = await get_tracker().report_incident(
        record_id,
        request.actor.to_actor(),
        request.category,
        description,
    )
    return IncidentSchema(**incident.to_dict())


@app.post("/api/tracking/{record_id}/incidents/{incident_id}/resolve", response_model=TrackingSchema)
async def resolve_order_incident(record_id: str, incident_id: str):
    tracker = get_tracker()
    if not await tracker.resolve_incident(record_id, incident_id):
        raise HTTPException(status_code=404, detail=f"Incident not found: {incident_id}")
    return record_to_schema(await tracker.get(record_id))


# --- Client Endpoints ---


@app.get("/api/orders/{order_number}", response_model=OrderViewSchema)
async def get_order_view(order_number: str):
    """Client tracking page: an order and its progress."""
    view = await get_tracker().get_order_view(order_number)
    return view_to_schema(view)


@app.get("/api/clients/{phone}/orders", response_model=OrderViewListResponse)
async def list_client_orders(phone: str):
    views = await get_tracker().orders_for_phone(phone)
    return OrderViewListResponse(
        orders=[view_to_schema(v) for v in views],
        count=len(views),
    )
