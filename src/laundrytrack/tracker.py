"""
Async facade used by the role panels.

Each mutating call is one locked read-modify-write on the tracking store:
either the whole change is persisted or the call raises and nothing is
written. Customer notifications run as background tasks after the write, so a
slow or failing notifier never delays or undoes it.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable

from .dispatch import confirm_delivery, report_dispatch_incident, start_dispatch
from .incidents import open_incidents, report_incident, resolve_incident
from .logger import get_logger
from .models import (
    Actor,
    DispatchIncident,
    DispatchIncidentCategory,
    Incident,
    IncidentCategory,
    IncidentFilter,
    Order,
    OrderState,
    OrderView,
    Shift,
    TrackingRecord,
    TrackingSummary,
    Worker,
)
from .notifications import (
    LoggingNotifier,
    Notifier,
    dispatch_started_message,
    process_started_message,
    ready_for_pickup_message,
)
from .order_store import OrderStore
from .state_machine import (
    DISPATCH_STATES,
    FINISHED_STATES,
    activate_rework,
    advance,
    needs_delivery_type,
    resolve_next_state,
    reverse,
)
from .tracking_store import TrackingStore

logger = get_logger("tracker")


def summarize(records: Iterable[TrackingRecord]) -> TrackingSummary:
    summary = TrackingSummary()
    for record in records:
        summary.total += 1
        summary.by_state[record.state] = summary.by_state.get(record.state, 0) + 1
        if record.active:
            summary.active += 1
        if open_incidents(record):
            summary.with_open_incidents += 1
        if record.state not in FINISHED_STATES:
            summary.in_process += 1
    return summary


class Tracker:
    """Entry point for reading and changing order progress."""

    def __init__(
        self,
        orders: OrderStore,
        tracking: TrackingStore,
        notifier: Notifier | None = None,
    ):
        self.orders = orders
        self.tracking = tracking
        self.notifier = notifier or LoggingNotifier()
        self._pending: set[asyncio.Task] = set()

    # --- Reads ---

    async def get(self, record_id: str) -> TrackingRecord:
        return await asyncio.to_thread(self.tracking.get, record_id)

    async def get_order(self, order_id: str) -> Order:
        return await asyncio.to_thread(self.orders.get, order_id)

    async def get_order_view(self, order_number: str) -> OrderView:
        """
        Look up an order by number together with its tracking record.

        Raises:
            OrderNotFoundError: If no order has this number.
            TrackingNotFoundError: If the order has not been synchronized yet.
        """
        order = await asyncio.to_thread(self.orders.find_by_order_number, order_number)
        record = await self.get(order.id)
        return OrderView(order=order, tracking=record)

    async def orders_for_phone(self, phone: str) -> list[OrderView]:
        """All tracked orders of one customer. Untracked orders are skipped."""
        orders = await asyncio.to_thread(self.orders.find_by_phone, phone)
        views = []
        for order in orders:
            if not await asyncio.to_thread(self.tracking.exists, order.id):
                continue
            views.append(OrderView(order=order, tracking=await self.get(order.id)))
        return views

    async def list_active(
        self,
        states: Iterable[OrderState] | None = None,
        incidents: IncidentFilter | None = None,
    ) -> list[TrackingRecord]:
        states = list(states) if states is not None else None
        return await asyncio.to_thread(self.tracking.query, True, states, incidents)

    async def summary(self) -> TrackingSummary:
        """Admin board counters over every tracking record."""
        records = await asyncio.to_thread(self.tracking.list_records)
        return summarize(records)

    async def preview_next_state(self, record_id: str) -> OrderState:
        """
        Return the state advance() would move to, without changing anything.

        Raises:
            NoNextStateError: If the record is in a terminal state.
        """
        record = await self.get(record_id)
        delivery_type = None
        if needs_delivery_type(record.state):
            delivery_type = (await self.get_order(record.order_id)).delivery_type
        return resolve_next_state(record.state, delivery_type)

    # --- Main flow ---

    async def advance(
        self,
        record_id: str,
        actor: Actor,
        shift: Shift | None = None,
        workers: Iterable[Worker] | None = None,
    ) -> TrackingRecord:
        """
        Move a record to its next state.

        From packing the linked order's delivery type picks the branch. The
        order is read under the record lock, against the state being advanced.

        Raises:
            TrackingNotFoundError: If the record doesn't exist.
            OrderNotFoundError: If the order is needed and missing.
            NoNextStateError: If the record is in a terminal state.
        """
        workers = list(workers) if workers is not None else None

        def mutate(record: TrackingRecord) -> tuple[OrderState, OrderState, Order | None]:
            order = None
            if needs_delivery_type(record.state):
                order = self.orders.get(record.order_id)
            previous = record.state
            target = advance(
                record,
                actor,
                delivery_type=order.delivery_type if order else None,
                shift=shift,
                workers=workers,
            )
            return previous, target, order

        record, (previous, target, order) = await asyncio.to_thread(
            self.tracking.update, record_id, mutate
        )
        logger.info(
            "Order %s advanced from %s to %s by %s",
            record.order_number,
            previous.value,
            target.value,
            actor.name,
        )

        if previous == OrderState.PENDING and target == OrderState.WASHING:
            self._notify(record, order, process_started_message)
        elif target == OrderState.READY_FOR_PICKUP:
            self._notify(record, order, ready_for_pickup_message)
        return record

    async def reverse(self, record_id: str, actor: Actor) -> TrackingRecord:
        """
        Return a record to the state it had before the current one.

        Raises:
            NoPriorStateError: If the record only has its initial entry.
        """
        record, target = await asyncio.to_thread(
            self.tracking.update, record_id, lambda r: reverse(r, actor)
        )
        logger.info(
            "Order %s reversed to %s by %s", record.order_number, target.value, actor.name
        )
        return record

    async def activate_rework(self, record_id: str, actor: Actor) -> TrackingRecord:
        record, count = await asyncio.to_thread(
            self.tracking.update, record_id, lambda r: activate_rework(r, actor)
        )
        logger.info(
            "Order %s sent to rework by %s (activation %d)",
            record.order_number,
            actor.name,
            count,
        )
        return record

    # --- Dispatch ---

    async def start_dispatch(
        self,
        record_id: str,
        driver: Actor,
        vehicle: str,
        plate: str,
    ) -> TrackingRecord:
        record, _ = await asyncio.to_thread(
            self.tracking.update,
            record_id,
            lambda r: start_dispatch(r, driver, vehicle, plate),
        )
        logger.info("Order %s out for delivery with %s", record.order_number, driver.name)
        self._notify(record, None, dispatch_started_message)
        return record

    async def confirm_delivery(
        self,
        record_id: str,
        entered_code: str,
        receiver_name: str,
        driver: Actor,
    ) -> TrackingRecord:
        """
        Close a home delivery with the customer's verification code.

        Raises:
            InvalidStateError: If the record is not being dispatched.
            CodeMismatchError: If the code is wrong. Nothing is written.
        """
        current = await self.get(record_id)
        order = await self.get_order(current.order_id)
        record, _ = await asyncio.to_thread(
            self.tracking.update,
            record_id,
            lambda r: confirm_delivery(r, order, entered_code, receiver_name, driver),
        )
        logger.info("Order %s delivered to %s", record.order_number, receiver_name.strip())
        return record

    async def report_dispatch_incident(
        self,
        record_id: str,
        category: DispatchIncidentCategory,
        description: str | None = None,
    ) -> DispatchIncident:
        record, incident = await asyncio.to_thread(
            self.tracking.update,
            record_id,
            lambda r: report_dispatch_incident(r, category, description),
        )
        logger.info(
            "Delivery of order %s failed: %s", record.order_number, category.value
        )
        return incident

    # --- Incidents ---

    async def report_incident(
        self,
        record_id: str,
        actor: Actor,
        category: IncidentCategory,
        description: str,
    ) -> Incident:
        record, incident = await asyncio.to_thread(
            self.tracking.update,
            record_id,
            lambda r: report_incident(r, actor, category, description),
        )
        logger.info(
            "Incident %s reported on order %s (%s)",
            incident.id,
            record.order_number,
            category.value,
        )
        return incident

    async def resolve_incident(self, record_id: str, incident_id: str) -> bool:
        _, resolved = await asyncio.to_thread(
            self.tracking.update,
            record_id,
            lambda r: resolve_incident(r, incident_id),
        )
        return resolved

    # --- Subscriptions ---

    async def watch_active(
        self,
        states: Iterable[OrderState] | None = None,
        poll_interval: float | None = None,
    ) -> AsyncIterator[list[TrackingRecord]]:
        """Yield the active records (optionally filtered by state) on every change."""
        async for records in self.tracking.watch(True, states, poll_interval):
            yield records

    async def watch_dispatch_queue(
        self,
        poll_interval: float | None = None,
    ) -> AsyncIterator[list[TrackingRecord]]:
        """Yield the driver's queue: orders ready for or out on delivery."""
        async for records in self.watch_active(DISPATCH_STATES, poll_interval):
            yield records

    # --- Notifications ---

    def _notify(self, record: TrackingRecord, order: Order | None, build) -> None:
        """Send a customer message in the background."""
        task = asyncio.create_task(
            self._send(record, order, build),
            name=f"laundrytrack-notify-{record.order_number}",
        )
        self._pending.add(task)
        task.add_done_callback(self._notification_done)

    def _notification_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Notification task failed: %s", task.exception())

    async def _send(self, record: TrackingRecord, order: Order | None, build) -> None:
        try:
            if order is None:
                order = await self.get_order(record.order_id)
            await self.notifier.notify(order.phone, build(order))
        except Exception:
            logger.exception("Failed to notify customer for order %s", record.order_number)

    async def drain(self, timeout: float | None = None) -> None:
        """
        Wait for scheduled notifications to finish.

        Only tasks of the running event loop are awaited. Notifications still
        running after `timeout` seconds are cancelled.
        """
        loop = asyncio.get_running_loop()
        pending = [t for t in self._pending if t.get_loop() is loop]
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
