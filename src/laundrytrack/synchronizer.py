"""
Keeps tracking records in step with the intake system's orders.

Consumes the order change stream: every new order gets a tracking record
in `pending`, number changes are mirrored, and removed orders take their
tracking record with them.
"""

import asyncio
from collections.abc import Awaitable, Callable

from .config import POLL_SECONDS
from .errors import TrackingExistsError
from .logger import get_logger
from .models import (
    SYSTEM_ACTOR_ID,
    SYSTEM_ACTOR_NAME,
    ChangeKind,
    DeliveryType,
    DispatchRecord,
    HistoryEntry,
    Order,
    OrderChange,
    TrackingRecord,
    _utc_now,
)
from .order_store import OrderStore
from .state_machine import INITIAL_STATE
from .tracking_store import TrackingStore

logger = get_logger("synchronizer")

NewOrderCallback = Callable[[Order, TrackingRecord], Awaitable[None]]


def build_tracking_record(order: Order) -> TrackingRecord:
    """Seed the tracking record for a newly received order."""
    now = _utc_now()
    return TrackingRecord(
        id=order.id,
        order_id=order.id,
        order_number=order.order_number,
        state=INITIAL_STATE,
        history=[
            HistoryEntry(
                state=INITIAL_STATE,
                changed_at=now,
                actor_id=SYSTEM_ACTOR_ID,
                actor_name=SYSTEM_ACTOR_NAME,
                comment="Order created",
            )
        ],
        active=order.active,
        dispatch=DispatchRecord() if order.delivery_type == DeliveryType.DISPATCH else None,
        created_at=now,
        updated_at=now,
    )


class Synchronizer:
    """Background task that applies order changes to the tracking store."""

    def __init__(
        self,
        orders: OrderStore,
        tracking: TrackingStore,
        on_new_order: NewOrderCallback | None = None,
        poll_interval: float | None = None,
    ):
        self.orders = orders
        self.tracking = tracking
        self.on_new_order = on_new_order
        self.poll_interval = POLL_SECONDS if poll_interval is None else poll_interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start consuming the change stream on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self.run(), name="laundrytrack-sync")
        logger.info("Synchronizer started")

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Synchronizer task ended with an error")
        self._task = None
        logger.info("Synchronizer stopped")

    async def run(self) -> None:
        """
        Apply changes until cancelled.

        A failing change is logged and skipped. If the change stream itself
        fails, it is reopened after one poll interval; the first poll replays
        every order as ADDED, which the handlers ignore for known records.
        """
        while True:
            try:
                async for change in self.orders.changes(self.poll_interval):
                    try:
                        await self.handle_change(change)
                    except Exception:
                        logger.exception(
                            "Failed to apply %s change for order %s",
                            change.kind.value,
                            change.order_id,
                        )
            except Exception:
                logger.exception("Order change stream failed, reopening")
            await asyncio.sleep(self.poll_interval)

    async def handle_change(self, change: OrderChange) -> None:
        if change.kind == ChangeKind.ADDED:
            await self._handle_added(change)
        elif change.kind == ChangeKind.MODIFIED:
            await self._handle_modified(change)
        elif change.kind == ChangeKind.REMOVED:
            await self._handle_removed(change)

    async def _handle_added(self, change: OrderChange) -> None:
        order = change.order
        if order is None:
            return
        if await asyncio.to_thread(self.tracking.exists, order.id):
            return
        record = build_tracking_record(order)
        try:
            await asyncio.to_thread(self.tracking.create, record)
        except TrackingExistsError:
            return  # created concurrently
        logger.info("Created tracking record for order %s", order.order_number)

        if self.on_new_order is not None:
            try:
                await self.on_new_order(order, record)
            except Exception:
                logger.exception("New order callback failed for %s", order.order_number)

    async def _handle_modified(self, change: OrderChange) -> None:
        order = change.order
        if order is None:
            return
        if not await asyncio.to_thread(self.tracking.exists, order.id):
            return

        def mirror(record: TrackingRecord) -> None:
            record.order_number = order.order_number
            record.touch()

        await asyncio.to_thread(self.tracking.update, order.id, mirror)

    async def _handle_removed(self, change: OrderChange) -> None:
        if await asyncio.to_thread(self.tracking.delete, change.order_id):
            logger.info("Deleted tracking record %s", change.order_id)
