"""Pytest fixtures for laundrytrack tests."""

import os
import tempfile
from pathlib import Path

# Keep log files and polling out of the way before the package is imported
os.environ.setdefault("LAUNDRYTRACK_LOG_DIR", tempfile.mkdtemp(prefix="laundrytrack-logs-"))
os.environ.setdefault("LAUNDRYTRACK_POLL_SECONDS", "0.01")

import pytest

from laundrytrack.models import (
    Actor,
    DeliveryType,
    Order,
    OrderItem,
    Shift,
    Worker,
)
from laundrytrack.notifications import RecordingNotifier
from laundrytrack.order_store import OrderStore
from laundrytrack.synchronizer import build_tracking_record
from laundrytrack.tracker import Tracker
from laundrytrack.tracking_store import TrackingStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def order_store(temp_dir):
    return OrderStore(temp_dir)


@pytest.fixture
def tracking_store(temp_dir):
    return TrackingStore(temp_dir)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def tracker(order_store, tracking_store, notifier):
    return Tracker(order_store, tracking_store, notifier)


@pytest.fixture
def operator():
    return Actor(id="op-1", name="Ana", role="operator")


@pytest.fixture
def driver():
    return Actor(id="drv-1", name="Pedro", role="driver")


@pytest.fixture
def crew():
    return [Worker(id="w-1", name="Luis"), Worker(id="w-2", name="Marta")]


@pytest.fixture
def shift():
    return Shift.A


def make_order(
    order_number: str = "1001",
    delivery_type: DeliveryType = DeliveryType.PICKUP,
    **kwargs,
) -> Order:
    """Build an order the way the intake system would."""
    kwargs.setdefault("customer_name", "Carla Rojas")
    kwargs.setdefault("phone", "9 1234 5678")
    if delivery_type == DeliveryType.DISPATCH:
        kwargs.setdefault("address", "Av. Grecia 1234, Antofagasta")
    kwargs.setdefault("items", [OrderItem(name="Shirt", quantity=3, unit_price=1500.0)])
    return Order.create(order_number=order_number, delivery_type=delivery_type, **kwargs)


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def pickup_record(order_factory):
    """In-memory tracking record for a pickup order (no stores)."""
    return build_tracking_record(order_factory("2001"))


@pytest.fixture
def dispatch_order(order_factory):
    return order_factory("3001", DeliveryType.DISPATCH, dispatch_code="B7K2M")


@pytest.fixture
def dispatch_record(dispatch_order):
    """In-memory tracking record for a dispatch order (no stores)."""
    return build_tracking_record(dispatch_order)


@pytest.fixture
def seed_order(order_store, tracking_store):
    """Factory: store an order and its freshly seeded tracking record."""

    def _seed(order_number="1001", delivery_type=DeliveryType.PICKUP, **kwargs):
        order = make_order(order_number, delivery_type, **kwargs)
        order_store.save(order)
        record = build_tracking_record(order)
        tracking_store.create(record)
        return order, record

    return _seed
