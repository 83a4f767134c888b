"""Order record storage shared with the intake system."""

import asyncio
import json
import os
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from .config import DATA_DIR, ORDERS_DIR, POLL_SECONDS
from .errors import InvalidOrderError, OrderNotFoundError
from .logger import get_logger
from .models import ChangeKind, Order, OrderChange
from .utils import normalize_phone

logger = get_logger("order_store")


def parse_order(data: dict[str, Any]) -> Order:
    """
    Build an Order from an intake payload.

    Raises:
        InvalidOrderError: If a field has a type normalization can't handle.
    """
    try:
        return Order.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise InvalidOrderError(str(data.get("id", "?")), str(e)) from e


class OrderStore:
    """
    Access to order records, one JSON file per order.

    The tracking core only reads orders and follows their change stream.
    save() and delete() belong to the intake system. Payloads that can't be
    parsed are logged and left out of listings and the change stream.
    """

    def __init__(self, data_dir: Path | None = None):
        """
        Initialize OrderStore.

        Args:
            data_dir: Override base data directory (for testing).
        """
        self.data_dir = data_dir or DATA_DIR
        self.orders_dir = self.data_dir / ORDERS_DIR

    def _path(self, order_id: str) -> Path:
        return self.orders_dir / f"{order_id}.json"

    def _load_raw(self) -> dict[str, dict[str, Any]]:
        """Load every stored payload keyed by order ID."""
        if not self.orders_dir.exists():
            return {}
        raw: dict[str, dict[str, Any]] = {}
        for path in self.orders_dir.glob("*.json"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except FileNotFoundError:
                continue  # deleted between glob and open
            except json.JSONDecodeError:
                continue  # partially written by an external writer
            if not isinstance(data, dict):
                logger.warning("Ignoring non-object order payload %s", path.name)
                continue
            data.setdefault("id", path.stem)
            raw[str(data["id"])] = data
        return raw

    # --- Reads ---

    def get(self, order_id: str) -> Order:
        """
        Get an order by ID.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            InvalidOrderError: If the stored payload can't be parsed.
        """
        path = self._path(order_id)
        if not path.exists():
            raise OrderNotFoundError(order_id)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise InvalidOrderError(order_id, "payload is not an object")
        data.setdefault("id", order_id)
        return parse_order(data)

    def list_orders(self) -> list[Order]:
        orders = []
        for data in self._load_raw().values():
            try:
                orders.append(parse_order(data))
            except InvalidOrderError as e:
                logger.warning("Skipping order: %s", e)
        orders.sort(key=lambda o: (o.received_at, o.order_number))
        return orders

    def find_by_order_number(self, order_number: str) -> Order:
        """
        Get an order by its human-readable number.

        Raises:
            OrderNotFoundError: If no order has this number.
        """
        for order in self.list_orders():
            if order.order_number == order_number:
                return order
        raise OrderNotFoundError(order_number)

    def find_by_phone(self, phone: str) -> list[Order]:
        """List the orders of one customer (phone numbers compared normalized)."""
        wanted = normalize_phone(phone)
        return [o for o in self.list_orders() if o.phone == wanted]

    # --- Intake-side writes ---

    def save(self, order: Order) -> None:
        """Write an order atomically (intake side)."""
        self.orders_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            dir=self.orders_dir, prefix=".order_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(order.to_dict(), f, indent=2)
                f.write("\n")
            os.replace(temp_path, self._path(order.id))
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def delete(self, order_id: str) -> bool:
        """Delete an order (intake side). Returns True if it existed."""
        path = self._path(order_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    # --- Change stream ---

    @staticmethod
    def diff(
        before: dict[str, dict[str, Any]],
        after: dict[str, dict[str, Any]],
    ) -> list[OrderChange]:
        """
        Compute the changes between two snapshots of raw payloads.

        Both snapshots must hold parseable payloads only (see readable()).
        """
        changes: list[OrderChange] = []
        for order_id, data in after.items():
            if order_id not in before:
                changes.append(OrderChange(ChangeKind.ADDED, order_id, parse_order(data)))
            elif before[order_id] != data:
                changes.append(OrderChange(ChangeKind.MODIFIED, order_id, parse_order(data)))
        for order_id in before:
            if order_id not in after:
                changes.append(OrderChange(ChangeKind.REMOVED, order_id))
        return changes

    @staticmethod
    def readable(
        previous: dict[str, dict[str, Any]],
        current: dict[str, dict[str, Any]],
        rejected: dict[str, dict[str, Any]] | None = None,
    ) -> dict[str, dict[str, Any]]:
        """
        Keep only the payloads of `current` that parse.

        An unreadable payload falls back to its version in `previous`, so a
        bad write is neither reported as a change nor as a removal. `rejected`
        remembers bad payloads already logged, so each one is logged once.
        """
        if rejected is None:
            rejected = {}
        result: dict[str, dict[str, Any]] = {}
        for order_id, data in current.items():
            try:
                parse_order(data)
            except InvalidOrderError as e:
                if rejected.get(order_id) != data:
                    logger.warning("Ignoring unreadable order: %s", e)
                    rejected[order_id] = data
                if order_id in previous:
                    result[order_id] = previous[order_id]
                continue
            rejected.pop(order_id, None)
            result[order_id] = data
        for order_id in set(rejected) - set(current):
            del rejected[order_id]
        return result

    async def changes(
        self,
        poll_interval: float | None = None,
    ) -> AsyncIterator[OrderChange]:
        """
        Follow the order change stream.

        The first poll reports every existing order as ADDED, so consumers see
        the same creation more than once across restarts and must be idempotent.
        """
        interval = POLL_SECONDS if poll_interval is None else poll_interval
        snapshot: dict[str, dict[str, Any]] = {}
        rejected: dict[str, dict[str, Any]] = {}
        while True:
            raw = await asyncio.to_thread(self._load_raw)
            current = self.readable(snapshot, raw, rejected)
            for change in self.diff(snapshot, current):
                yield change
            snapshot = current
            await asyncio.sleep(interval)
