"""Customer notifications through WhatsApp click-to-chat links."""

from datetime import datetime, timedelta
from typing import Protocol
from urllib.parse import quote

from .config import BUSINESS_NAME, PICKUP_DEADLINE_DAYS, TRACKING_URL
from .logger import get_logger
from .models import Order

logger = get_logger("notifications")


class Notifier(Protocol):
    """Delivers a text message to a customer phone."""

    async def notify(self, phone: str, message: str) -> None: ...


def whatsapp_link(phone: str, text: str) -> str:
    """Build a https://wa.me link for `phone` with a prefilled message."""
    digits = "".join(c for c in phone if c.isdigit())
    return f"https://wa.me/{digits}?text={quote(text)}"


def process_started_message(order: Order) -> str:
    return (
        f"Hello {order.customer_name}, your order #{order.order_number} "
        f"at {BUSINESS_NAME} is now being processed. "
        f"Follow it at {TRACKING_URL}"
    )


def ready_for_pickup_message(order: Order, now: datetime | None = None) -> str:
    now = now or datetime.now()
    deadline = (now + timedelta(days=PICKUP_DEADLINE_DAYS)).strftime("%d/%m/%Y")
    return (
        f"Hello {order.customer_name}, your order #{order.order_number} "
        f"is ready for pickup at {BUSINESS_NAME}. "
        f"Please collect it before {deadline}."
    )


def dispatch_started_message(order: Order) -> str:
    message = (
        f"Hello {order.customer_name}, your order #{order.order_number} "
        f"from {BUSINESS_NAME} is on its way"
    )
    if order.address:
        message += f" to {order.address}"
    return message + ". Have your verification code ready for the driver."


class LoggingNotifier:
    """Logs the click-to-chat link a staff member would open."""

    async def notify(self, phone: str, message: str) -> None:
        logger.info("Notify %s: %s", phone, whatsapp_link(phone, message))


class RecordingNotifier:
    """Keeps every message in memory."""

    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    async def notify(self, phone: str, message: str) -> None:
        self.messages.append((phone, message))
