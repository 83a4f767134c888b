"""Tests for customer notification messages."""

import asyncio
from datetime import datetime, timedelta

from laundrytrack.config import PICKUP_DEADLINE_DAYS
from laundrytrack.models import DeliveryType
from laundrytrack.notifications import (
    LoggingNotifier,
    RecordingNotifier,
    dispatch_started_message,
    process_started_message,
    ready_for_pickup_message,
    whatsapp_link,
)


class TestWhatsappLink:
    def test_link(self):
        link = whatsapp_link("+56912345678", "Hola mundo")
        assert link == "https://wa.me/56912345678?text=Hola%20mundo"


class TestMessages:
    def test_process_started(self, order_factory):
        message = process_started_message(order_factory("1001"))
        assert "Carla Rojas" in message
        assert "#1001" in message

    def test_ready_for_pickup_deadline(self, order_factory):
        now = datetime(2024, 1, 1)
        message = ready_for_pickup_message(order_factory("1001"), now=now)
        deadline = now + timedelta(days=PICKUP_DEADLINE_DAYS)
        assert deadline.strftime("%d/%m/%Y") in message

    def test_dispatch_started_mentions_address(self, order_factory):
        order = order_factory("3001", DeliveryType.DISPATCH)
        message = dispatch_started_message(order)
        assert order.address in message


class TestNotifiers:
    def test_recording_notifier(self):
        notifier = RecordingNotifier()
        asyncio.run(notifier.notify("+56912345678", "hello"))
        assert notifier.messages == [("+56912345678", "hello")]

    def test_logging_notifier_does_not_raise(self):
        asyncio.run(LoggingNotifier().notify("+56912345678", "hello"))
