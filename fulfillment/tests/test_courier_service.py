"""Courier command flow: login, presence, accept, receipt/bill, completion."""
from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from fulfillment.core.exceptions import ExternalServiceError
from fulfillment.services.courier_service import (
    NOT_REGISTERED,
    CourierCommandService,
    is_courier_command,
    parse_bill_amount,
)
from fulfillment.services.presence_service import ONLINE_COURIERS_KEY
from fulfillment.tests.fakes import FakeSession, FakeStore, fake_repositories, make_deps, sent_texts
from fulfillment.utils import formatting

CUSTOMER = "6281234567890"
COURIER_PHONE = "6281100000001"


def _run(coro):
    return asyncio.run(coro)


class TestParsing(unittest.TestCase):
    def test_bill_amounts(self) -> None:
        self.assertEqual(parse_bill_amount("25.500"), 25500)
        self.assertEqual(parse_bill_amount("Rp 125000"), 125000)
        self.assertEqual(parse_bill_amount("rp. 12,000"), 12000)
        self.assertIsNone(parse_bill_amount("250"))
        self.assertIsNone(parse_bill_amount("oke 25000"))

    def test_login_is_a_courier_command(self) -> None:
        self.assertTrue(is_courier_command(" #login 0811"))
        self.assertFalse(is_courier_command("#SIAP"))


class CourierTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = FakeStore()
        patcher = fake_repositories(self.store)
        patcher.__enter__()
        self.addCleanup(patcher.__exit__, None, None, None)
        backfill = patch("fulfillment.services.courier_service.spawn_backfill")
        self.spawn_backfill = backfill.start()
        self.addCleanup(backfill.stop)

        self.reader = MagicMock()
        self.reader.read_total = AsyncMock(return_value=25000)
        self.deps = make_deps(self.store, receipt_reader=self.reader)
        self.gateway = self.deps.gateway
        self.courier = self.store.add_courier(
            name="Budi", phone=COURIER_PHONE, status="OFFLINE",
            current_latitude=-6.2, current_longitude=106.8,
        )

    def send(self, text: str, sender: str = COURIER_PHONE) -> str:
        return _run(CourierCommandService(FakeSession(), self.deps).handle_message(sender, text))

    def send_image(self, media_ref: str = "media-1") -> str:
        return _run(CourierCommandService(FakeSession(), self.deps).handle_image(COURIER_PHONE, media_ref))

    def assigned_order(self, status: str = "ON_PROCESS"):
        self.courier.status = "BUSY"
        self.courier.current_order_id = "ORD-1"
        return self.store.add_order("ORD-1", status=status, courier_id=self.courier.id, customer_phone=CUSTOMER)


class TestLoginAndPresence(CourierTestCase):
    def test_unknown_sender(self) -> None:
        self.assertEqual(self.send("#SIAP", sender="6289900000000"), NOT_REGISTERED)

    def test_login_binds_device(self) -> None:
        reply = self.send("#LOGIN 0811-0000-0001", sender="6289900000000")
        self.assertIn("Login berhasil", reply)
        self.assertEqual(self.courier.device_id, "6289900000000")
        self.send("#SIAP", sender="6289900000000")
        self.assertEqual(self.courier.status, "IDLE")

    def test_login_unknown_phone(self) -> None:
        self.assertEqual(self.send("#LOGIN 081299999999"), NOT_REGISTERED)

    def test_ready_goes_online_and_backfills(self) -> None:
        reply = self.send("#SIAP")
        self.assertIn("SIAP", reply)
        self.assertEqual(self.courier.status, "IDLE")
        self.assertIn(str(self.courier.id), _run(self.deps.cache.members(ONLINE_COURIERS_KEY)))
        self.spawn_backfill.assert_called_once_with(self.deps)

    def test_ready_without_location_asks_for_it(self) -> None:
        self.courier.current_latitude = self.courier.current_longitude = None
        reply = self.send("#SIAP")
        self.assertIn("live location", reply)
        self.spawn_backfill.assert_not_called()

    def test_off_blocked_while_busy(self) -> None:
        self.assigned_order()
        self.assertIn("Selesaikan", self.send("#OFF"))
        self.assertEqual(self.courier.status, "BUSY")

    def test_off(self) -> None:
        self.courier.status = "IDLE"
        self.send("#OFF")
        self.assertEqual(self.courier.status, "OFFLINE")

    def test_suspended_courier_is_blocked(self) -> None:
        self.courier.status = "SUSPEND"
        self.assertIn("dinonaktifkan", self.send("#SIAP"))
        self.assertEqual(self.courier.status, "SUSPEND")

    def test_location_from_offline_courier_brings_it_online(self) -> None:
        reply = _run(CourierCommandService(FakeSession(), self.deps).handle_location(COURIER_PHONE, -6.25, 106.85))
        self.assertIn("SIAP", reply)
        self.assertEqual(self.courier.status, "IDLE")
        self.assertEqual((self.courier.current_latitude, self.courier.current_longitude), (-6.25, 106.85))
        self.spawn_backfill.assert_called_once_with(self.deps)

    def test_location_from_busy_courier_only_updates(self) -> None:
        self.assigned_order()
        reply = _run(CourierCommandService(FakeSession(), self.deps).handle_location(COURIER_PHONE, -6.25, 106.85))
        self.assertEqual(reply, "Lokasi kamu sudah diperbarui.")
        self.assertEqual(self.courier.status, "BUSY")
        self.spawn_backfill.assert_not_called()

    def test_dashboard(self) -> None:
        reply = self.send("#INFO")
        self.assertIn("Budi", reply)
        self.assertIn("#AMBIL", reply)


class TestAccept(CourierTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.order = self.store.add_order("ORD-1", short_code="QX7P", customer_phone=CUSTOMER)

    def test_accept_by_short_code(self) -> None:
        self.courier.status = "IDLE"
        reply = self.send("#AMBIL qx7p")
        self.assertIn("jadi milikmu", reply)
        self.assertEqual(self.order.status, "ON_PROCESS")
        self.assertEqual(self.order.courier_id, self.courier.id)
        self.assertEqual(self.courier.status, "BUSY")
        self.assertEqual(
            sent_texts(self.gateway, CUSTOMER), [formatting.courier_assigned_message(self.order, self.courier)]
        )

    def test_accept_taken_order(self) -> None:
        self.courier.status = "IDLE"
        self.order.status = "ON_PROCESS"
        self.assertIn("sudah tidak tersedia", self.send("#AMBIL ORD-1"))
        self.assertEqual(self.courier.status, "IDLE")
        self.gateway.send_text.assert_not_awaited()

    def test_accept_while_offline(self) -> None:
        self.assertIn("#SIAP", self.send("#AMBIL ORD-1"))
        self.assertEqual(self.order.status, "LOOKING_FOR_DRIVER")

    def test_accept_while_busy(self) -> None:
        self.courier.status = "BUSY"
        self.assertIn("masih punya order", self.send("#AMBIL ORD-1"))

    def test_accept_unknown_order(self) -> None:
        self.courier.status = "IDLE"
        self.assertIn("tidak ditemukan", self.send("#AMBIL ZZZZ"))

    def test_accept_needs_reference(self) -> None:
        self.assertIn("Format", self.send("#AMBIL"))


class TestBillAndComplete(CourierTestCase):
    def test_receipt_photo_records_bill_draft(self) -> None:
        order = self.assigned_order()
        reply = self.send_image("media-1")
        self.assertIn("Rp 25.000", reply)
        self.assertEqual(order.status, "BILL_VALIDATION")
        self.assertEqual(order.total_amount, 25000)
        self.assertEqual(order.evidence_ref, "media-1")
        self.reader.read_total.assert_awaited_once_with("media-1")

    def test_unreadable_receipt_asks_again(self) -> None:
        order = self.assigned_order()
        self.reader.read_total = AsyncMock(side_effect=ExternalServiceError("blurry"))
        self.assertIn("kirim ulang", self.send_image())
        self.assertEqual(order.status, "ON_PROCESS")

    def test_photo_without_active_order(self) -> None:
        self.assertIn("Tidak ada order", self.send_image())

    def test_revise_then_approve_sends_bill(self) -> None:
        order = self.assigned_order("BILL_VALIDATION")
        order.total_amount = 25000
        order.evidence_ref = "media-1"

        self.assertIn("Rp 25.500", self.send("25.500"))
        self.assertEqual(order.total_amount, 25500)

        self.assertIn("Tagihan sudah dikirim", self.send("Y"))
        self.assertEqual(order.status, "BILL_SENT")
        self.assertEqual(sent_texts(self.gateway, CUSTOMER), [formatting.bill_message(order)])
        self.gateway.send_image.assert_awaited_once_with(CUSTOMER, "media-1", "Struk belanja")

    def test_complete_after_bill_sent(self) -> None:
        order = self.assigned_order("BILL_SENT")
        reply = self.send("#SELESAI")
        self.assertIn("selesai", reply)
        self.assertEqual(order.status, "COMPLETED")
        self.assertIsNotNone(order.completed_at)
        self.assertEqual(self.courier.status, "IDLE")
        self.assertEqual(sent_texts(self.gateway, CUSTOMER), [formatting.completed_message(order)])

    def test_complete_before_bill_is_refused(self) -> None:
        order = self.assigned_order("ON_PROCESS")
        self.assertIn("tagihan", self.send("#SELESAI"))
        self.assertEqual(order.status, "ON_PROCESS")


if __name__ == "__main__":
    unittest.main()
