"""Dispatch engine: ranking, offer window, retry rounds, shift filter and notices."""
from __future__ import annotations

import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from fulfillment.domain.types import DispatchOutcome, RankedCourier
from fulfillment.services import dispatch_service
from fulfillment.services.dispatch_service import (
    DispatchService,
    dispatch_due_orders,
    dispatch_order,
    select_offer_pool,
)
from fulfillment.services.presence_service import ONLINE_COURIERS_KEY
from fulfillment.tests.fakes import (
    NO_SHIFT_NOW,
    SHIFT_1_NOW,
    FakeClock,
    FakeSession,
    FakeStore,
    fake_repositories,
    make_deps,
    sent_texts,
)
from fulfillment.utils import formatting

PICKUP = (-6.2000, 106.8000)
CUSTOMER = "6281234567890"


def _run(coro):
    return asyncio.run(coro)


class DispatchTestCase(unittest.TestCase):
    now = SHIFT_1_NOW

    def setUp(self) -> None:
        self.store = FakeStore(FakeClock(self.now))
        patcher = fake_repositories(self.store)
        patcher.__enter__()
        self.addCleanup(patcher.__exit__, None, None, None)
        self.deps = make_deps(self.store)
        self.gateway = self.deps.gateway
        # A is ~0.1 km from the pickup point, B ~1.1 km
        self.a = self.store.add_courier(name="A", phone="6281100000001", current_latitude=-6.2010, current_longitude=106.8)
        self.b = self.store.add_courier(name="B", phone="6281100000002", current_latitude=-6.2100, current_longitude=106.8)
        self.order = self.store.add_order(
            "ORD-1", short_code="QX7P", pickup_latitude=PICKUP[0], pickup_longitude=PICKUP[1]
        )

    def find(self, order_id: str = "ORD-1") -> DispatchOutcome:
        return _run(DispatchService(FakeSession(), self.deps).find_courier_for_order(order_id))

    def offers_to(self, courier) -> list:
        return [t for t in sent_texts(self.gateway, courier.phone) if "#AMBIL" in t]


class TestFindCourier(DispatchTestCase):
    def test_offers_nearest_courier(self) -> None:
        self.assertIs(self.find(), DispatchOutcome.OFFERED)
        self.assertEqual(self.order.offered_courier_ids, [str(self.a.id)])
        self.assertEqual(self.order.last_offered_at, self.now)
        self.assertEqual(self.order.status, "LOOKING_FOR_DRIVER")
        offer = self.offers_to(self.a)[0]
        self.assertIn("ORD-1", offer)
        self.assertIn("#AMBIL QX7P", offer)
        self.assertIn("Peta pickup", offer)

    def test_second_call_within_window_is_a_noop(self) -> None:
        self.assertIs(self.find(), DispatchOutcome.OFFERED)
        self.store.clock.advance(seconds=60)
        self.assertIs(self.find(), DispatchOutcome.OFFER_PENDING)
        self.assertEqual(len(self.order.offered_courier_ids), 1)
        self.assertEqual(self.gateway.send_text.await_count, 1)

    def test_timeout_moves_offer_to_next_courier(self) -> None:
        self.find()
        self.store.clock.advance(seconds=181)
        self.assertEqual(_run(dispatch_due_orders(self.deps)), 1)
        self.assertEqual(self.order.offered_courier_ids, [str(self.a.id), str(self.b.id)])
        self.assertEqual(len(self.offers_to(self.b)), 1)
        self.assertEqual(len(self.offers_to(self.a)), 1)

    def test_new_round_after_everyone_was_offered(self) -> None:
        self.find()
        self.store.clock.advance(seconds=181)
        self.find()
        self.store.clock.advance(seconds=181)
        self.assertIs(self.find(), DispatchOutcome.OFFERED)
        self.assertEqual(self.order.offered_courier_ids, [str(self.a.id)])
        self.assertEqual(len(self.offers_to(self.a)), 2)

    def test_busy_and_inactive_couriers_are_skipped(self) -> None:
        self.a.status = "BUSY"
        self.b.is_active = False
        c = self.store.add_courier(name="C", current_latitude=-6.25, current_longitude=106.8)
        self.find()
        self.assertEqual(self.order.offered_courier_ids, [str(c.id)])

    def test_offline_courier_is_skipped_when_cache_knows_who_is_online(self) -> None:
        _run(self.deps.cache.add_members(ONLINE_COURIERS_KEY, [str(self.b.id)]))
        self.find()
        self.assertEqual(self.order.offered_courier_ids, [str(self.b.id)])

    def test_failed_send_keeps_offer_bookkeeping(self) -> None:
        self.gateway.send_text = AsyncMock(return_value=False)
        self.assertIs(self.find(), DispatchOutcome.OFFERED)
        self.assertEqual(self.order.offered_courier_ids, [str(self.a.id)])
        self.assertIsNotNone(self.order.last_offered_at)

    def test_order_not_looking_for_driver(self) -> None:
        self.order.status = "ON_PROCESS"
        self.assertIs(self.find(), DispatchOutcome.NOT_DISPATCHABLE)
        self.gateway.send_text.assert_not_awaited()

    def test_unknown_order(self) -> None:
        self.assertIs(self.find("ORD-404"), DispatchOutcome.NOT_FOUND)


class TestNoCourierNotices(DispatchTestCase):
    def test_no_pickup_coordinates_notifies_once(self) -> None:
        self.order.pickup_latitude = self.order.pickup_longitude = None
        for _ in range(3):
            self.assertIs(self.find(), DispatchOutcome.NO_PICKUP_COORDINATES)
            self.store.clock.advance(seconds=181)
        # the retry scan never picks up an order without pickup coordinates
        self.assertEqual(_run(dispatch_due_orders(self.deps)), 0)
        self.assertEqual(sent_texts(self.gateway), [formatting.NO_PICKUP_COORDINATES])
        self.assertEqual(self.order.offered_courier_ids, [])
        self.assertIsNone(self.order.last_offered_at)

    def test_no_courier_notifies_once_across_retries(self) -> None:
        self.a.status = self.b.status = "OFFLINE"
        for _ in range(3):
            self.assertEqual(_run(dispatch_due_orders(self.deps)), 1)
            self.store.clock.advance(seconds=61)
        self.assertEqual(sent_texts(self.gateway, CUSTOMER), [formatting.NO_COURIER_AVAILABLE])
        self.assertEqual(self.order.status, "LOOKING_FOR_DRIVER")


class TestShiftFilter(DispatchTestCase):
    def test_other_shift_is_never_offered_even_if_nearest(self) -> None:
        self.a.shift_code = 2
        self.find()
        self.assertEqual(self.order.offered_courier_ids, [str(self.b.id)])
        self.assertEqual(self.offers_to(self.a), [])


class TestOutsideShifts(DispatchTestCase):
    now = NO_SHIFT_NOW

    def test_nobody_is_eligible(self) -> None:
        self.assertIs(self.find(), DispatchOutcome.NO_COURIER)
        self.assertEqual(sent_texts(self.gateway), [formatting.NO_COURIER_AVAILABLE])


class TestEligibleRanking(DispatchTestCase):
    def test_ranking_has_no_side_effects(self) -> None:
        ranked = _run(DispatchService(FakeSession(), self.deps).rank_couriers_for_order("ORD-1"))
        self.assertEqual([r.courier_id for r in ranked], [self.a.id, self.b.id])
        self.assertLess(ranked[0].distance_km, ranked[1].distance_km)
        self.assertEqual(self.order.offered_courier_ids, [])
        self.assertIsNone(self.order.last_offered_at)
        self.gateway.send_text.assert_not_awaited()

    def test_ranking_excludes_already_offered(self) -> None:
        self.find()
        ranked = _run(DispatchService(FakeSession(), self.deps).rank_couriers_for_order("ORD-1"))
        self.assertEqual([r.courier_id for r in ranked], [self.b.id])

    def test_ranking_without_pickup_coordinates_is_empty(self) -> None:
        self.order.pickup_latitude = None
        ranked = _run(DispatchService(FakeSession(), self.deps).rank_couriers_for_order("ORD-1"))
        self.assertEqual(ranked, [])


class TestSelectOfferPool(unittest.TestCase):
    def test_reset_only_when_everyone_was_offered(self) -> None:
        ranked = [RankedCourier("a", "1", None, 0.1), RankedCourier("b", "2", None, 0.2)]
        self.assertEqual(select_offer_pool(SimpleNamespace(offered_courier_ids=[]), ranked), (ranked, False))
        self.assertEqual(
            select_offer_pool(SimpleNamespace(offered_courier_ids=["a"]), ranked), (ranked[1:], False)
        )
        self.assertEqual(
            select_offer_pool(SimpleNamespace(offered_courier_ids=["a", "b"]), ranked), (ranked, True)
        )
        self.assertEqual(select_offer_pool(SimpleNamespace(offered_courier_ids=["a"]), []), ([], False))


class TestDispatchOrderBoundary(DispatchTestCase):
    def test_errors_are_logged_not_raised(self) -> None:
        with patch.object(
            dispatch_service.DispatchService, "find_courier_for_order", AsyncMock(side_effect=RuntimeError("db down"))
        ):
            with self.assertLogs("fulfillment.services.dispatch_service", level="ERROR"):
                self.assertIsNone(_run(dispatch_order(self.deps, "ORD-1")))


if __name__ == "__main__":
    unittest.main()
