"""Unit tests for the order status table and draft merge rules."""
from __future__ import annotations

import unittest

from fulfillment.core.exceptions import CacheError, ConflictError, InvalidTransitionError, MissingFieldError
from fulfillment.domain.drafts import (
    DraftSession,
    is_draft_complete,
    merge_draft,
    missing_draft_fields,
)
from fulfillment.domain.types import (
    ASSIGNED_STATUSES,
    AUTO_CANCEL_STATUSES,
    Intent,
    OrderStatus,
    ensure_transition,
    normalize_items,
)


class TestOrderStatusTransitions(unittest.TestCase):
    def test_happy_path_is_allowed(self) -> None:
        path = [
            OrderStatus.DRAFT,
            OrderStatus.PENDING_CONFIRMATION,
            OrderStatus.LOOKING_FOR_DRIVER,
            OrderStatus.ON_PROCESS,
            OrderStatus.BILL_VALIDATION,
            OrderStatus.BILL_SENT,
            OrderStatus.COMPLETED,
        ]
        for current, target in zip(path, path[1:]):
            self.assertIs(ensure_transition(current, target), target)

    def test_terminal_states_have_no_exit(self) -> None:
        for terminal in (OrderStatus.COMPLETED, OrderStatus.CANCELLED):
            self.assertTrue(terminal.is_terminal)
            for target in OrderStatus:
                self.assertFalse(terminal.can_transition_to(target))

    def test_skipping_a_step_raises(self) -> None:
        with self.assertRaises(InvalidTransitionError) as ctx:
            ensure_transition("LOOKING_FOR_DRIVER", OrderStatus.COMPLETED)
        self.assertEqual(ctx.exception.code, "INVALID_TRANSITION")
        self.assertEqual(ctx.exception.details, {"from": "LOOKING_FOR_DRIVER", "to": "COMPLETED"})

    def test_invalid_transition_is_a_conflict(self) -> None:
        with self.assertRaises(ConflictError):
            ensure_transition(OrderStatus.ON_PROCESS, OrderStatus.LOOKING_FOR_DRIVER)

    def test_every_non_terminal_status_can_be_cancelled(self) -> None:
        for status in OrderStatus:
            if not status.is_terminal:
                self.assertTrue(status.can_transition_to(OrderStatus.CANCELLED), status)

    def test_auto_cancel_never_touches_assigned_orders(self) -> None:
        self.assertFalse(AUTO_CANCEL_STATUSES & ASSIGNED_STATUSES)


class TestErrorBody(unittest.TestCase):
    def test_missing_fields_body(self) -> None:
        body = MissingFieldError(["items", "pickup_address"]).to_dict()
        self.assertEqual(body["code"], "MISSING_FIELD")
        self.assertEqual(body["fields"], ["items", "pickup_address"])
        self.assertIn("pickup_address", body["detail"])

    def test_context_cannot_override_code(self) -> None:
        body = ConflictError("taken", details={"code": "X", "order_id": "ORD-1"}).to_dict()
        self.assertEqual(body, {"detail": "taken", "code": "CONFLICT", "order_id": "ORD-1"})

    def test_server_errors_name_their_cause(self) -> None:
        err = CacheError("redis down", cause=ConnectionError("refused"))
        self.assertEqual(err.http_status, 502)
        self.assertEqual(err.to_dict()["cause"], "ConnectionError")
        self.assertNotIn("cause", ConflictError("x", cause=ValueError()).to_dict())


class TestIntentParse(unittest.TestCase):
    def test_known_values(self) -> None:
        self.assertIs(Intent.parse("confirm_final"), Intent.CONFIRM_FINAL)

    def test_unknown_falls_back_to_chitchat(self) -> None:
        self.assertIs(Intent.parse("ORDER_SOMETHING"), Intent.CHITCHAT)
        self.assertIs(Intent.parse(None), Intent.CHITCHAT)


class TestNormalizeItems(unittest.TestCase):
    def test_accepts_strings_and_alternate_keys(self) -> None:
        items = normalize_items(["Gula", {"name": "Telur", "quantity": "2", "note": "yang besar"}])
        self.assertEqual(items, [
            {"item": "Gula", "qty": 1, "note": ""},
            {"item": "Telur", "qty": 2, "note": "yang besar"},
        ])

    def test_drops_nameless_entries_and_clamps_qty(self) -> None:
        items = normalize_items([{"item": ""}, {"item": "Kopi", "qty": 0}, 42])
        self.assertEqual(items, [{"item": "Kopi", "qty": 1, "note": ""}])

    def test_non_list_is_empty(self) -> None:
        self.assertEqual(normalize_items("Gula"), [])


class TestDraftMerge(unittest.TestCase):
    def test_items_then_address_keeps_both(self) -> None:
        first = merge_draft(DraftSession(), {"items": [{"item": "Martabak", "qty": 1}]})
        second = merge_draft(first, {"delivery_address": "Jl. Kenanga 5"})
        self.assertEqual(second.items, [{"item": "Martabak", "qty": 1, "note": ""}])
        self.assertEqual(second.delivery_address, "Jl. Kenanga 5")

    def test_new_items_replace_old_list(self) -> None:
        first = merge_draft(DraftSession(), {"items": ["Gula"]})
        second = merge_draft(first, {"items": ["Kopi", "Teh"]})
        self.assertEqual([i["item"] for i in second.items], ["Kopi", "Teh"])

    def test_empty_fields_do_not_overwrite(self) -> None:
        first = merge_draft(DraftSession(), {"pickup_location": "Pasar Baru", "notes": "cepat"})
        second = merge_draft(first, {"pickup_location": "", "notes": None, "items": []})
        self.assertEqual(second.pickup, "Pasar Baru")
        self.assertEqual(second.notes, "cepat")

    def test_merge_does_not_mutate_previous(self) -> None:
        first = DraftSession(items=[{"item": "Gula", "qty": 1, "note": ""}])
        merge_draft(first, {"items": ["Kopi"]})
        self.assertEqual(first.items[0]["item"], "Gula")

    def test_completeness_needs_coordinates(self) -> None:
        draft = DraftSession(
            items=[{"item": "Gula", "qty": 1, "note": ""}], pickup="Toko A", delivery_address="Jl. B 1"
        )
        self.assertEqual(missing_draft_fields(draft), ["coordinates"])
        self.assertTrue(is_draft_complete(draft, customer_has_coordinates=True))
        draft.has_coordinate = True
        self.assertTrue(is_draft_complete(draft))

    def test_short_texts_are_missing(self) -> None:
        draft = DraftSession(items=[{"item": "Gula", "qty": 1, "note": ""}], pickup="AB", delivery_address="Jl.")
        self.assertEqual(
            missing_draft_fields(draft, customer_has_coordinates=True),
            ["pickup_address", "delivery_address"],
        )

    def test_session_json_is_tolerant(self) -> None:
        draft = DraftSession(items=[{"item": "Gula", "qty": 1, "note": ""}], pickup="Toko", order_id="ORD-1")
        self.assertEqual(DraftSession.from_json(draft.to_json()), draft)
        self.assertEqual(DraftSession.from_json("not json"), DraftSession())
        self.assertEqual(DraftSession.from_json('{"pickup": "X", "unknown": 1}').pickup, "X")


if __name__ == "__main__":
    unittest.main()
