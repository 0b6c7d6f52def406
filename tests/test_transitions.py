import unittest

from flowbuilder.domain.transitions import (
    PO_STATUSES,
    RFQ_STATUSES,
    allowed_rfq_actions,
    can_cancel_po,
    can_delete_rfq,
    can_edit_rfq,
    can_transition_po,
    can_transition_rfq,
    next_po_status,
    quote_is_awardable,
    quote_is_mutable,
    rfq_action_allowed,
)


class RfqTransitionsTest(unittest.TestCase):
    def test_forward_only_lifecycle(self) -> None:
        self.assertTrue(can_transition_rfq("draft", "open"))
        self.assertTrue(can_transition_rfq("open", "closed"))
        self.assertFalse(can_transition_rfq("draft", "closed"))
        self.assertFalse(can_transition_rfq("open", "draft"))
        self.assertFalse(can_transition_rfq("closed", "open"))

    def test_closed_is_terminal(self) -> None:
        for target in RFQ_STATUSES:
            self.assertFalse(can_transition_rfq("closed", target))

    def test_unknown_status_is_rejected(self) -> None:
        self.assertFalse(can_transition_rfq("archived", "open"))
        self.assertFalse(can_transition_rfq(None, "open"))

    def test_edit_and_delete_only_in_draft(self) -> None:
        self.assertTrue(can_edit_rfq("draft"))
        self.assertTrue(can_delete_rfq("draft"))
        for status in ("open", "closed"):
            self.assertFalse(can_edit_rfq(status))
            self.assertFalse(can_delete_rfq(status))

    def test_quotes_accepted_only_while_open(self) -> None:
        self.assertTrue(rfq_action_allowed("open", "submit_quote"))
        self.assertFalse(rfq_action_allowed("draft", "submit_quote"))
        self.assertFalse(rfq_action_allowed("closed", "submit_quote"))

    def test_allowed_actions_per_status(self) -> None:
        self.assertEqual(set(allowed_rfq_actions("draft")), {"edit", "delete", "distribute"})
        self.assertEqual(set(allowed_rfq_actions("open")), {"close", "submit_quote", "award"})
        self.assertEqual(allowed_rfq_actions("closed"), ["award"])


class PurchaseOrderTransitionsTest(unittest.TestCase):
    def test_single_step_progression(self) -> None:
        self.assertTrue(can_transition_po("ordered", "confirmed"))
        self.assertTrue(can_transition_po("confirmed", "shipped"))
        self.assertTrue(can_transition_po("shipped", "delivered"))

    def test_skipping_and_reversing_are_rejected(self) -> None:
        self.assertFalse(can_transition_po("ordered", "shipped"))
        self.assertFalse(can_transition_po("ordered", "delivered"))
        self.assertFalse(can_transition_po("delivered", "shipped"))
        self.assertFalse(can_transition_po("confirmed", "ordered"))

    def test_terminal_statuses(self) -> None:
        for target in PO_STATUSES:
            self.assertFalse(can_transition_po("delivered", target))
            self.assertFalse(can_transition_po("cancelled", target))

    def test_cancellation_window(self) -> None:
        for status in ("ordered", "confirmed", "shipped"):
            self.assertTrue(can_cancel_po(status))
        self.assertFalse(can_cancel_po("delivered"))
        self.assertFalse(can_cancel_po("cancelled"))

    def test_next_status(self) -> None:
        self.assertEqual(next_po_status("ordered"), "confirmed")
        self.assertEqual(next_po_status("shipped"), "delivered")
        self.assertIsNone(next_po_status("delivered"))
        self.assertIsNone(next_po_status("cancelled"))


class QuoteStatusTest(unittest.TestCase):
    def test_awarded_quote_is_frozen(self) -> None:
        self.assertTrue(quote_is_mutable("submitted"))
        self.assertFalse(quote_is_mutable("awarded"))

    def test_only_submitted_quotes_can_be_awarded(self) -> None:
        self.assertTrue(quote_is_awardable("submitted"))
        self.assertFalse(quote_is_awardable("awarded"))
        self.assertFalse(quote_is_awardable("rejected"))


if __name__ == "__main__":
    unittest.main()
