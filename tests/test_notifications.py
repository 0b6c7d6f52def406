import unittest
from unittest.mock import patch

from flowbuilder.application.notification_service import NotificationService
from flowbuilder.context import RequestContext
from flowbuilder.db import get_db
from flowbuilder.infrastructure.repositories import NotificationRepository
from tests.helpers.workspace import ProcurementWorkspace


class NotificationInboxTest(unittest.TestCase):
    def setUp(self) -> None:
        self.ws = ProcurementWorkspace(prefix="notifications")
        self.setup = self.ws.open_rfq()
        self.notification_id = self.ws.supplier_a.get("/api/notifications").get_json()["items"][0]["id"]

    def tearDown(self) -> None:
        self.ws.close()

    def test_mark_read_is_idempotent(self) -> None:
        first = self.ws.supplier_a.post(f"/api/notifications/{self.notification_id}/read")
        second = self.ws.supplier_a.post(f"/api/notifications/{self.notification_id}/read")
        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 200)
        self.assertTrue(second.get_json()["is_read"])
        self.assertEqual(self.ws.supplier_a.get("/api/notifications/unread-count").get_json()["unread_count"], 0)

    def test_cannot_read_someone_elses_notification(self) -> None:
        for client in (self.ws.supplier_b, self.ws.buyer):
            response = client.post(f"/api/notifications/{self.notification_id}/read")
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.get_json()["error"], "notification_not_found")
        row = self.ws.query("SELECT is_read FROM notifications WHERE id = ?", (self.notification_id,))[0]
        self.assertFalse(row["is_read"])

    def test_unread_filter_and_read_all(self) -> None:
        teammate_id = self.ws.create_user(self.ws.supplier_a_id, "Supplier", "ops@alpha.example")
        second = self.ws.open_rfq()
        self.assertNotEqual(second["rfq_id"], self.setup["rfq_id"])

        self.ws.supplier_a.post(f"/api/notifications/{self.notification_id}/read")
        unread = self.ws.supplier_a.get("/api/notifications?unread=1").get_json()
        self.assertEqual([item["reference_id"] for item in unread["items"]], [second["rfq_id"]])
        self.assertEqual(unread["unread_count"], 1)

        response = self.ws.supplier_a.post("/api/notifications/read-all")
        self.assertEqual(response.get_json()["updated"], 1)
        self.assertEqual(self.ws.supplier_a.get("/api/notifications/unread-count").get_json()["unread_count"], 0)

        teammate_rows = self.ws.query(
            "SELECT COUNT(*) AS total FROM notifications WHERE user_id = ? AND is_read = 0", (teammate_id,)
        )
        self.assertEqual(teammate_rows[0]["total"], 1)

    def test_open_marks_read_and_returns_target(self) -> None:
        response = self.ws.supplier_a.get(f"/api/notifications/{self.notification_id}/open")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["target"], f"/rfqs/{self.setup['rfq_id']}")
        row = self.ws.query("SELECT is_read FROM notifications WHERE id = ?", (self.notification_id,))[0]
        self.assertTrue(row["is_read"])


class NotificationFanOutTest(unittest.TestCase):
    def setUp(self) -> None:
        self.ws = ProcurementWorkspace(prefix="notification_fanout")
        self.ws.create_user(self.ws.supplier_a_id, "Supplier", "ops@alpha.example")
        self.ctx = RequestContext(
            user_id=self.ws.buyer_user_id,
            company_id=self.ws.buyer_company_id,
            role="buyer",
        )

    def tearDown(self) -> None:
        self.ws.close()

    def test_one_notification_per_recipient_user(self) -> None:
        with self.ws.app.app_context():
            delivered = NotificationService().fan_out(
                get_db(),
                self.ctx,
                recipient_company_id=self.ws.supplier_a_id,
                kind="po_status_updated",
                reference_id=77,
                status="shipped",
            )
        self.assertEqual(delivered, 2)
        rows = self.ws.query("SELECT message FROM notifications WHERE reference_id = 77")
        self.assertEqual({row["message"] for row in rows}, {"Purchase Order #77 status changed to shipped"})

    def test_failed_insert_does_not_stop_the_loop(self) -> None:
        original_add = NotificationRepository.add
        calls = {"count": 0}

        def flaky_add(repository, db, **kwargs):
            calls["count"] += 1
            if calls["count"] == 1:
                raise RuntimeError("disk full")
            return original_add(repository, db, **kwargs)

        with patch.object(NotificationRepository, "add", flaky_add):
            with self.ws.app.app_context():
                delivered = NotificationService().fan_out(
                    get_db(),
                    self.ctx,
                    recipient_company_id=self.ws.supplier_a_id,
                    kind="rfq_invite",
                    reference_id=5,
                    name="Roofing",
                )
        self.assertEqual(delivered, 1)
        self.assertEqual(len(self.ws.query("SELECT id FROM notifications WHERE reference_id = 5")), 1)


if __name__ == "__main__":
    unittest.main()
