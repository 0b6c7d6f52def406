import unittest
from unittest.mock import patch

from flowbuilder.infrastructure.repositories import RfqRepository
from tests.helpers.workspace import ProcurementWorkspace, future_deadline


class RfqLifecycleTest(unittest.TestCase):
    def setUp(self) -> None:
        self.ws = ProcurementWorkspace(prefix="rfq_workflow")
        self.project_id = self.ws.create_project()
        self.steel = self.ws.create_material(name="Steel beam")
        self.rebar = self.ws.create_material(name="Rebar")

    def tearDown(self) -> None:
        self.ws.close()

    def _create(self, **kwargs) -> int:
        return self.ws.create_rfq(
            self.project_id,
            {self.steel: 10, self.rebar: 4},
            [self.ws.supplier_a_id, self.ws.supplier_b_id],
            **kwargs,
        )

    def test_created_rfq_is_a_draft_with_invited_suppliers(self) -> None:
        rfq_id = self._create()

        response = self.ws.buyer.get(f"/api/rfqs/{rfq_id}")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["rfq"]["status"], "draft")
        self.assertEqual(payload["view"], "buyer")
        self.assertEqual({row["material_id"] for row in payload["materials"]}, {self.steel, self.rebar})
        self.assertEqual({row["status"] for row in payload["suppliers"]}, {"invited"})
        self.assertEqual(set(payload["allowed_actions"]), {"edit", "delete", "distribute"})
        self.assertEqual(payload["history"][0]["to_status"], "draft")

    def test_create_rejects_unknown_material_and_supplier(self) -> None:
        response = self.ws.buyer.post(
            f"/api/projects/{self.project_id}/rfqs",
            json={
                "name": "Bad",
                "deadline": future_deadline(),
                "materials": [{"material_id": 9999, "quantity": 1}],
                "suppliers": [self.ws.supplier_a_id],
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "material_not_in_catalog")

        response = self.ws.buyer.post(
            f"/api/projects/{self.project_id}/rfqs",
            json={
                "name": "Bad",
                "deadline": future_deadline(),
                "materials": [{"material_id": self.steel, "quantity": 1}],
                "suppliers": [9999],
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "supplier_not_found")
        self.assertEqual(self.ws.query("SELECT id FROM rfqs"), [])

    def test_create_rejects_past_deadline(self) -> None:
        response = self.ws.buyer.post(
            f"/api/projects/{self.project_id}/rfqs",
            json={
                "name": "Late",
                "deadline": "2001-01-01",
                "materials": [{"material_id": self.steel, "quantity": 1}],
                "suppliers": [self.ws.supplier_a_id],
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "deadline_in_past")

    def test_draft_is_invisible_to_invited_suppliers(self) -> None:
        rfq_id = self._create()
        self.assertEqual(self.ws.supplier_a.get(f"/api/rfqs/{rfq_id}").status_code, 404)
        listing = self.ws.supplier_a.get("/api/supplier/rfqs").get_json()
        self.assertEqual(listing["items"], [])

    def test_distribute_opens_rfq_and_notifies_supplier_users(self) -> None:
        rfq_id = self._create(name="Level 3 steel")

        response = self.ws.buyer.post(f"/api/rfqs/{rfq_id}/distribute")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["status"], "open")
        self.assertTrue(payload["notified_at"])
        self.assertEqual({row["status"] for row in payload["suppliers"]}, {"pending"})

        notifications = self.ws.supplier_a.get("/api/notifications").get_json()
        self.assertEqual(len(notifications["items"]), 1)
        self.assertEqual(notifications["items"][0]["type"], "rfq_invite")
        self.assertEqual(notifications["items"][0]["reference_id"], rfq_id)
        self.assertEqual(
            notifications["items"][0]["message"],
            f"You have been invited to quote on RFQ #{rfq_id}: Level 3 steel",
        )
        self.assertEqual(self.ws.buyer.get("/api/notifications").get_json()["items"], [])

        supplier_view = self.ws.supplier_b.get(f"/api/rfqs/{rfq_id}").get_json()
        self.assertEqual(supplier_view["view"], "supplier")
        self.assertTrue(supplier_view["can_submit_quote"])
        self.assertNotIn("suppliers", supplier_view)

    def test_distribute_twice_is_an_invalid_transition(self) -> None:
        rfq_id = self._create()
        self.assertEqual(self.ws.buyer.post(f"/api/rfqs/{rfq_id}/distribute").status_code, 200)

        response = self.ws.buyer.post(f"/api/rfqs/{rfq_id}/distribute")
        self.assertEqual(response.status_code, 409)
        payload = response.get_json()
        self.assertEqual(payload["error"], "invalid_transition")
        self.assertEqual(payload["current_status"], "open")
        self.assertEqual(payload["message"], "Only draft RFQs can be distributed")
        self.assertEqual(len(self.ws.supplier_a.get("/api/notifications").get_json()["items"]), 1)

    def test_distribute_without_suppliers_is_refused(self) -> None:
        rfq_id = self._create()
        self.ws.query("DELETE FROM rfq_suppliers WHERE rfq_id = ?", (rfq_id,))

        response = self.ws.buyer.post(f"/api/rfqs/{rfq_id}/distribute")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "rfq_distribution_incomplete")
        self.assertEqual(self.ws.query("SELECT status FROM rfqs WHERE id = ?", (rfq_id,))[0]["status"], "draft")

    def test_edit_and_delete_only_while_draft(self) -> None:
        rfq_id = self._create()
        update = self.ws.buyer.patch(
            f"/api/rfqs/{rfq_id}",
            json={
                "name": "Renamed",
                "deadline": future_deadline(10),
                "materials": [{"material_id": self.steel, "quantity": 3}],
                "suppliers": [self.ws.supplier_a_id],
            },
        )
        self.assertEqual(update.status_code, 200)
        self.assertEqual(update.get_json()["rfq"]["name"], "Renamed")
        self.assertEqual(len(update.get_json()["materials"]), 1)
        self.assertEqual(len(update.get_json()["suppliers"]), 1)

        self.ws.buyer.post(f"/api/rfqs/{rfq_id}/distribute")
        blocked_edit = self.ws.buyer.patch(f"/api/rfqs/{rfq_id}", json={"name": "Again"})
        self.assertEqual(blocked_edit.status_code, 409)
        self.assertEqual(blocked_edit.get_json()["message"], "Only draft RFQs can be edited")
        blocked_delete = self.ws.buyer.delete(f"/api/rfqs/{rfq_id}")
        self.assertEqual(blocked_delete.status_code, 409)

        draft_id = self._create(name="Throwaway")
        deleted = self.ws.buyer.delete(f"/api/rfqs/{draft_id}")
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.ws.buyer.get(f"/api/rfqs/{draft_id}").status_code, 404)
        self.assertEqual(self.ws.query("SELECT * FROM rfq_materials WHERE rfq_id = ?", (draft_id,)), [])

    def test_close_only_from_open(self) -> None:
        rfq_id = self._create()
        self.assertEqual(self.ws.buyer.post(f"/api/rfqs/{rfq_id}/close").status_code, 409)

        self.ws.buyer.post(f"/api/rfqs/{rfq_id}/distribute")
        closed = self.ws.buyer.post(f"/api/rfqs/{rfq_id}/close")
        self.assertEqual(closed.status_code, 200)
        self.assertEqual(closed.get_json()["status"], "closed")

        again = self.ws.buyer.post(f"/api/rfqs/{rfq_id}/close")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.get_json()["message"], "Only open RFQs can be closed")

        history = self.ws.buyer.get(f"/api/rfqs/{rfq_id}").get_json()["history"]
        self.assertEqual([event["to_status"] for event in reversed(history)], ["draft", "open", "closed"])

    def test_supplier_cannot_manage_rfqs(self) -> None:
        rfq_id = self._create()
        response = self.ws.supplier_a.post(f"/api/rfqs/{rfq_id}/distribute")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "permission_denied")

    def test_suppliers_status_tracks_responses(self) -> None:
        setup = self.ws.open_rfq(materials={self.steel: 10})
        rfq_id = setup["rfq_id"]
        self.ws.submit_quote(self.ws.supplier_a, rfq_id, {self.steel: 50}, {self.steel: 10})

        payload = self.ws.buyer.get(f"/api/rfqs/{rfq_id}/suppliers-status").get_json()
        self.assertEqual(payload["counts"]["submitted"], 1)
        self.assertEqual(payload["counts"]["pending"], 1)
        self.assertEqual(payload["total_suppliers"], 2)
        self.assertEqual(payload["response_rate"], 50)

    def test_project_listing_filters_and_counts(self) -> None:
        self._create(name="Alpha lot")
        open_id = self._create(name="Beta lot")
        self.ws.buyer.post(f"/api/rfqs/{open_id}/distribute")

        payload = self.ws.buyer.get(f"/api/projects/{self.project_id}/rfqs?status=open").get_json()
        self.assertEqual([item["id"] for item in payload["items"]], [open_id])
        self.assertEqual(payload["status_counts"]["draft"], 1)
        self.assertEqual(payload["status_counts"]["open"], 1)
        self.assertGreaterEqual(payload["items"][0]["days_until_deadline"], 6)

        searched = self.ws.buyer.get(f"/api/projects/{self.project_id}/rfqs?search=alpha").get_json()
        self.assertEqual([item["name"] for item in searched["items"]], ["Alpha lot"])


class RfqCreateRollbackTest(unittest.TestCase):
    def setUp(self) -> None:
        self.ws = ProcurementWorkspace(prefix="rfq_rollback", PROPAGATE_EXCEPTIONS=False)
        self.project_id = self.ws.create_project()
        self.steel = self.ws.create_material(name="Steel beam")

    def tearDown(self) -> None:
        self.ws.close()

    def _post(self, materials: list):
        return self.ws.buyer.post(
            f"/api/projects/{self.project_id}/rfqs",
            json={
                "name": "Tower steel",
                "deadline": future_deadline(),
                "materials": materials,
                "suppliers": [self.ws.supplier_a_id],
            },
        )

    def test_failure_after_header_insert_leaves_nothing_behind(self) -> None:
        with patch.object(RfqRepository, "replace_suppliers", side_effect=RuntimeError("disk full")):
            response = self._post([{"material_id": self.steel, "quantity": 5}])
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json()["error"], "unexpected_error")

        for table in ("rfqs", "rfq_materials", "rfq_suppliers"):
            self.assertEqual(self.ws.query(f"SELECT * FROM {table}"), [], table)
        self.assertEqual(self.ws.query("SELECT id FROM status_events WHERE entity = 'rfq'"), [])

        self.assertEqual(self._post([{"material_id": self.steel, "quantity": 5}]).status_code, 201)

    def test_out_of_range_numbers_are_field_errors(self) -> None:
        for material_id in (2**63, 10**400):
            response = self._post([{"material_id": material_id, "quantity": 1}])
            self.assertEqual(response.status_code, 400, material_id)
            self.assertEqual(response.get_json()["field"], "materials.material_id")

        response = self._post([{"material_id": self.steel, "quantity": 10**400}])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["field"], "materials.quantity")
        self.assertEqual(self.ws.query("SELECT id FROM rfqs"), [])


if __name__ == "__main__":
    unittest.main()
