import unittest

from flowbuilder.infrastructure.repositories import (
    CompanyScopeRequiredError,
    MaterialRepository,
    NotificationRepository,
    ProjectRepository,
    PurchaseOrderRepository,
    QuoteRepository,
    RfqRepository,
)
from tests.helpers.workspace import ProcurementWorkspace


class RepositoryScopeTest(unittest.TestCase):
    def test_repositories_require_company_scope(self) -> None:
        for repository_cls in (
            MaterialRepository,
            ProjectRepository,
            PurchaseOrderRepository,
            QuoteRepository,
            RfqRepository,
        ):
            for bad_scope in (None, 0, -4, "abc"):
                with self.assertRaises(CompanyScopeRequiredError):
                    repository_cls(company_id=bad_scope)

    def test_notifications_require_user_scope(self) -> None:
        with self.assertRaises(CompanyScopeRequiredError):
            NotificationRepository(company_id=1)
        self.assertEqual(NotificationRepository(company_id=1, user_id="3").user_id, 3)


class CrossTenantAccessTest(unittest.TestCase):
    def setUp(self) -> None:
        self.ws = ProcurementWorkspace(prefix="tenant_isolation")
        self.rival_company_id = self.ws.create_company("Rival Homes", "client")
        self.ws.create_user(self.rival_company_id, "Admin", "admin@rival.example")
        self.rival = self.ws.login("admin@rival.example")
        self.result = self.ws.awarded_purchase_order()

    def tearDown(self) -> None:
        self.ws.close()

    def test_foreign_entities_are_not_found(self) -> None:
        paths = (
            f"/api/projects/{self.result['project_id']}",
            f"/api/projects/{self.result['project_id']}/rfqs",
            f"/api/rfqs/{self.result['rfq_id']}",
            f"/api/rfqs/{self.result['rfq_id']}/compare",
            f"/api/quotes/{self.result['quote_a_id']}",
            f"/api/purchase-orders/{self.result['purchase_order_id']}",
            f"/api/materials/{self.result['material_ids'][0]}",
        )
        for path in paths:
            response = self.rival.get(path)
            self.assertEqual(response.status_code, 404, path)
            self.assertTrue(response.get_json()["error"].endswith("_not_found"), path)

    def test_foreign_writes_change_nothing(self) -> None:
        rfq_id = self.result["rfq_id"]
        self.assertEqual(self.rival.post(f"/api/rfqs/{rfq_id}/close").status_code, 404)
        self.assertEqual(self.rival.delete(f"/api/projects/{self.result['project_id']}").status_code, 404)
        self.assertEqual(
            self.rival.post(f"/api/purchase-orders/{self.result['purchase_order_id']}/cancel").status_code,
            404,
        )
        self.assertEqual(self.ws.query("SELECT status FROM rfqs WHERE id = ?", (rfq_id,))[0]["status"], "open")
        self.assertEqual(
            self.ws.query("SELECT status FROM pos WHERE id = ?", (self.result["purchase_order_id"],))[0]["status"],
            "ordered",
        )

    def test_listings_are_scoped(self) -> None:
        self.assertEqual(self.rival.get("/api/projects").get_json()["items"], [])
        self.assertEqual(self.rival.get("/api/materials").get_json()["items"], [])
        self.assertEqual(self.rival.get("/api/purchase-orders").get_json()["items"], [])
        dashboard = self.rival.get("/api/dashboard").get_json()
        self.assertEqual(dashboard["counts"]["rfqs"], 0)
        self.assertEqual(dashboard["recent_purchase_orders"], [])

    def test_rival_cannot_reference_foreign_materials(self) -> None:
        project_id = self.ws.create_project(client=self.rival, name="Rival site")
        response = self.rival.post(
            f"/api/projects/{project_id}/rfqs",
            json={
                "name": "Borrowed catalog",
                "deadline": "2099-01-01",
                "materials": [{"material_id": self.result["material_ids"][0], "quantity": 1}],
                "suppliers": [self.ws.supplier_a_id],
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "material_not_in_catalog")

    def test_rival_partner_cannot_delete_or_edit_a_shared_supplier(self) -> None:
        supplier_id = self.ws.supplier_b_id
        self.assertEqual(self.rival.post(f"/api/suppliers/{supplier_id}/partner").status_code, 201)

        deleted = self.rival.delete(f"/api/suppliers/{supplier_id}")
        self.assertEqual(deleted.status_code, 403)
        self.assertEqual(deleted.get_json()["error"], "supplier_not_managed")
        edited = self.rival.patch(f"/api/suppliers/{supplier_id}", json={"name": "Hijacked"})
        self.assertEqual(edited.status_code, 403)
        self.assertEqual(edited.get_json()["error"], "supplier_not_managed")

        self.assertEqual(
            self.ws.query("SELECT name FROM companies WHERE id = ?", (supplier_id,))[0]["name"],
            "Bravo Concrete",
        )
        quotes = self.ws.query("SELECT id FROM quotes WHERE company_id = ?", (supplier_id,))
        self.assertEqual([row["id"] for row in quotes], [self.result["quote_b_id"]])
        self.assertEqual(len(self.ws.query("SELECT id FROM users WHERE company_id = ?", (supplier_id,))), 1)

        # Leaving the rival's own directory stays possible.
        self.assertEqual(self.rival.delete(f"/api/suppliers/{supplier_id}/partner").status_code, 200)
        partnerships = self.ws.query(
            "SELECT source_company_id FROM company_partnerships WHERE target_company_id = ?", (supplier_id,)
        )
        self.assertEqual([row["source_company_id"] for row in partnerships], [self.ws.buyer_company_id])


if __name__ == "__main__":
    unittest.main()
