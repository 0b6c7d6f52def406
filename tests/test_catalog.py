import unittest

from tests.helpers.workspace import ProcurementWorkspace


class MaterialCatalogTest(unittest.TestCase):
    def setUp(self) -> None:
        self.ws = ProcurementWorkspace(prefix="catalog")

    def tearDown(self) -> None:
        self.ws.close()

    def test_create_search_and_update(self) -> None:
        category = self.ws.buyer.post("/api/categories", json={"name": "Structural"}).get_json()["category"]
        created = self.ws.buyer.post(
            "/api/materials",
            json={"name": "H-beam 200", "sku": "HB-200", "unit": "m", "category_id": category["id"]},
        )
        self.assertEqual(created.status_code, 201)
        material = created.get_json()["material"]
        self.assertEqual(material["category_id"], category["id"])
        self.ws.create_material(name="Anchor bolt")

        found = self.ws.buyer.get("/api/materials?search=beam").get_json()
        self.assertEqual([item["name"] for item in found["items"]], ["H-beam 200"])
        by_category = self.ws.buyer.get(f"/api/materials?category_id={category['id']}").get_json()
        self.assertEqual(len(by_category["items"]), 1)

        updated = self.ws.buyer.patch(f"/api/materials/{material['id']}", json={"unit": "ea"})
        self.assertEqual(updated.get_json()["material"]["unit"], "ea")
        self.assertEqual(updated.get_json()["material"]["name"], "H-beam 200")

    def test_name_is_required(self) -> None:
        response = self.ws.buyer.post("/api/materials", json={"name": "  "})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["field"], "name")

    def test_unknown_category_is_rejected(self) -> None:
        response = self.ws.buyer.post("/api/materials", json={"name": "Bolt", "category_id": 999})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["field"], "category_id")

    def test_material_in_active_rfq_cannot_be_deleted(self) -> None:
        setup = self.ws.open_rfq()
        material_id = setup["material_ids"][0]

        response = self.ws.buyer.delete(f"/api/materials/{material_id}")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "material_in_use")

        self.ws.buyer.post(f"/api/rfqs/{setup['rfq_id']}/close")
        referenced = self.ws.buyer.delete(f"/api/materials/{material_id}")
        self.assertEqual(referenced.status_code, 409)
        self.assertEqual(referenced.get_json()["error"], "material_referenced")

        usage = self.ws.buyer.get(f"/api/materials/{material_id}").get_json()["rfqs"]
        self.assertEqual([row["rfq_id"] for row in usage], [setup["rfq_id"]])

    def test_unused_material_is_deleted(self) -> None:
        material_id = self.ws.create_material(name="Spare")
        response = self.ws.buyer.delete(f"/api/materials/{material_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.ws.buyer.get(f"/api/materials/{material_id}").status_code, 404)

    def test_supplier_role_cannot_edit_catalog(self) -> None:
        response = self.ws.supplier_a.post("/api/materials", json={"name": "Sneaky"})
        self.assertEqual(response.status_code, 403)


class CategoryTest(unittest.TestCase):
    def setUp(self) -> None:
        self.ws = ProcurementWorkspace(prefix="categories")

    def tearDown(self) -> None:
        self.ws.close()

    def test_names_are_unique_per_company(self) -> None:
        self.assertEqual(self.ws.buyer.post("/api/categories", json={"name": "Finishes"}).status_code, 201)
        duplicate = self.ws.buyer.post("/api/categories", json={"name": "Finishes"})
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.get_json()["error"], "category_name_taken")

        rival_id = self.ws.create_company("Rival Homes", "client")
        self.ws.create_user(rival_id, "Buyer", "buyer@rival.example")
        rival = self.ws.login("buyer@rival.example")
        self.assertEqual(rival.post("/api/categories", json={"name": "Finishes"}).status_code, 201)

    def test_category_with_materials_cannot_be_deleted(self) -> None:
        category_id = self.ws.buyer.post("/api/categories", json={"name": "Paint"}).get_json()["category"]["id"]
        self.ws.buyer.post("/api/materials", json={"name": "Primer", "category_id": category_id})

        blocked = self.ws.buyer.delete(f"/api/categories/{category_id}")
        self.assertEqual(blocked.status_code, 409)
        self.assertEqual(blocked.get_json()["error"], "category_has_materials")

        renamed = self.ws.buyer.patch(f"/api/categories/{category_id}", json={"name": "Coatings"})
        self.assertEqual(renamed.get_json()["category"]["name"], "Coatings")

        empty_id = self.ws.buyer.post("/api/categories", json={"name": "Empty"}).get_json()["category"]["id"]
        self.assertEqual(self.ws.buyer.delete(f"/api/categories/{empty_id}").status_code, 200)
        names = [item["name"] for item in self.ws.buyer.get("/api/categories").get_json()["items"]]
        self.assertEqual(names, ["Coatings"])


class ProjectTest(unittest.TestCase):
    def setUp(self) -> None:
        self.ws = ProcurementWorkspace(prefix="projects")

    def tearDown(self) -> None:
        self.ws.close()

    def test_project_detail_lists_rfqs_and_counts(self) -> None:
        setup = self.ws.open_rfq()
        detail = self.ws.buyer.get(f"/api/projects/{setup['project_id']}").get_json()
        self.assertEqual([rfq["id"] for rfq in detail["rfqs"]], [setup["rfq_id"]])
        self.assertEqual(detail["rfq_counts"]["open"], 1)
        self.assertEqual(detail["purchase_orders"], [])

    def test_project_with_distributed_rfqs_cannot_be_deleted(self) -> None:
        setup = self.ws.open_rfq()
        response = self.ws.buyer.delete(f"/api/projects/{setup['project_id']}")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "project_has_rfqs")

    def test_project_with_only_drafts_is_deleted(self) -> None:
        project_id = self.ws.create_project(name="Scratch")
        material_id = self.ws.create_material()
        rfq_id = self.ws.create_rfq(project_id, {material_id: 1}, [self.ws.supplier_a_id])

        response = self.ws.buyer.delete(f"/api/projects/{project_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.ws.query("SELECT id FROM rfqs WHERE id = ?", (rfq_id,)), [])

    def test_rename(self) -> None:
        project_id = self.ws.create_project(name="Old")
        response = self.ws.buyer.patch(f"/api/projects/{project_id}", json={"name": "New", "description": "Phase 2"})
        self.assertEqual(response.get_json()["project"]["name"], "New")
        self.assertEqual(response.get_json()["project"]["description"], "Phase 2")


if __name__ == "__main__":
    unittest.main()
