import unittest

from flowbuilder.seed import DEMO_PASSWORD
from tests.helpers.workspace import ProcurementWorkspace


class SeedDemoCliTest(unittest.TestCase):
    def setUp(self) -> None:
        self.ws = ProcurementWorkspace(prefix="seed_cli")
        self.runner = self.ws.app.test_cli_runner()

    def tearDown(self) -> None:
        self.ws.close()

    def test_seed_demo_loads_a_usable_dataset(self) -> None:
        result = self.runner.invoke(args=["seed-demo"])
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertIn("admin@flowbuilder.example", result.output)

        client = self.ws.login("buyer@flowbuilder.example", DEMO_PASSWORD)
        projects = client.get("/api/projects").get_json()["items"]
        self.assertEqual([project["name"] for project in projects], ["Riverside Warehouse"])
        self.assertEqual(len(client.get("/api/materials").get_json()["items"]), 3)
        self.assertEqual(client.get("/api/company").get_json()["stats"]["partner_suppliers"], 2)

        self.ws.login("steel@northline.example", DEMO_PASSWORD)

    def test_second_run_is_refused(self) -> None:
        self.assertEqual(self.runner.invoke(args=["seed-demo"]).exit_code, 0)
        again = self.runner.invoke(args=["seed-demo"])
        self.assertNotEqual(again.exit_code, 0)
        self.assertIn("already present", again.output)


if __name__ == "__main__":
    unittest.main()
