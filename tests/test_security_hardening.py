import unittest

from flowbuilder.security import reset_rate_limiter_for_tests
from flowbuilder.ui_strings import error_message
from tests.helpers.workspace import ProcurementWorkspace


class SecurityHardeningTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_rate_limiter_for_tests()
        self.ws = ProcurementWorkspace(
            prefix="security_hardening",
            RATE_LIMIT_ENABLED=True,
            RATE_LIMIT_WINDOW_SECONDS=60,
            RATE_LIMIT_MAX_REQUESTS=300,
        )
        self.client = self.ws.app.test_client()

    def tearDown(self) -> None:
        self.ws.close()
        reset_rate_limiter_for_tests()

    def test_rate_limit_blocks_excessive_calls(self) -> None:
        self.ws.app.config["RATE_LIMIT_MAX_REQUESTS"] = 2

        first = self.client.get("/health")
        second = self.client.get("/health")
        third = self.client.get("/health")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(third.status_code, 429)
        payload = third.get_json() or {}
        self.assertEqual(payload.get("error"), "rate_limit_exceeded")
        self.assertEqual(payload.get("message"), error_message("rate_limit_exceeded"))
        self.assertGreaterEqual(int(payload.get("retry_after") or 0), 0)

    def test_rate_limit_is_per_route(self) -> None:
        self.ws.app.config["RATE_LIMIT_MAX_REQUESTS"] = 1
        self.assertEqual(self.client.get("/health").status_code, 200)
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)
        self.assertEqual(self.client.get("/health").status_code, 429)

    def test_security_headers_are_applied(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.headers.get("X-Content-Type-Options"), "nosniff")
        self.assertEqual(response.headers.get("X-Frame-Options"), "DENY")
        self.assertIn("frame-ancestors 'none'", response.headers.get("Content-Security-Policy", ""))
        self.assertTrue(response.headers.get("X-Request-Id"))

    def test_health_reports_backend(self) -> None:
        payload = self.client.get("/health").get_json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["db"], "sqlite")

    def test_passwords_are_hashed(self) -> None:
        rows = self.ws.query("SELECT password_hash FROM users WHERE email = ?", ("buyer@acme.example",))
        self.assertNotIn("correct-horse-9", rows[0]["password_hash"])

    def test_logout_ends_the_session(self) -> None:
        client = self.ws.login("buyer@acme.example")
        self.assertEqual(client.get("/api/auth/me").status_code, 200)
        self.assertEqual(client.post("/api/auth/logout").status_code, 200)
        self.assertEqual(client.get("/api/auth/me").status_code, 401)


if __name__ == "__main__":
    unittest.main()
