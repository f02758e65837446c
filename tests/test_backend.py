import unittest
from unittest.mock import patch

import httpx

from lattice_onboard.backend import health_url, test_connection as check_connection

_RealClient = httpx.Client


def _client_factory(handler):
    def factory(**kwargs):
        return _RealClient(transport=httpx.MockTransport(handler), **kwargs)
    return factory


class TestConnection(unittest.TestCase):

    def _check(self, handler, url="http://backend.example.test:9000"):
        with patch("lattice_onboard.backend.httpx.Client", side_effect=_client_factory(handler)):
            return check_connection(url, timeout=2)

    def test_health_url(self):
        self.assertEqual(health_url("http://h:9000/"), "http://h:9000/health")
        self.assertEqual(health_url("http://h:9000"), "http://h:9000/health")

    def test_healthy_backend(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"status": "ok"})

        result = self._check(handler)

        self.assertTrue(result.ok)
        self.assertTrue(result.healthy)
        self.assertEqual(result.status_code, 200)
        self.assertEqual(seen, ["http://backend.example.test:9000/health"])

    def test_non_2xx_is_unhealthy_not_an_error(self):
        result = self._check(lambda request: httpx.Response(503))

        self.assertTrue(result.ok)
        self.assertFalse(result.healthy)
        self.assertEqual(result.status_code, 503)

    def test_unreachable_backend_is_an_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = self._check(handler, url="http://unreachable:1")

        self.assertFalse(result.ok)
        self.assertFalse(result.healthy)
        self.assertTrue(result.error.startswith("Connection failed"))

    def test_timeout_is_an_error(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        result = self._check(handler)

        self.assertFalse(result.ok)
        self.assertIn("timeout", result.error)

    def test_empty_url_is_an_error(self):
        result = check_connection("  ")

        self.assertFalse(result.ok)
        self.assertIsNone(result.status_code)


if __name__ == "__main__":
    unittest.main()
