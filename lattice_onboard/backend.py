"""Connectivity check against the Lattice backend.

Sends GET {backend_url}/health; any 2xx answer counts as healthy.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger("lattice-onboard")


@dataclass
class ConnectionResult:
    """Result of a backend health check."""
    healthy: bool
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def health_url(backend_url: str) -> str:
    return f"{backend_url.rstrip('/')}/health"


def test_connection(backend_url: str, timeout: float = 10.0) -> ConnectionResult:
    """Check that the backend answers its health endpoint.

    Args:
        backend_url: Backend base URL, e.g. "http://h:9000"
        timeout: Request timeout in seconds

    Returns:
        ConnectionResult; unreachable backends produce an error result,
        non-2xx answers a result with healthy=False
    """
    if not backend_url or not backend_url.strip():
        return ConnectionResult(healthy=False, error="Connection failed: backend URL is empty")

    url = health_url(backend_url.strip())
    logger.info(f"Testing connection to {url}")

    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.get(url)

    except httpx.ConnectError as e:
        return ConnectionResult(healthy=False, error=f"Connection failed: {e}")

    except httpx.TimeoutException:
        return ConnectionResult(healthy=False, error=f"Connection failed: timeout connecting to {url}")

    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
        return ConnectionResult(healthy=False, error=f"Connection failed: {e}")

    healthy = response.is_success
    if healthy:
        logger.info(f"Backend healthy ({response.status_code})")
    else:
        logger.warning(f"Backend answered {response.status_code} on {url}")
    return ConnectionResult(healthy=healthy, status_code=response.status_code)


# Keep pytest from collecting test_connection as a test when imported into test modules
test_connection.__test__ = False
