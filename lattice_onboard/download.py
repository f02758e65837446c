"""Fetch installer artifacts and the agent binary over HTTP."""

import logging
import os
from pathlib import Path

import httpx

from .errors import StepFailed

logger = logging.getLogger("lattice-onboard")

CHUNK_SIZE = 64 * 1024


class Downloader:
    """Streams a URL to a local file."""

    def __init__(self, timeout: float = 600.0):
        """Initialize downloader.

        Args:
            timeout: Overall request timeout in seconds
        """
        self.timeout = timeout

    def fetch(self, url: str, dest: Path, step: str = "downloading") -> Path:
        """Download url to dest.

        The body is written to a temporary sibling first and renamed into
        place, so an interrupted download never leaves a truncated file at
        dest.

        Args:
            url: Source URL (redirects are followed)
            dest: Destination file path
            step: Step name reported if the download fails

        Returns:
            dest

        Raises:
            StepFailed: on connection errors, non-2xx responses or write errors
        """
        dest = Path(dest)
        partial = dest.with_name(dest.name + ".part")
        logger.info(f"Downloading {url} -> {dest}")

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise StepFailed(
                            step,
                            f"Failed to download {url}: HTTP {response.status_code}",
                        )
                    with open(partial, "wb") as f:
                        for chunk in response.iter_bytes(CHUNK_SIZE):
                            f.write(chunk)
            os.replace(partial, dest)

        except httpx.TimeoutException:
            self._discard(partial)
            raise StepFailed(step, f"Timeout downloading {url}")

        except httpx.HTTPError as e:
            self._discard(partial)
            raise StepFailed(step, f"Failed to download {url}: {e}")

        except OSError as e:
            self._discard(partial)
            raise StepFailed(step, f"Failed to write {dest}: {e}")

        except StepFailed:
            self._discard(partial)
            raise

        logger.debug(f"Downloaded {dest} ({dest.stat().st_size} bytes)")
        return dest

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"Could not remove partial download {path}: {e}")
