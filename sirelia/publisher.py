import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from .exceptions import RelayError
from .models import DEFAULT_THEME

logger = logging.getLogger(__name__)

class RelayPublisher:
    """Posts diagrams to the relay's ingestion endpoint."""

    def __init__(self, ingest_url: str, timeout: float = 5.0, session: Optional[aiohttp.ClientSession] = None):
        self.ingest_url = ingest_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def publish(self, code: str, theme: str = DEFAULT_THEME) -> Dict[str, Any]:
        """Send one diagram to the relay.

        Returns:
            The relay's JSON acknowledgement

        Raises:
            RelayError: On network errors, timeouts, or a non-2xx response
        """
        session = self._get_session()
        try:
            async with session.post(
                self.ingest_url,
                json={"code": code, "theme": theme},
                timeout=self.timeout
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise RelayError(f"HTTP error! status: {response.status} {body.strip()}")
                result = await response.json()
        except asyncio.TimeoutError:
            raise RelayError(f"Timed out after {self.timeout.total}s posting to {self.ingest_url}")
        except aiohttp.ClientError as e:
            raise RelayError(f"Failed to reach bridge server at {self.ingest_url}: {e}")
        except ValueError as e:
            raise RelayError(f"Invalid response from bridge server at {self.ingest_url}: {e}")

        if not isinstance(result, dict):
            raise RelayError(f"Invalid response from bridge server at {self.ingest_url}: {result!r}")

        logger.info(f"Sent to bridge: {result.get('message', result)}")
        return result

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
