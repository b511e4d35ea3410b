"""
HTTPS document fetcher adapter - Implements DocumentFetcher protocol.

Fetches an official's website so the domain can look for the verification
meta tag. Only https URLs are fetched, redirects are followed (and must stay
on https), and the body is capped so a hostile page cannot exhaust memory.
"""

import logging

import httpx

from src.domain.exceptions import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = "officeclaim-verifier/0.1"


class HttpxDocumentFetcher:
    """
    Implements DocumentFetcher protocol via httpx.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        max_bytes: int = 1024 * 1024,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Args:
            max_bytes: Largest body read before giving up
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.max_bytes = max_bytes
        self._transport = transport

    def fetch_document(self, url: str, timeout: float) -> bytes:
        if not url.lower().startswith("https://"):
            raise FetchError(f"Refusing to fetch non-https URL: {url}")

        try:
            with httpx.Client(
                timeout=timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT, "Accept": "text/html"},
                transport=self._transport,
            ) as client:
                with client.stream("GET", url) as response:
                    response.raise_for_status()
                    if response.url.scheme != "https":
                        raise FetchError(f"Redirected to non-https URL: {response.url}")
                    return self._read_capped(response)

        except httpx.TimeoutException as e:
            logger.warning("Website fetch timeout for %s", url)
            raise FetchError(f"Timed out fetching {url}") from e
        except httpx.HTTPStatusError as e:
            logger.warning("Website fetch HTTP error for %s: %s", url, e.response.status_code)
            raise FetchError(f"{url} returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.warning("Website fetch failed for %s: %s", url, e)
            raise FetchError(f"Could not reach {url}") from e

    def _read_capped(self, response: httpx.Response) -> bytes:
        body = bytearray()
        for chunk in response.iter_bytes():
            body.extend(chunk)
            if len(body) > self.max_bytes:
                raise FetchError(f"Response from {response.url} exceeds {self.max_bytes} bytes")
        return bytes(body)
