"""Edge provider range source.

Fetches the provider's published IPv4 and IPv6 lists (one CIDR per line)
and returns them as an unversioned TrustedRangeSet. Versions are assigned
by the synchronizer on commit.
"""

import asyncio
import logging

import httpx

from harborlist.trust.errors import FetchFailed
from harborlist.trust.models import TrustedRangeSet, canonical_cidrs, utcnow

logger = logging.getLogger(__name__)


class CloudflareRangeSource:
    """Async client for the Cloudflare ips-v4 / ips-v6 endpoints."""

    def __init__(
        self,
        ipv4_url: str = "https://www.cloudflare.com/ips-v4",
        ipv6_url: str = "https://www.cloudflare.com/ips-v6",
        timeout: float = 30.0,
        source_name: str = "cloudflare",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the source.

        Args:
            ipv4_url: IPv4 list endpoint
            ipv6_url: IPv6 list endpoint
            timeout: Per-request timeout in seconds
            source_name: Recorded as TrustedRangeSet.source
            transport: Optional httpx transport (tests use MockTransport)
        """
        self._ipv4_url = ipv4_url
        self._ipv6_url = ipv6_url
        self._timeout = timeout
        self._source_name = source_name
        self._transport = transport

    async def fetch(self) -> TrustedRangeSet:
        """Fetch both lists concurrently.

        Raises:
            FetchFailed: on network error, non-200, bad CIDR or an empty result
        """
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                ipv4_text, ipv6_text = await asyncio.gather(
                    self._get(client, self._ipv4_url),
                    self._get(client, self._ipv6_url),
                )
            except httpx.HTTPError as e:
                raise FetchFailed(f"Edge range fetch failed: {e}") from e

        try:
            ipv4 = canonical_cidrs(ipv4_text.splitlines(), version=4)
            ipv6 = canonical_cidrs(ipv6_text.splitlines(), version=6)
        except ValueError as e:
            raise FetchFailed(f"Invalid range in edge list: {e}") from e

        if not ipv4 and not ipv6:
            raise FetchFailed("Edge provider returned no ranges")

        logger.info(
            "Fetched edge ranges source=%s ipv4=%s ipv6=%s",
            self._source_name,
            len(ipv4),
            len(ipv6),
        )
        return TrustedRangeSet(
            version=0,
            ipv4_ranges=ipv4,
            ipv6_ranges=ipv6,
            fetched_at=utcnow(),
            source=self._source_name,
        )

    async def _get(self, client: httpx.AsyncClient, url: str) -> str:
        response = await client.get(url)
        if response.status_code != 200:
            raise FetchFailed(f"Unexpected response {response.status_code} from {url}")
        return response.text
