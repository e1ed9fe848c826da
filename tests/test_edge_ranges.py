"""Tests for the edge provider range source."""

import httpx
import pytest

from harborlist.trust.edge import CloudflareRangeSource
from harborlist.trust.errors import FetchFailed

IPV4_URL = "https://edge.test/ips-v4"
IPV6_URL = "https://edge.test/ips-v6"


def _source(v4: str, v6: str, status: int = 200) -> CloudflareRangeSource:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == IPV4_URL:
            return httpx.Response(status, text=v4)
        if str(request.url) == IPV6_URL:
            return httpx.Response(200, text=v6)
        return httpx.Response(404)

    return CloudflareRangeSource(
        ipv4_url=IPV4_URL,
        ipv6_url=IPV6_URL,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_fetch_parses_and_canonicalizes():
    source = _source(
        "173.245.48.0/20\n103.21.244.0/22\n173.245.48.0/20\n\n",
        "2400:cb00::/32\n2606:4700::/32\n",
    )
    ranges = await source.fetch()

    assert ranges.version == 0
    assert ranges.source == "cloudflare"
    assert ranges.ipv4_ranges == ["103.21.244.0/22", "173.245.48.0/20"]
    assert ranges.ipv6_ranges == ["2400:cb00::/32", "2606:4700::/32"]
    assert ranges.contains("173.245.48.10")
    assert not ranges.contains("10.0.0.1")


@pytest.mark.asyncio
async def test_non_200_is_fetch_failure():
    with pytest.raises(FetchFailed) as e:
        await _source("173.245.48.0/20", "2400:cb00::/32", status=503).fetch()
    assert "503" in str(e.value)


@pytest.mark.asyncio
async def test_invalid_cidr_is_fetch_failure():
    with pytest.raises(FetchFailed):
        await _source("<html>maintenance</html>", "2400:cb00::/32").fetch()


@pytest.mark.asyncio
async def test_host_bits_set_is_fetch_failure():
    with pytest.raises(FetchFailed):
        await _source("173.245.48.1/20", "").fetch()


@pytest.mark.asyncio
async def test_wrong_family_is_fetch_failure():
    with pytest.raises(FetchFailed):
        await _source("2400:cb00::/32", "").fetch()


@pytest.mark.asyncio
async def test_empty_lists_are_fetch_failure():
    with pytest.raises(FetchFailed) as e:
        await _source("", "\n").fetch()
    assert "no ranges" in str(e.value)


@pytest.mark.asyncio
async def test_network_error_is_fetch_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    source = CloudflareRangeSource(
        ipv4_url=IPV4_URL, ipv6_url=IPV6_URL, transport=httpx.MockTransport(handler)
    )
    with pytest.raises(FetchFailed):
        await source.fetch()
