from __future__ import annotations

import asyncio

import httpx
import pytest

from assessor.errors import SourceUnreachable
from assessor.sources import (
    BROWSER_HEADERS,
    FetchTimeout,
    RetryPolicy,
    SourceFetcher,
    normalize_download_url,
)


def _fetcher(handler, *, timeout_seconds: float = 5.0) -> SourceFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceFetcher(
        client,
        policy=RetryPolicy(max_attempts=3, backoff_seconds=0),
        timeout_seconds=timeout_seconds,
    )


def test_drive_view_link_becomes_direct_download():
    url = "https://drive.google.com/file/d/1AbC-xyz/view?usp=sharing"
    assert normalize_download_url(url) == "https://drive.google.com/uc?export=download&id=1AbC-xyz"


def test_drive_open_link_with_id_becomes_direct_download():
    url = "https://drive.google.com/open?id=XYZ123"
    assert normalize_download_url(url) == "https://drive.google.com/uc?export=download&id=XYZ123"


def test_onedrive_share_link_gets_download_flag():
    assert normalize_download_url("https://1drv.ms/b/s!AbCdEf") == "https://1drv.ms/b/s!AbCdEf?download=1"
    assert (
        normalize_download_url("https://contoso.sharepoint.com/:b:/g/doc?e=abc")
        == "https://contoso.sharepoint.com/:b:/g/doc?e=abc&download=1"
    )


def test_onedrive_link_with_download_flag_is_unchanged():
    url = "https://onedrive.live.com/redir?resid=1&download=0"
    assert normalize_download_url(url) == url


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/manual.pdf",
        "not a url at all",
        "http://[::1",
        "",
    ],
)
def test_other_and_malformed_urls_pass_through(url):
    assert normalize_download_url(url) == url


def test_retry_delay_grows_with_attempt_index():
    policy = RetryPolicy(backoff_seconds=0.5)
    assert [policy.delay(i) for i in (1, 2, 3)] == [0.5, 1.0, 1.5]


@pytest.mark.asyncio
async def test_server_errors_are_retried_until_success():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, content=b"%PDF-1.4 body")

    response = await _fetcher(handler).fetch("https://docs.example/manual.pdf")
    assert response.content == b"%PDF-1.4 body"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404)

    with pytest.raises(SourceUnreachable) as info:
        await _fetcher(handler).fetch("https://docs.example/missing.pdf")
    assert len(calls) == 1
    assert isinstance(info.value.cause, httpx.HTTPStatusError)
    assert "docs.example/missing.pdf" in info.value.message


@pytest.mark.asyncio
async def test_persistent_5xx_exhausts_three_attempts():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(SourceUnreachable) as info:
        await _fetcher(handler).fetch("https://docs.example/manual.pdf")
    assert len(calls) == 3
    assert info.value.cause.response.status_code == 500


@pytest.mark.asyncio
async def test_transport_timeouts_are_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(SourceUnreachable) as info:
        await _fetcher(handler).fetch("https://docs.example/manual.pdf")
    assert len(calls) == 3
    assert isinstance(info.value.cause, httpx.ReadTimeout)


@pytest.mark.asyncio
async def test_attempt_budget_aborts_slow_requests():
    calls = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(5)
        return httpx.Response(200)

    with pytest.raises(SourceUnreachable) as info:
        await _fetcher(handler, timeout_seconds=0.01).fetch("https://docs.example/manual.pdf")
    assert len(calls) == 3
    assert isinstance(info.value.cause, FetchTimeout)


@pytest.mark.asyncio
async def test_request_uses_normalized_url_and_browser_headers():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"ok")

    await _fetcher(handler).fetch("https://drive.google.com/file/d/FILE42/view")
    request = seen[0]
    assert str(request.url) == "https://drive.google.com/uc?export=download&id=FILE42"
    assert request.headers["user-agent"] == BROWSER_HEADERS["User-Agent"]


@pytest.mark.asyncio
async def test_policy_awaits_each_attempt():
    calls = []

    async def flaky() -> str:
        calls.append(1)
        if len(calls) < 2:
            raise FetchTimeout("slow")
        return "done"

    result = await RetryPolicy(max_attempts=3, backoff_seconds=0).run(flaky)
    assert result == "done"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_policy_reraises_non_retryable_error_after_one_call():
    calls = []

    async def broken() -> str:
        calls.append(1)
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await RetryPolicy(max_attempts=3, backoff_seconds=0).run(broken)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_default_client_timeout_matches_attempt_budget():
    fetcher = SourceFetcher(timeout_seconds=20.0)
    timeout = fetcher._client.timeout
    assert (timeout.connect, timeout.read, timeout.write, timeout.pool) == (20.0, 20.0, 20.0, 20.0)
    await fetcher.aclose()


@pytest.mark.asyncio
async def test_slow_response_within_budget_is_accepted():
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.2)
        return httpx.Response(200, content=b"late but fine")

    response = await _fetcher(handler, timeout_seconds=2.0).fetch("https://docs.example/manual.pdf")
    assert response.content == b"late but fine"
