import asyncio
import time

import httpx

from simem.extractor.fetcher import NO_VALID_DATA, Fetcher
from tests.conftest import envelope, make_records

URL = "https://simem.test/api/PublicData?startDate=2024-01-01"


def fetcher_for(handler, **kwargs) -> Fetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_delay", 0)
    return Fetcher(client=client, **kwargs)


def test_fetch_once_returns_records():
    records = make_records("2024-01-01", 2)
    fetcher = fetcher_for(lambda request: httpx.Response(200, json=envelope(records)))

    result = asyncio.run(fetcher.fetch_once(URL))

    assert result.success is True
    assert result.records == records
    assert result.url == URL


def test_empty_record_list_is_success():
    fetcher = fetcher_for(lambda request: httpx.Response(200, json=envelope([])))

    result = asyncio.run(fetcher.fetch_once(URL))

    assert result.success is True
    assert result.records == []


def test_http_error_status_is_failure():
    fetcher = fetcher_for(lambda request: httpx.Response(503))

    result = asyncio.run(fetcher.fetch_once(URL))

    assert result.success is False
    assert "503" in result.error


def test_envelope_violations_are_failures():
    bodies = [
        envelope(make_records("2024-01-01", 1), success=False),
        envelope(None),
        {"success": True, "result": None},
        {"success": True},
        {"success": True, "result": {"records": "nope"}},
        {"success": True, "result": {"records": [1, 2]}},
        [1, 2, 3],
    ]
    for body in bodies:
        fetcher = fetcher_for(lambda request, body=body: httpx.Response(200, json=body))
        result = asyncio.run(fetcher.fetch_once(URL))
        assert result.success is False, body
        assert result.error == NO_VALID_DATA


def test_undecodable_body_is_failure():
    fetcher = fetcher_for(lambda request: httpx.Response(200, text="<html>rate limited</html>"))

    result = asyncio.run(fetcher.fetch_once(URL))

    assert result.success is False
    assert result.error == NO_VALID_DATA


def test_transport_error_is_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = asyncio.run(fetcher_for(handler).fetch_once(URL))

    assert result.success is False
    assert "connection refused" in result.error


def test_retry_recovers_after_transient_failures():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(500)
        return httpx.Response(200, json=envelope(make_records("2024-01-01", 1)))

    result = asyncio.run(fetcher_for(handler, max_retries=3).fetch_with_retry(URL))

    assert result.success is True
    assert len(calls) == 3


def test_retry_budget_exhausted_returns_last_failure():
    calls = []

    def handler(request):
        calls.append(request)
        status = 500 if len(calls) < 3 else 502
        return httpx.Response(status)

    result = asyncio.run(fetcher_for(handler, max_retries=2).fetch_with_retry(URL))

    assert result.success is False
    assert "502" in result.error
    assert len(calls) == 3


def test_zero_retries_means_single_attempt():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    fetcher = fetcher_for(handler, max_retries=3)
    result = asyncio.run(fetcher.fetch_with_retry(URL, max_retries=0))

    assert result.success is False
    assert len(calls) == 1


def test_backoff_grows_linearly_with_attempt():
    fetcher = fetcher_for(lambda request: httpx.Response(500), max_retries=2, retry_delay=0.05)

    started = time.monotonic()
    asyncio.run(fetcher.fetch_with_retry(URL))
    elapsed = time.monotonic() - started

    # waits of 0.05 then 0.10
    assert elapsed >= 0.14


def test_close_keeps_injected_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    fetcher = Fetcher(client=client)

    asyncio.run(fetcher.close())

    assert client.is_closed is False
