import asyncio
from datetime import date
from urllib.parse import quote

import httpx
import pytest

from simem.extractor.access_paths import EXHAUSTED_ERROR, AccessPathStrategy, ResourceRequest
from tests.conftest import API_BASE, RELAY_HOST, make_records

REQUEST = ResourceRequest(day=date(2024, 1, 5), dataset_id="EC6945")


def test_upstream_url_carries_day_and_dataset(access_paths):
    url = httpx.URL(access_paths.upstream_url(REQUEST))

    assert str(url).startswith(API_BASE)
    assert url.params["startDate"] == "2024-01-05"
    assert url.params["endDate"] == "2024-01-05"
    assert url.params["datasetId"] == "EC6945"


def test_paths_follow_template_order(access_paths):
    upstream = access_paths.upstream_url(REQUEST)

    paths = access_paths.paths(REQUEST)

    assert paths == [
        upstream,
        f"https://{RELAY_HOST}/raw?url={quote(upstream, safe='')}",
    ]


def test_default_templates_cover_relays():
    strategy = AccessPathStrategy()

    paths = strategy.paths(REQUEST)

    assert len(paths) >= 2
    assert all("2024-01-05" in p for p in paths)


def test_empty_template_list_rejected():
    with pytest.raises(ValueError):
        AccessPathStrategy(templates=[])


def test_first_successful_path_short_circuits(upstream, access_paths, fetcher):
    upstream.records["2024-01-05"] = make_records("2024-01-05", 2)

    result = asyncio.run(access_paths.fetch(REQUEST, fetcher))

    assert result.success is True
    assert len(result.records) == 2
    assert upstream.hosts[RELAY_HOST] == 0


def test_falls_back_to_next_path(upstream, access_paths, fetcher):
    upstream.records["2024-01-05"] = make_records("2024-01-05", 3)
    upstream.failing_hosts.add("simem.test")

    result = asyncio.run(access_paths.fetch(REQUEST, fetcher))

    assert result.success is True
    assert len(result.records) == 3
    assert upstream.hosts["simem.test"] == 2  # first attempt + one retry
    assert upstream.hosts[RELAY_HOST] == 1


def test_exhausted_paths_return_failure(upstream, access_paths, fetcher):
    upstream.failing_days.add("2024-01-05")

    result = asyncio.run(access_paths.fetch(REQUEST, fetcher))

    assert result.success is False
    assert result.records == []
    assert result.error.startswith(EXHAUSTED_ERROR)
    assert upstream.calls["2024-01-05"] == 4
