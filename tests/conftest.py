import logging
from collections import Counter
from typing import Any, Optional

import httpx
import pytest

from simem.extractor.access_paths import AccessPathStrategy
from simem.extractor.fetcher import Fetcher
from simem.extractor.orchestrator import ExtractionOrchestrator
from simem.utils.cache_store import CacheStore

API_BASE = "https://simem.test/api/PublicData"
RELAY_HOST = "relay.test"
TEMPLATES = ["{url}", f"https://{RELAY_HOST}/raw?url={{encoded_url}}"]


def make_records(day: str, count: int) -> list[dict[str, Any]]:
    return [
        {
            "FechaHora": f"{day}T{hour:02d}:00:00",
            "CodigoVariable": "PB_Nal",
            "Valor": 100.0 + hour,
        }
        for hour in range(count)
    ]


def envelope(records: Optional[list] = None, success: bool = True) -> dict:
    return {"success": success, "result": {"records": records}}


class FakeUpstream:
    """MockTransport handler serving SIMEM envelopes, direct or through the relay."""

    def __init__(self) -> None:
        self.records: dict[str, list] = {}
        self.failing_days: set[str] = set()
        self.failing_hosts: set[str] = set()
        self.calls: Counter = Counter()
        self.hosts: Counter = Counter()

    @staticmethod
    def day_of(request: httpx.Request) -> Optional[str]:
        url = request.url
        if "url" in url.params:
            url = httpx.URL(url.params["url"])
        return url.params.get("startDate")

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def __call__(self, request: httpx.Request) -> httpx.Response:
        day = self.day_of(request)
        self.calls[day] += 1
        self.hosts[request.url.host] += 1

        if request.url.host in self.failing_hosts or day in self.failing_days:
            return httpx.Response(503)
        return httpx.Response(200, json=envelope(self.records.get(day, [])))


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def client(upstream: FakeUpstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
def store(tmp_path) -> CacheStore:
    return CacheStore(str(tmp_path / "cache" / "simem.db"))


@pytest.fixture
def fetcher(client: httpx.AsyncClient) -> Fetcher:
    return Fetcher(client=client, max_retries=1, retry_delay=0)


@pytest.fixture
def access_paths() -> AccessPathStrategy:
    return AccessPathStrategy(templates=TEMPLATES, api_base=API_BASE, path_delay=0)


@pytest.fixture
def orchestrator(store, fetcher, access_paths) -> ExtractionOrchestrator:
    return ExtractionOrchestrator(
        cache=store,
        fetcher=fetcher,
        access_paths=access_paths,
        dataset_id="EC6945",
        large_range_days=31,
        day_delay=0,
    )


@pytest.fixture
def broken_store(tmp_path) -> CacheStore:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    return CacheStore(str(blocker / "cache.db"))
