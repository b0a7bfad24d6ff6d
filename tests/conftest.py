import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from backend.job_driver import JobDriver
from backend.provider_client import ProviderClient


class FakeRedis:
    """In-memory stand-in for the few redis.asyncio commands the store uses."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.expiry: Dict[str, Optional[int]] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None, nx: bool = False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, key: str) -> int:
        self.expiry.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0

    async def aclose(self) -> None:
        pass


class FakeProvider:
    """
    Serves a scripted sequence of prediction bodies for GET /predictions/{id}
    and records every request it sees.
    """

    def __init__(self, statuses: List[Dict[str, Any]] = (), create: Optional[Dict[str, Any]] = None,
                 create_status_code: int = 201):
        self.statuses = list(statuses)
        self.create = create or {"id": "pred-1", "status": "starting"}
        self.create_status_code = create_status_code
        self.requests: List[httpx.Request] = []

    @property
    def polls(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "GET"]

    @property
    def creates(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            return httpx.Response(self.create_status_code, json=self.create)
        if not self.statuses:
            return httpx.Response(200, json={"id": "pred-1", "status": "processing"})
        body = self.statuses.pop(0)
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json={"id": "pred-1", **body})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def last_payload(self) -> Dict[str, Any]:
        return json.loads(self.creates[-1].content)


async def no_sleep(seconds: float) -> None:
    return None


def make_driver(provider: FakeProvider, token: Optional[str] = "test-token", **client_kwargs) -> JobDriver:
    client = ProviderClient(
        api_token=token,
        base_url="https://provider.test/v1",
        model="acme/thumbs",
        model_version=client_kwargs.pop("model_version", None),
        transport=provider.transport(),
        **client_kwargs,
    )
    return JobDriver(client, poll_interval=2.0, max_attempts=60, sleep=no_sleep)


@pytest.fixture
def fake_redis():
    return FakeRedis()
