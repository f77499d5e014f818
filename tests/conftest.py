"""Shared fakes: an in-memory storage gateway and a scripted HTTP server."""

import json
from collections import defaultdict

import httpx
import pytest

from mediaferry.config import TransferConfig
from mediaferry.models import MediaType, UploadRequest, UploadTask
from mediaferry.transfer_api import TransferApi

MiB = 1024 * 1024
UPLOAD_URL = "https://storage.test/upload/session-1"


class FakeStorage:
    """Storage gateway that keeps objects in a dict."""

    def __init__(self, available: bool = True, errors: list[Exception] | None = None, steps: int = 4):
        self._available = available
        self.errors = list(errors or [])
        self.steps = steps
        self.objects: dict[str, bytes] = {}
        self.upload_calls = 0
        self.probe_calls = 0

    def available(self) -> bool:
        self.probe_calls += 1
        return self._available

    async def upload(self, path, payload, content_type, on_progress=None):
        self.upload_calls += 1
        if self.errors:
            raise self.errors.pop(0)
        step = max(len(payload) // self.steps, 1)
        for position in range(step, len(payload) + step, step):
            if on_progress is not None:
                on_progress(min(position, len(payload)))
        self.objects[path] = payload

    async def address_for(self, path):
        return f"https://cdn.test/{path}"


class FakeServer:
    """
    MockTransport handler for the application server and the presigned URL.

    Responses can be scripted per "METHOD /path"; the last scripted item
    keeps being returned once the others are used up. Unscripted routes get a
    well-formed success reply.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.scripted: dict[str, list] = defaultdict(list)

    def script(self, method: str, path: str, *items) -> None:
        self.scripted[f"{method} {path}"].extend(items)

    def calls(self, method: str, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(suffix)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.scripted.get(f"{request.method} {request.url.path}")
        if queue:
            item = queue.pop(0) if len(queue) > 1 else queue[0]
            if isinstance(item, Exception):
                raise item
            if callable(item):
                return item(request)
            return item
        return self.default(request)

    def default(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "PUT":
            first_last, total = request.headers["Content-Range"].removeprefix("bytes ").split("/")
            last = int(first_last.split("-")[1])
            return httpx.Response(200 if last == int(total) - 1 else 308)

        job = path.split("/")[3]
        if path.endswith("/upload"):
            body = json.loads(request.content)
            return httpx.Response(200, json={"destinationPath": f"jobs/{job}/{body['mediaType']}/{body['fileName']}"})
        if path.endswith("/generate-signed-url"):
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={"uploadUrl": UPLOAD_URL, "storageKey": f"jobs/{job}/{body['mediaType']}/{body['fileName']}"},
            )
        if path.endswith("/process-file"):
            return httpx.Response(200, json={})
        if path.endswith("/upload-file"):
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "downloadUrl": f"https://cdn.test/jobs/{job}/proxied",
                    "firebasePath": f"jobs/{job}/proxied",
                },
            )
        return httpx.Response(404)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def config() -> TransferConfig:
    return TransferConfig(api_base_url="http://app.test")


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
async def client(server, config):
    async with httpx.AsyncClient(transport=httpx.MockTransport(server), base_url=config.api_base_url) as c:
        yield c


@pytest.fixture
def api(client, config) -> TransferApi:
    return TransferApi(client, config)


def make_request(size: int, name: str = "IMG_0001.jpg", job: str = "42", **kwargs) -> UploadRequest:
    return UploadRequest(payload=b"x" * size, destination=job, file_name=name, media_type=MediaType.RAW, **kwargs)


def make_task(size: int, name: str = "IMG_0001.jpg", job: str = "42", **kwargs) -> UploadTask:
    return UploadTask.from_request(make_request(size, name, job, **kwargs), "photography")
