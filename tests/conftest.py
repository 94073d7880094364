"""
Shared fixtures: isolated settings and an in-memory schema server.
"""

import sys
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from xsd_resolver.config import load_settings
from xsd_resolver.fetch import make_client

LAST_MODIFIED = "Wed, 21 Oct 2015 07:28:00 GMT"


class SchemaServer:
    """Serves canned responses through httpx.MockTransport and records every request."""

    def __init__(self):
        self.routes: dict[str, httpx.Response] = {}
        self.requests: list[str] = []
        self.fallback: Optional[Callable[[str], Optional[httpx.Response]]] = None

    def add(self, url: str, body, last_modified: Optional[str] = LAST_MODIFIED) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        headers = {"Last-Modified": last_modified} if last_modified else {}
        self.routes[url] = httpx.Response(200, content=body, headers=headers)

    def redirect(self, url: str, target: str, status: int = 301) -> None:
        self.routes[url] = httpx.Response(status, headers={"Location": target})

    def fail(self, url: str, status: int = 404) -> None:
        self.routes[url] = httpx.Response(status, content=b"nope")

    def count(self, url: str) -> int:
        return self.requests.count(url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url in self.routes:
            canned = self.routes[url]
            return httpx.Response(canned.status_code, content=canned.content, headers=canned.headers)
        if self.fallback is not None:
            response = self.fallback(url)
            if response is not None:
                return response
        return httpx.Response(404, content=b"not found")

    def client(self) -> httpx.Client:
        return make_client(transport=httpx.MockTransport(self.handler))


# --- Fixtures ---


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a per-test directory."""
    return load_settings(data_root=tmp_path / "data", lock_timeout=0.5)


@pytest.fixture
def server():
    return SchemaServer()


@pytest.fixture
def client(server):
    client = server.client()
    yield client
    client.close()
