from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest
import requests


def make_response(status: int = 200, body: Any = None, *, text: Optional[str] = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    if text is not None:
        resp._content = text.encode("utf-8")
    elif body is None:
        resp._content = b""
    else:
        resp._content = json.dumps(body).encode("utf-8")
    resp.encoding = "utf-8"
    return resp


class StubSession:
    """按顺序吐出预先排好的响应（或异常），并记录每次请求。"""

    def __init__(self) -> None:
        self.queue: List[Any] = []
        self.requests: List[Dict[str, Any]] = []

    def add(self, status: int = 200, body: Any = None, **kwargs) -> "StubSession":
        self.queue.append(make_response(status, body, **kwargs))
        return self

    def fail(self, exc: Exception) -> "StubSession":
        self.queue.append(exc)
        return self

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        if not self.queue:
            raise AssertionError(f"unexpected request {method} {url}")
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        pass


class StubTokens:

    def __init__(self) -> None:
        self.issued = 0
        self.invalidated: List[str] = []

    def access_token(self, scope: str) -> str:
        self.issued += 1
        return f"tok-{self.issued}"

    def invalidate(self, scope: str) -> None:
        self.invalidated.append(scope)


@pytest.fixture
def stub_session() -> StubSession:
    return StubSession()


@pytest.fixture
def stub_tokens() -> StubTokens:
    return StubTokens()
