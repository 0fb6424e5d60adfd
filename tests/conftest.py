"""Shared fakes: an in-memory PostgREST table and an image provider double."""

import json
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests

from vehicle_image_generator.config import Config, Settings

ENV = {
    "SUPABASE_URL": "https://project.supabase.test",
    "SUPABASE_ANON_KEY": "anon-key",
    "OPENAI_API_KEY": "sk-test",
}


def make_response(status_code: int = 200, body: Any = None, headers: Optional[Dict[str, str]] = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    resp._content = json.dumps(body).encode("utf-8") if body is not None else b""
    resp.headers.update(headers or {})
    resp.encoding = "utf-8"
    resp.url = "https://fake.test/"
    return resp


class FakePostgrest:
    """Answers the subset of PostgREST the record store uses."""

    def __init__(self, rows: List[Dict[str, Any]], fail_when: Optional[Callable[[str, Dict[str, str]], bool]] = None) -> None:
        self.rows = [dict(r) for r in rows]
        self.fail_when = fail_when
        self.calls: List[Dict[str, Any]] = []

    @property
    def patches(self) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["method"] == "PATCH"]

    def row(self, record_id: Any) -> Dict[str, Any]:
        return next(r for r in self.rows if r["id"] == record_id)

    def _matches(self, row: Dict[str, Any], params: Dict[str, str]) -> bool:
        for key, value in params.items():
            if key in ("select", "order", "limit"):
                continue
            op, _, arg = value.partition(".")
            if op == "is" and arg == "null" and row.get(key) is not None:
                return False
            if op == "eq" and str(row.get(key)) != arg:
                return False
        return True

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        params = dict(params or {})
        self.calls.append({"method": method, "url": url, "params": params, "json": json, "headers": headers, "timeout": timeout})
        if self.fail_when and self.fail_when(method, params):
            raise requests.ConnectionError("connection refused")

        matched = [r for r in self.rows if self._matches(r, params)]
        if method == "PATCH":
            for r in matched:
                r.update(json or {})
            return make_response(200, [dict(r) for r in matched])

        if "order" in params:
            col, _, direction = params["order"].partition(".")
            matched.sort(key=lambda r: r[col], reverse=(direction == "desc"))
        total = len(matched)
        if "limit" in params:
            matched = matched[: int(params["limit"])]
        resp_headers = {}
        if headers and "count=exact" in headers.get("Prefer", ""):
            resp_headers["Content-Range"] = f"0-{len(matched) - 1}/{total}" if matched else f"*/{total}"
        return make_response(200, [dict(r) for r in matched], resp_headers)


class FakeProvider:
    def __init__(self, reachable: bool = True, fail_for: Optional[List[str]] = None, on_generate=None) -> None:
        self.reachable = reachable
        self.fail_for = set(fail_for or [])
        self.on_generate = on_generate
        self.prompts: List[str] = []

    def test_reachable(self) -> bool:
        return self.reachable

    def generate_image(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.on_generate:
            self.on_generate(prompt)
        if any(category in prompt for category in self.fail_for):
            raise RuntimeError("rate limit exceeded")
        return f"https://images.test/{len(self.prompts)}.png"


@pytest.fixture
def env() -> Dict[str, str]:
    return dict(ENV)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def config() -> Config:
    return Config(store_url=ENV["SUPABASE_URL"], store_key=ENV["SUPABASE_ANON_KEY"], provider_key=ENV["OPENAI_API_KEY"])
