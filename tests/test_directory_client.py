from __future__ import annotations

from typing import Any, Dict, List, Tuple

import pytest
import requests

import zellular.directory_client as mod
from fakes import abc_records
from zellular.directory_client import OperatorDirectoryClient
from zellular.errors import NetworkError, ParseError


class _Resp:
    def __init__(self, body: Any, status_code: int = 200) -> None:
        self._body = body
        self.status_code = status_code

    def json(self) -> Any:
        return self._body

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")


def test_directory_client_posts_operators_query(monkeypatch, toy_backend):
    calls: List[Tuple[str, Dict[str, Any], float]] = []

    def fake_post(url: str, *, json: Dict[str, Any], timeout: float):  # noqa: A002 - match requests API
        calls.append((url, json, timeout))
        return _Resp({"data": {"operators": abc_records(socket="http://op")}})

    monkeypatch.setattr(mod.requests, "post", fake_post)

    client = OperatorDirectoryClient("http://graph/query", timeout_s=3.0)
    ops = client.load_operator_set(backend=toy_backend)

    assert len(calls) == 1
    url, body, timeout = calls[0]
    assert url == "http://graph/query"
    assert timeout == 3.0
    assert "pubkeyG2_X" in body["query"]
    assert sorted(op.id for op in ops) == ["A", "B", "C"]
    assert ops.sockets() == ["http://op"] * 3


def test_directory_graphql_errors_are_parse_errors(monkeypatch):
    monkeypatch.setattr(mod.requests, "post", lambda url, **kw: _Resp({"errors": [{"message": "boom"}]}))
    with pytest.raises(ParseError):
        OperatorDirectoryClient("http://graph").fetch_operators()


def test_directory_without_data_is_a_parse_error(monkeypatch):
    monkeypatch.setattr(mod.requests, "post", lambda url, **kw: _Resp({}))
    with pytest.raises(ParseError):
        OperatorDirectoryClient("http://graph").fetch_operators()


def test_directory_transport_failure(monkeypatch):
    def boom(url, **kw):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(mod.requests, "post", boom)
    with pytest.raises(NetworkError):
        OperatorDirectoryClient("http://graph").fetch_operators()

    monkeypatch.setattr(mod.requests, "post", lambda url, **kw: _Resp({}, status_code=500))
    with pytest.raises(NetworkError):
        OperatorDirectoryClient("http://graph").fetch_operators()
