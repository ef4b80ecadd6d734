from __future__ import annotations

from typing import Any, List

import pytest
import requests

from elearning.store.firebase import FirebaseTreeStore
from elearning.store.ports import StoreError


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None) -> None:
        self.status_code = status_code
        self._body = body

    def json(self) -> Any:
        return self._body

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=None)


class FakeSession:
    def __init__(self, responses: List[FakeResponse] | None = None, error: Exception | None = None) -> None:
        self.calls: List[dict] = []
        self._responses = list(responses or [])
        self._error = error

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if self._error is not None:
            raise self._error
        return self._responses.pop(0) if self._responses else FakeResponse()


def _store(session: FakeSession, secret: str | None = "s3cret") -> FirebaseTreeStore:
    return FirebaseTreeStore("https://demo.firebaseio.com/", secret=secret, session=session, timeout=5)


def test_read_issues_get_with_auth_and_timeout():
    session = FakeSession([FakeResponse(body={"u1": {"email": "a@x.com"}})])
    data = _store(session).read("/elearning/users/")
    assert data == {"u1": {"email": "a@x.com"}}
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://demo.firebaseio.com/elearning/users.json"
    assert call["params"] == {"auth": "s3cret"}
    assert call["timeout"] == 5


def test_root_read_targets_base_document():
    session = FakeSession([FakeResponse(body=None)])
    assert _store(session, secret=None).read("") is None
    assert session.calls[0]["url"] == "https://demo.firebaseio.com/.json"
    assert session.calls[0]["params"] == {}


def test_write_puts_json_and_empty_write_deletes():
    session = FakeSession()
    store = _store(session)
    store.write("elearning/courses/c1", {"title": "T"})
    store.write("elearning/courses/c2", {})
    assert [(c["method"], c.get("json")) for c in session.calls] == [
        ("PUT", {"title": "T"}),
        ("DELETE", None),
    ]


def test_merge_patches_and_skips_empty_partials():
    session = FakeSession()
    store = _store(session)
    store.merge("elearning/users/u1", {})
    store.merge("elearning/users/u1", {"role": "admin"})
    assert len(session.calls) == 1
    assert session.calls[0]["method"] == "PATCH"
    assert session.calls[0]["json"] == {"role": "admin"}


def test_http_errors_become_store_errors():
    session = FakeSession([FakeResponse(status_code=401)])
    with pytest.raises(StoreError) as excinfo:
        _store(session).read("elearning")
    assert excinfo.value.status == 401


def test_transport_errors_become_store_errors():
    session = FakeSession(error=requests.ConnectionError("refused"))
    with pytest.raises(StoreError, match="refused"):
        _store(session).delete("elearning/users/u1")
