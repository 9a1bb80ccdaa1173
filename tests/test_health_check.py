"""
Tests for the synchronous connectivity check.
"""

import requests

from holder_rewards.utils.health_check import check_market, check_rpc, create_session, run_health_check


class StubResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload


class StubSession:
    def __init__(self, post=None, get=None):
        self._post = post
        self._get = get
        self.closed = False
        self.requests = []

    def post(self, url, **kwargs):
        self.requests.append(("POST", url, kwargs))
        if isinstance(self._post, Exception):
            raise self._post
        return self._post

    def get(self, url, **kwargs):
        self.requests.append(("GET", url, kwargs))
        if isinstance(self._get, Exception):
            raise self._get
        return self._get

    def close(self):
        self.closed = True


def test_session_mounts_retry_adapter():
    session = create_session()
    adapter = session.get_adapter("https://rpc.test")
    assert adapter.max_retries.total == 3
    assert 503 in adapter.max_retries.status_forcelist


def test_check_rpc_healthy():
    session = StubSession(post=StubResponse(200, {"result": "ok"}))
    assert check_rpc(session, "https://rpc.test") is True
    assert session.requests[0][2]["json"]["method"] == "getHealth"


def test_check_rpc_unhealthy_or_unreachable():
    assert check_rpc(StubSession(post=StubResponse(200, {"error": {"message": "behind"}})), "u") is False
    assert check_rpc(StubSession(post=requests.ConnectionError("refused")), "u") is False


def test_check_market_skipped_without_key():
    assert check_market(StubSession(), "", "mint") is None


def test_run_health_check_closes_session(settings):
    session = StubSession(post=StubResponse(200, {"result": "ok"}), get=StubResponse(200))
    results = run_health_check(settings, session=session)
    assert results == {"rpc": True, "market": True}
    assert session.closed is True


def test_check_rpc_non_object_body_is_unhealthy():
    session = StubSession(post=StubResponse(200, ["ok"]))
    assert check_rpc(session, "https://rpc.test") is False
