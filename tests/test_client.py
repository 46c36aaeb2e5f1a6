"""
Tests for the Graph client (no network: msal and the HTTP session are faked).
"""

import time

import pytest

from handlers.graph import client as graph_client
from core.models import STATUS_FAILED
from core.module_loader import fncRunCategory
from core.utils import fncSetDebug
from handlers.graph.client import (
    GraphClient,
    GraphError,
    GraphAuthError,
    GraphTransientError,
    MAX_THROTTLE_RETRIES,
    fncRetryAfterSeconds,
)
from modules.intune import categories as cats
from modules.intune.assignments import fncMakeGroupLookup, fncNormalizeAssignments, GROUP_TARGET


class FakeMsalApp:
    tokens = iter(())

    def __init__(self, client_id=None, client_credential=None, authority=None):
        self.authority = authority

    def acquire_token_silent(self, scopes, account=None):
        return None

    def acquire_token_for_client(self, scopes=None):
        return next(self.tokens)


class FakeResponse:
    def __init__(self, status, body=None, headers=None):
        self.status_code = status
        self._body = body or {}
        self.headers = headers or {}
        self.text = str(body)

    def json(self):
        return self._body


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.seen = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.seen.append((url, headers["Authorization"], params))
        return self.responses.pop(0)


@pytest.fixture
def make_client(monkeypatch):
    def _make(tokens=None, responses=()):
        FakeMsalApp.tokens = iter(tokens or [{"access_token": "t1", "expires_in": 3600}])
        monkeypatch.setattr(graph_client.msal, "ConfidentialClientApplication", FakeMsalApp)
        c = GraphClient(tenant_id="tid", client_id="cid-123456789", client_secret="secret")
        c.session = FakeSession(responses)
        return c
    return _make


def test_get_all_follows_next_link(make_client):
    c = make_client(responses=[
        FakeResponse(200, {"value": [{"id": 1}], "@odata.nextLink": "https://graph.microsoft.com/beta/next"}),
        FakeResponse(200, {"value": [{"id": 2}]}),
    ])
    items = c.get_all("deviceManagement/deviceHealthScripts")
    assert items == [{"id": 1}, {"id": 2}]
    assert c.session.seen[0][0] == "https://graph.microsoft.com/beta/deviceManagement/deviceHealthScripts"
    assert c.session.seen[1][0] == "https://graph.microsoft.com/beta/next"


def test_get_uses_requested_api_version(make_client):
    c = make_client(responses=[FakeResponse(200, {"displayName": "Engineering"})])
    assert c.get("groups/g1", params={"$select": "displayName"}, api_version="v1.0") == {"displayName": "Engineering"}
    assert c.session.seen[0][0] == "https://graph.microsoft.com/v1.0/groups/g1"


def test_401_refreshes_token_once(make_client):
    c = make_client(
        tokens=[{"access_token": "t1", "expires_in": 3600}, {"access_token": "t2", "expires_in": 3600}],
        responses=[FakeResponse(401, {"error": {"code": "InvalidAuthenticationToken"}}),
                   FakeResponse(200, {"value": []})],
    )
    assert c.get_all("deviceManagement/intents") == []
    assert [auth for _, auth, _ in c.session.seen] == ["Bearer t1", "Bearer t2"]


def test_client_error_is_not_retried(make_client):
    c = make_client(responses=[FakeResponse(404, {"error": {"code": "NotFound"}})])
    with pytest.raises(GraphError) as exc:
        c.get("groups/missing")
    assert exc.value.status == 404
    assert len(c.session.seen) == 1


def test_failed_authentication_is_fatal(monkeypatch):
    FakeMsalApp.tokens = iter([{"error_description": "AADSTS7000215: Invalid client secret"}])
    monkeypatch.setattr(graph_client.msal, "ConfidentialClientApplication", FakeMsalApp)
    with pytest.raises(GraphAuthError):
        GraphClient(tenant_id="tid", client_id="cid", client_secret="bad")


@pytest.fixture
def sleeps(monkeypatch):
    slept = []
    monkeypatch.setattr(time, "sleep", slept.append)
    fncSetDebug(False)
    return slept


def test_429_waits_for_retry_after_then_succeeds(make_client, sleeps):
    c = make_client(responses=[
        FakeResponse(429, {"error": {"code": "TooManyRequests"}}, headers={"Retry-After": "7"}),
        FakeResponse(200, {"value": [{"id": "a"}]}),
    ])
    assert c.get_all("deviceManagement/intents") == [{"id": "a"}]
    assert sleeps == [7]
    assert len(c.session.seen) == 2


def test_persistent_throttling_gives_up(make_client, sleeps):
    throttled = [FakeResponse(429, headers={"Retry-After": "1"}) for _ in range(3 * (MAX_THROTTLE_RETRIES + 1))]
    c = make_client(responses=throttled)
    with pytest.raises(GraphTransientError) as exc:
        c.get("deviceManagement/intents")
    assert exc.value.status == 429
    assert c.session.responses == []


def test_retry_after_header_forms():
    assert fncRetryAfterSeconds("12") == 12
    assert fncRetryAfterSeconds(None) == 5
    assert fncRetryAfterSeconds("soon") == 5
    # an HTTP-date in the past means no wait at all
    assert fncRetryAfterSeconds("Wed, 21 Oct 2015 07:28:00 GMT") == 0


def test_server_errors_are_retried_then_raised(make_client, sleeps, capsys):
    c = make_client(responses=[FakeResponse(503), FakeResponse(503), FakeResponse(503)])
    capsys.readouterr()
    with pytest.raises(GraphTransientError) as exc:
        c.get_all("deviceManagement/intents")
    assert exc.value.status == 503
    assert len(c.session.seen) == 3
    assert len(sleeps) == 2
    out = capsys.readouterr().out
    assert "[!] Attempt 1/3 failed" in out
    assert "[✗]" not in out


def test_server_error_recovered_by_category_is_only_a_warning(make_client, sleeps, capsys):
    c = make_client(responses=[FakeResponse(503), FakeResponse(503), FakeResponse(503)])
    capsys.readouterr()
    result = fncRunCategory(cats.CATEGORY_BY_KEY["group_policy"], c, lambda gid: None)
    assert result.status == STATUS_FAILED
    out = capsys.readouterr().out
    assert "[!] Failed to collect Administrative Templates" in out
    assert "[✗]" not in out


def test_group_lookup_failure_is_silent(make_client, sleeps, capsys):
    c = make_client(responses=[FakeResponse(500), FakeResponse(500), FakeResponse(500)])
    capsys.readouterr()
    raw = [{"intent": "apply", "target": {"@odata.type": GROUP_TARGET, "groupId": "g1"}}]
    out = fncNormalizeAssignments(raw, fncMakeGroupLookup(c))
    assert out[0].TargetDescription == "Group: Unable to resolve group name (Include)"
    assert len(c.session.seen) == 3
    assert capsys.readouterr().out == ""


def test_token_near_expiry_is_refreshed_before_request(make_client):
    c = make_client(
        tokens=[{"access_token": "t1", "expires_in": 3600}, {"access_token": "t2", "expires_in": 3600}],
        responses=[FakeResponse(200, {"value": []})],
    )
    c._token_expires_on = int(time.time()) + 60
    assert c.get_all("deviceManagement/intents") == []
    assert [auth for _, auth, _ in c.session.seen] == ["Bearer t2"]
