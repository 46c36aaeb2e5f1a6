import base64

import pytest

from handlers.graph.client import GraphError


class FakeGraph:
    """
    Stand-in for GraphClient. Routes map an endpoint (optionally with
    its $filter) to a list of items, a dict, or a callable raising.
    Every call is recorded in .calls.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def _resolve(self, endpoint, params):
        key = endpoint
        if params and "$filter" in params:
            key = f"{endpoint}?{params['$filter']}"
        self.calls.append(key)
        if key not in self.routes:
            if key.endswith("/assignments"):
                return []
            raise GraphError(f"no route for {key}", 404)
        val = self.routes[key]
        if callable(val):
            return val()
        return val

    def get_all(self, endpoint, params=None, api_version=None):
        return list(self._resolve(endpoint, params))

    def get(self, endpoint, params=None, api_version=None, quiet=False):
        return self._resolve(endpoint, params)


def b64(text):
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def boom(message="Graph API request failed with status 500"):
    def _raise():
        raise GraphError(message, 500)
    return _raise


@pytest.fixture
def lookup():
    names = {"g1": "Engineering", "g2": "Finance"}
    return lambda gid: names.get(gid)


@pytest.fixture
def fake_graph():
    return FakeGraph
