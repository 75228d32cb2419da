# tests/test_redis_result_store.py
import json

import pytest

from fanout.adapters.system.redis_result_store import RedisResultStore


class FakeRedis:
    def __init__(self):
        self.db = {}
        self.ttl = {}

    def hset(self, key, mapping):
        self.db.setdefault(key, {}).update(mapping)

    def hgetall(self, key):
        return self.db.get(key, {})

    def expire(self, key, seconds):
        self.ttl[key] = seconds


@pytest.fixture
def store():
    r = FakeRedis()
    s = RedisResultStore.__new__(RedisResultStore)
    s._r = r
    s._prefix = "dispatch"
    s._ttl = 60
    return s, r


def test_lifecycle(store):
    s, r = store
    s.set_pending("id1")
    assert s.get("id1") == {"status": "pending"}
    assert "dispatch:id1" not in r.ttl

    s.set_result("id1", {"exit_code": 0, "lines": ["a:1 ok"]})
    assert s.get("id1") == {"status": "done", "result": {"exit_code": 0, "lines": ["a:1 ok"]}}
    assert r.ttl["dispatch:id1"] == 60


def test_error_and_unknown(store):
    s, r = store
    s.set_error("id2", "boom")
    assert s.get("id2") == {"status": "error", "error": "boom"}
    assert s.get("missing") is None


def test_corrupt_result_reads_as_none(store):
    s, r = store
    r.hset("dispatch:id3", {"status": "done", "result": "{not json"})
    assert s.get("id3") == {"status": "done", "result": None}
    assert json.loads(json.dumps(s.get("id3")))["result"] is None
