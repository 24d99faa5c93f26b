import sqlite3

import pytest

from ip_locator.cache import LocationCache
from ip_locator.errors import CacheError

from .conftest import make_record

DAY = 86400


def test_put_then_get_returns_record(cache):
    record = make_record(city="Mountain View", as_number="AS15169")
    cache.put("8.8.8.8", record)
    assert cache.get("8.8.8.8") == record
    assert cache.count() == 1


def test_miss_returns_none(cache):
    assert cache.get("1.1.1.1") is None


def test_expired_entry_is_not_served_but_stays_on_disk(cache, clock):
    cache.put("8.8.8.8", make_record())
    clock.advance(30 * DAY)
    assert cache.get("8.8.8.8") is None
    assert cache.count() == 1


def test_entry_just_under_ttl_is_served(cache, clock):
    cache.put("8.8.8.8", make_record())
    clock.advance(30 * DAY - 1)
    assert cache.get("8.8.8.8") is not None


def test_put_overwrites_and_restamps(cache, clock):
    cache.put("8.8.8.8", make_record(city="Old"))
    clock.advance(29 * DAY)
    cache.put("8.8.8.8", make_record(city="New"))
    clock.advance(2 * DAY)
    assert cache.get("8.8.8.8").city == "New"
    assert cache.count() == 1


def test_clear_and_clear_expired(cache, clock):
    cache.put("8.8.8.8", make_record())
    clock.advance(31 * DAY)
    cache.put("1.1.1.1", make_record(ip="1.1.1.1"))
    assert cache.clear_expired() == 1
    assert cache.count() == 1
    cache.clear()
    assert cache.count() == 0


def test_store_failure_degrades_to_miss(cache):
    cache.put("8.8.8.8", make_record())
    cache._conn.close()  # every further statement raises sqlite3.ProgrammingError
    assert cache.get("8.8.8.8") is None
    cache.put("1.1.1.1", make_record(ip="1.1.1.1"))  # no exception


def test_unopenable_store_behaves_as_empty(tmp_path, monkeypatch):
    def broken_connect(*args, **kwargs):
        raise sqlite3.OperationalError("unable to open database file")

    monkeypatch.setattr(sqlite3, "connect", broken_connect)
    cache = LocationCache(tmp_path / "nope.db")
    assert cache.get("8.8.8.8") is None
    cache.put("8.8.8.8", make_record())
    with pytest.raises(CacheError):
        cache.count()


def test_entries_survive_reopen(tmp_path, clock):
    path = tmp_path / "persist.db"
    first = LocationCache(path, clock=clock)
    first.put("8.8.8.8", make_record(org="Google LLC"))
    first.close()
    second = LocationCache(path, clock=clock)
    assert second.get("8.8.8.8").org == "Google LLC"
    second.close()
