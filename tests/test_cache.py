"""Tests for the tiered cache: TTL classes, fenced writes, events, LRU."""

import logging

import pytest

from repfinder.cache.manager import (
    CATEGORY_TTL_CLASS,
    DEFAULT_EVENTS,
    DEFAULT_TTL_SECONDS,
    REP_CATEGORIES,
    TieredCacheManager,
)

HOUR = 3600.0
DAY = 86400.0


@pytest.fixture
def cache(clock):
    return TieredCacheManager({}, clock=clock)


def _fill(cache, key="95814"):
    for category in ("location", "jurisdiction", *REP_CATEGORIES):
        cache.put(category, key, {"category": category, "key": key})
    cache.put("committees", "P000145", [{"committee_id": "SSJU"}])


class TestReadsAndWrites:

    def test_round_trip(self, cache):
        assert cache.put("federal-reps", "95814", [{"external_id": "P000145"}])
        assert cache.get("federal-reps", "95814") == [{"external_id": "P000145"}]
        assert cache.keys("federal-reps") == ["95814"]

    def test_get_returns_independent_copy(self, cache):
        cache.put("location", "95814", {"county": "Sacramento County"})
        cache.get("location", "95814")["county"] = "mutated"
        assert cache.get("location", "95814") == {"county": "Sacramento County"}

    def test_miss(self, cache):
        assert cache.get("location", "95814") is None
        assert cache.stats()["location"]["misses"] == 1

    def test_unknown_category(self, cache):
        with pytest.raises(KeyError, match="Unknown cache category"):
            cache.get("senators", "95814")
        with pytest.raises(KeyError):
            cache.put("senators", "95814", [])

    def test_unserializable_payload_refused(self, cache):
        assert cache.put("location", "95814", {"bad": object()}) is False
        assert cache.peek("location", "95814") is None

    def test_ttl_classes(self):
        assert CATEGORY_TTL_CLASS["location"] == "historical"
        assert CATEGORY_TTL_CLASS["jurisdiction"] == "historical"
        assert all(CATEGORY_TTL_CLASS[c] == "active" for c in REP_CATEGORIES)
        assert CATEGORY_TTL_CLASS["committees"] == "metadata"
        assert DEFAULT_TTL_SECONDS == {"active": 6 * HOUR, "historical": 30 * DAY, "metadata": 24 * HOUR}


class TestExpiry:

    @pytest.mark.parametrize("category, ttl", [
        ("state-reps", 6 * HOUR),
        ("location", 30 * DAY),
        ("committees", 24 * HOUR),
    ])
    def test_entry_expires_at_ttl(self, cache, clock, category, ttl):
        cache.put(category, "k", {"v": 1})
        clock.advance(ttl - 1)
        assert cache.get(category, "k") == {"v": 1}
        clock.advance(1)
        assert cache.get(category, "k") is None
        assert cache.peek(category, "k") is None
        assert cache.stats()[category]["expirations"] == 1

    def test_ttl_override_from_config(self, clock):
        cache = TieredCacheManager({"cache": {"ttl_seconds": {"active": 60}}}, clock=clock)
        cache.put("county-reps", "95814", [])
        clock.advance(60)
        assert cache.get("county-reps", "95814") is None

    def test_age_measured_from_fetch_start(self, cache, clock):
        started = cache.now()
        clock.advance(HOUR)
        cache.put("federal-reps", "95814", [], fetch_started_at=started)
        assert cache.peek("federal-reps", "95814").cached_at == started
        clock.advance(5 * HOUR)
        assert cache.get("federal-reps", "95814") is None


class TestFencedWrites:

    def test_older_fetch_cannot_overwrite_newer(self, cache, clock):
        slow_started = cache.now()
        clock.advance(10)
        assert cache.put("state-reps", "95814", ["fresh"])
        assert cache.put("state-reps", "95814", ["stale"], fetch_started_at=slow_started) is False
        assert cache.get("state-reps", "95814") == ["fresh"]
        assert cache.stats()["state-reps"]["rejected_writes"] == 1

    def test_fetch_started_before_invalidation_is_rejected(self, cache, clock):
        started = cache.now()
        clock.advance(5)
        cache.invalidate("county-reps", "95814")
        assert cache.put("county-reps", "95814", ["stale"], fetch_started_at=started) is False
        assert cache.get("county-reps", "95814") is None

    def test_fetch_started_before_partition_clear_is_rejected(self, cache, clock):
        started = cache.now()
        clock.advance(5)
        cache.invalidate("county-reps")
        assert cache.put("county-reps", "93241", ["stale"], fetch_started_at=started) is False

    def test_fetch_started_at_invalidation_instant_is_accepted(self, cache):
        cache.invalidate("county-reps", "95814")
        assert cache.put("county-reps", "95814", ["fresh"], fetch_started_at=cache.now())

    def test_key_fence_does_not_affect_other_keys(self, cache, clock):
        started = cache.now()
        clock.advance(5)
        cache.invalidate("county-reps", "95814")
        assert cache.put("county-reps", "93241", ["ok"], fetch_started_at=started)

    def test_stale_event_race(self, cache, clock):
        # A slow refresh that began before a boundary change must not land
        started = cache.now()
        clock.advance(30)
        cache.emit("district_boundary_change", "95814")
        clock.advance(30)
        assert cache.put("federal-reps", "95814", ["old"], fetch_started_at=started) is False
        assert cache.put("federal-reps", "95814", ["new"])
        assert cache.get("federal-reps", "95814") == ["new"]


class TestCorruption:

    def test_corrupt_payload_is_a_miss(self, cache, caplog):
        cache.put("location", "95814", {"county": "Sacramento County"})
        cache.peek("location", "95814").payload = "{bad"
        with caplog.at_level(logging.WARNING, logger="repfinder.cache.manager"):
            assert cache.get("location", "95814") is None
        assert cache.peek("location", "95814") is None
        stats = cache.stats()["location"]
        assert stats["corrupt"] == 1
        assert stats["misses"] == 1
        assert any("corrupt cache entry" in r.message for r in caplog.records)


class TestLRU:

    def test_least_recently_used_evicted(self, clock):
        cache = TieredCacheManager({"cache": {"max_entries": 2}}, clock=clock)
        cache.put("location", "95814", {"n": 1})
        cache.put("location", "93241", {"n": 2})
        cache.get("location", "95814")
        cache.put("location", "92501", {"n": 3})
        assert sorted(cache.keys("location")) == ["92501", "95814"]
        assert cache.stats()["location"]["evictions"] == 1

    def test_capacity_is_per_partition(self, clock):
        cache = TieredCacheManager({"cache": {"max_entries": 1}}, clock=clock)
        cache.put("location", "95814", {})
        cache.put("jurisdiction", "95814", {})
        assert cache.keys("location") == ["95814"]
        assert cache.keys("jurisdiction") == ["95814"]


class TestEvents:

    def test_default_events(self):
        assert set(DEFAULT_EVENTS) == {
            "representative_update", "district_boundary_change", "incorporation_change",
        }

    def test_representative_update_cascades_to_committees(self, cache):
        _fill(cache)
        cache.emit("representative_update")
        assert all(cache.keys(c) == [] for c in REP_CATEGORIES)
        assert cache.keys("committees") == []
        assert cache.keys("location") == ["95814"]
        assert cache.keys("jurisdiction") == ["95814"]

    def test_boundary_change_scoped_to_postal_code(self, cache):
        _fill(cache, "95814")
        _fill(cache, "93241")
        removed = cache.emit("district_boundary_change", "95814")
        assert removed == 6
        for category in ("location", "jurisdiction", *REP_CATEGORIES):
            assert cache.keys(category) == ["93241"]
        assert cache.keys("committees") == ["P000145"]

    def test_incorporation_change(self, cache):
        _fill(cache)
        cache.emit("incorporation_change")
        assert cache.keys("jurisdiction") == []
        assert cache.keys("county-reps") == []
        assert cache.keys("municipal-reps") == []
        assert cache.keys("location") == ["95814"]
        assert cache.keys("federal-reps") == ["95814"]
        assert cache.keys("state-reps") == ["95814"]

    def test_scoped_event_clears_committees_entirely(self, cache):
        _fill(cache, "95814")
        cache.emit("representative_update", "95814")
        assert cache.keys("committees") == []

    def test_unknown_event(self, cache):
        with pytest.raises(KeyError, match="Unknown cache event"):
            cache.emit("asteroid_impact")

    def test_register_custom_event(self, cache):
        _fill(cache)
        cache.register_event("committee_reshuffle", ["committees"])
        assert cache.emit("committee_reshuffle") == 1
        assert cache.keys("federal-reps") == ["95814"]

    def test_register_event_validates_categories(self, cache):
        with pytest.raises(KeyError):
            cache.register_event("bad", ["senators"])

    def test_event_logged(self, cache, caplog):
        with caplog.at_level(logging.INFO, logger="repfinder.cache.manager"):
            cache.emit("representative_update")
        assert any("Cache event representative_update" in r.message for r in caplog.records)


class TestTagsAndStats:

    def test_invalidate_tag_across_partitions(self, cache):
        cache.put("location", "95814", {}, tags=["zip:95814"])
        cache.put("federal-reps", "95814", [], tags=["zip:95814"])
        cache.put("location", "93241", {}, tags=["zip:93241"])
        assert cache.invalidate_tag("zip:95814") == 2
        assert cache.keys("location") == ["93241"]
        assert cache.keys("federal-reps") == []

    def test_invalidate_tag_fences_late_writes(self, cache, clock):
        started = cache.now()
        cache.put("location", "95814", {}, tags=["zip:95814"])
        clock.advance(1)
        cache.invalidate_tag("zip:95814")
        assert cache.put("location", "95814", {}, fetch_started_at=started) is False

    def test_clear(self, cache):
        _fill(cache)
        cache.clear()
        assert all(s["size"] == 0 for s in cache.stats().values())

    def test_stats_shape(self, cache):
        cache.put("location", "95814", {})
        cache.get("location", "95814")
        stats = cache.stats()
        assert set(stats) == set(CATEGORY_TTL_CLASS)
        assert stats["location"] == {
            "size": 1,
            "ttl_class": "historical",
            "hits": 1,
            "misses": 0,
            "writes": 1,
            "rejected_writes": 0,
            "evictions": 0,
            "expirations": 0,
            "corrupt": 0,
        }

    def test_default_clock(self):
        cache = TieredCacheManager()
        assert cache.now() > 0
