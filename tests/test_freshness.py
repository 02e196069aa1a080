from datetime import timedelta

import pytest

from llms_txt import CacheStore, FreshnessOracle
from llms_txt.generator import CACHE_KEY_FULL, CACHE_KEY_NAV, CACHE_KEY_SITEMAPS


@pytest.fixture()
def store(clock):
    return CacheStore(clock)


@pytest.fixture()
def make_oracle(repository, store, make_generator, clock):
    def factory(**overrides) -> FreshnessOracle:
        generator = make_generator(store=store, **overrides)
        return FreshnessOracle(repository, store, generator, clock)

    return factory


class TestShouldRefresh:
    def test_true_without_previous_check(self, make_oracle):
        assert make_oracle().should_refresh() is True

    def test_false_right_after_check(self, fab, make_oracle):
        fab.topic("Old news", category=fab.category("General"))
        oracle = make_oracle()
        oracle.mark_updated()
        assert oracle.should_refresh() is False

    def test_true_when_check_older_than_an_hour(self, make_oracle, clock):
        oracle = make_oracle()
        oracle.mark_updated()
        clock.advance(minutes=61)
        assert oracle.should_refresh() is True

    def test_true_after_new_topic(self, fab, make_oracle, clock):
        oracle = make_oracle()
        oracle.mark_updated()
        fab.topic("Fresh", created_at=clock.now + timedelta(minutes=5))
        clock.advance(minutes=10)
        assert oracle.should_refresh() is True

    def test_true_after_category_update(self, fab, make_oracle, clock):
        oracle = make_oracle()
        oracle.mark_updated()
        fab.category("Renamed", updated_at=clock.now + timedelta(minutes=1))
        assert oracle.should_refresh() is True


class TestRefresh:
    def test_invalidates_and_warms_navigation(self, fab, make_oracle, store, clock):
        fab.category("General")
        store.write(CACHE_KEY_NAV, "stale nav", timedelta(hours=1))
        store.write(CACHE_KEY_FULL, "stale full", timedelta(hours=1))
        store.write(CACHE_KEY_SITEMAPS, "stale sitemap", timedelta(hours=1))
        oracle = make_oracle()

        oracle.refresh()
        nav = store.read(CACHE_KEY_NAV)
        assert nav is not None and "### [General]" in nav
        assert store.read(CACHE_KEY_FULL) is None
        assert store.read(CACHE_KEY_SITEMAPS) is None
        assert oracle.last_checked_at == clock.now
        assert oracle.last_update_time() == clock.now

    def test_last_check_mark_expires_after_two_hours(self, make_oracle, clock):
        oracle = make_oracle()
        oracle.refresh()
        clock.advance(hours=2, minutes=1)
        assert oracle.last_checked_at is None

    def test_last_update_defaults_to_now(self, make_oracle, clock):
        assert make_oracle().last_update_time() == clock.now


class TestScheduledCheck:
    def test_skipped_when_disabled(self, make_oracle):
        result = make_oracle(enabled=False).run_scheduled_check()
        assert result.skipped is True
        assert result.refreshed is False

    def test_refreshes_then_settles(self, make_oracle):
        oracle = make_oracle()
        assert oracle.run_scheduled_check().refreshed is True
        assert oracle.run_scheduled_check().refreshed is False

    def test_failure_is_contained(self, make_oracle, monkeypatch):
        oracle = make_oracle()

        def boom():
            raise RuntimeError("database went away")

        monkeypatch.setattr(oracle.generator, "generate_navigation", boom)
        result = oracle.run_scheduled_check()
        assert result.refreshed is False
        assert result.error == "database went away"
        assert oracle.last_checked_at is None
