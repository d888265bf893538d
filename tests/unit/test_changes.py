from cabinsched.changes import ChangeFeed, RecomputeCache


def test_publish_reaches_subscribers(feed):
    seen = []
    feed.subscribe(lambda org, topic: seen.append((org, topic)))

    feed.publish("org-1", "periods")

    assert seen == [("org-1", "periods")]


def test_unsubscribe(feed):
    seen = []
    unsubscribe = feed.subscribe(lambda org, topic: seen.append(org))
    unsubscribe()
    unsubscribe()

    feed.publish("org-1", "periods")

    assert seen == []


def test_failing_listener_does_not_block_others(feed, caplog):
    seen = []

    def broken(org, topic):
        raise RuntimeError("boom")

    feed.subscribe(broken)
    feed.subscribe(lambda org, topic: seen.append(org))

    feed.publish("org-1", "usage")

    assert seen == ["org-1"]
    assert "Change listener failed" in caplog.text


def test_cache_reuses_until_change():
    feed = ChangeFeed()
    cache = RecomputeCache(feed)
    calls = []

    def compute():
        calls.append(1)
        return len(calls)

    assert cache.get_or_compute("org-1", "k", compute) == 1
    assert cache.get_or_compute("org-1", "k", compute) == 1

    feed.publish("org-1", "reservations")

    assert cache.get_or_compute("org-1", "k", compute) == 2


def test_change_only_evicts_its_organization():
    feed = ChangeFeed()
    cache = RecomputeCache(feed)
    cache.get_or_compute("org-1", "k", lambda: "one")
    cache.get_or_compute("org-2", "k", lambda: "two")

    feed.publish("org-1", "settings")

    assert len(cache) == 1
    assert cache.get_or_compute("org-2", "k", lambda: "fresh") == "two"


def test_result_computed_across_a_change_is_not_kept():
    feed = ChangeFeed()
    cache = RecomputeCache(feed)

    def compute_while_writing():
        feed.publish("org-1", "reservations")
        return "old"

    assert cache.get_or_compute("org-1", "k", compute_while_writing) == "old"
    assert cache.get_or_compute("org-1", "k", lambda: "new") == "new"
    assert cache.get_or_compute("org-1", "k", lambda: "newer") == "new"


def test_change_elsewhere_during_compute_still_caches():
    feed = ChangeFeed()
    cache = RecomputeCache(feed)

    def compute():
        feed.publish("org-2", "settings")
        return "one"

    cache.get_or_compute("org-1", "k", compute)

    assert cache.get_or_compute("org-1", "k", lambda: "fresh") == "one"


def test_clear():
    cache = RecomputeCache(ChangeFeed())
    cache.get_or_compute("org-1", "k", lambda: 1)
    cache.clear()
    assert len(cache) == 0
