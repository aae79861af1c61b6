"""
PersonalPage Backend — Session Store Unit Tests
=================================================

What we test:
    ✅ create() issues distinct random handles and CSRF tokens
    ✅ get() returns the record until the TTL passes, then evicts it
    ✅ destroy() is idempotent and tolerates None
    ✅ sweep() drops expired records only
    ✅ tokens_match() is exact and rejects empty values
"""

from personalpage.sessions import InMemorySessionStore, tokens_match


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestInMemorySessionStore:

    def test_create_issues_fresh_tokens(self):
        store = InMemorySessionStore(ttl_seconds=60)
        first = store.create(1)
        second = store.create(1)

        assert first.handle != second.handle
        assert first.csrf_token != second.csrf_token
        assert first.handle != first.csrf_token
        assert len(store) == 2

    def test_get_returns_record_within_ttl(self):
        clock = FakeClock()
        store = InMemorySessionStore(ttl_seconds=60, clock=clock)
        record = store.create(7)

        clock.now += 59
        found = store.get(record.handle)
        assert found is not None
        assert found.account_id == 7

    def test_get_evicts_expired_record(self):
        clock = FakeClock()
        store = InMemorySessionStore(ttl_seconds=60, clock=clock)
        record = store.create(7)

        clock.now += 60
        assert store.get(record.handle) is None
        assert len(store) == 0

    def test_get_unknown_or_missing_handle(self):
        store = InMemorySessionStore(ttl_seconds=60)
        assert store.get(None) is None
        assert store.get("") is None
        assert store.get("not-a-session") is None

    def test_destroy_is_idempotent(self):
        store = InMemorySessionStore(ttl_seconds=60)
        record = store.create(3)

        store.destroy(record.handle)
        store.destroy(record.handle)
        store.destroy(None)

        assert store.get(record.handle) is None

    def test_sweep_removes_only_expired(self):
        clock = FakeClock()
        store = InMemorySessionStore(ttl_seconds=60, clock=clock)
        old = store.create(1)
        clock.now += 30
        fresh = store.create(2)

        clock.now += 31
        removed = store.sweep()

        assert removed == 1
        assert store.get(old.handle) is None
        assert store.get(fresh.handle) is not None

    def test_periodic_sweep_on_create(self):
        clock = FakeClock()
        store = InMemorySessionStore(ttl_seconds=10, clock=clock, sweep_every=3)
        store.create(1)
        store.create(2)
        clock.now += 11
        store.create(3)  # third creation triggers the sweep

        assert len(store) == 1


class TestTokensMatch:

    def test_exact_match(self):
        assert tokens_match("abcdef", "abcdef") is True

    def test_one_character_difference(self):
        assert tokens_match("abcdef", "abcdeg") is False

    def test_empty_values_never_match(self):
        assert tokens_match("", "") is False
        assert tokens_match(None, None) is False
        assert tokens_match("abc", None) is False
        assert tokens_match(None, "abc") is False
