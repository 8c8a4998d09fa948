"""Co-change maintenance through full rebuilds and delta runs."""

from datetime import datetime, timedelta, timezone

import pytest

from cochange_heat.engine import Delta, Full, FullReason
from cochange_heat.exceptions import ErrorCode, PersistenceError
from cochange_heat.temporal.models import Scope

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(days: float, hours: float = 0) -> datetime:
    return T0 + timedelta(days=days, hours=hours)


def group_map(store, scope: str = "file") -> dict:
    return {g.group_key: (g.frequency, g.last_seen_at) for g in store.list_groups("p1", scope)}


class TestFullThenDelta:
    """Two commits one hour apart touching the same pair."""

    def test_full_rebuild_creates_group(self, engine, provider, store):
        provider.add("c1", at(0), "lib/a.ex", "lib/b.ex")
        provider.add("c2", at(0, 1), "lib/a.ex", "lib/b.ex")

        result = engine.compute_co_change("p1", 30, at(0, 2))

        assert result.decision == Full(FullReason.NO_WATERMARK)
        assert group_map(store) == {"lib/a.ex|lib/b.ex": (2, at(0, 1))}
        assert len(store.list_group_commits("p1", "file", "lib/a.ex|lib/b.ex")) == 2
        # both files share a directory, so no directory pair
        assert store.list_groups("p1", "directory") == []

    def test_delta_without_new_commits_is_idempotent(self, engine, provider, store):
        provider.add("c1", at(0), "lib/a.ex", "lib/b.ex")
        provider.add("c2", at(0, 1), "lib/a.ex", "lib/b.ex")
        engine.compute_co_change("p1", 30, at(0, 2))
        before = (group_map(store), store.group_commit_keys("p1", "file"))

        first = engine.compute_co_change("p1", 30, at(1))
        after_first = (group_map(store), store.group_commit_keys("p1", "file"))
        second = engine.compute_co_change("p1", 30, at(1))
        after_second = (group_map(store), store.group_commit_keys("p1", "file"))

        assert first.decision == Delta(previous_reference_date=at(0, 2))
        assert isinstance(second.decision, Delta)
        assert before == after_first == after_second

    def test_third_commit_bumps_frequency(self, engine, provider, store):
        provider.add("c1", at(0), "lib/a.ex", "lib/b.ex")
        provider.add("c2", at(0, 1), "lib/a.ex", "lib/b.ex")
        engine.compute_co_change("p1", 30, at(0, 2))

        provider.add("c3", at(0, 5), "lib/a.ex", "lib/b.ex")
        result = engine.compute_co_change("p1", 30, at(0, 6))

        assert isinstance(result.decision, Delta)
        assert group_map(store) == {"lib/a.ex|lib/b.ex": (3, at(0, 5))}
        rows = store.list_group_commits("p1", "file", "lib/a.ex|lib/b.ex")
        assert [r.commit_hash for r in rows] == ["c1", "c2", "c3"]

    def test_delta_promotes_seeded_pair(self, engine, provider, store):
        """A pair seen once at the full rebuild becomes a group when seen again."""
        provider.add("c1", at(0), "src/x.py", "src/y.py")
        engine.compute_co_change("p1", 30, at(1))
        assert group_map(store) == {}
        assert store.group_commit_keys("p1", "file") == {("src/x.py|src/y.py", "c1")}

        provider.add("c2", at(2), "src/x.py", "src/y.py", "docs/x.md")
        engine.compute_co_change("p1", 30, at(3))

        assert group_map(store) == {"src/x.py|src/y.py": (2, at(2))}


class TestExpiry:
    def test_aged_out_commits_delete_group(self, engine, provider, store):
        provider.add("c1", at(2), "lib/a.ex", "lib/b.ex", "test/a_test.exs")
        provider.add("c2", at(2, 1), "lib/a.ex", "lib/b.ex", "test/b_test.exs")

        engine.compute_co_change("p1", 30, at(31))
        assert group_map(store)["lib/a.ex|lib/b.ex"] == (2, at(2, 1))
        assert group_map(store, "directory") == {"lib|test": (2, at(2, 1))}

        result = engine.compute_co_change("p1", 30, at(33))

        assert isinstance(result.decision, Delta)
        assert group_map(store) == {}
        assert group_map(store, "directory") == {}
        assert store.group_commit_keys("p1", "file") == set()
        assert store.group_commit_keys("p1", "directory") == set()

    def test_partial_expiry_keeps_group_with_remaining_support(self, engine, provider, store):
        provider.add("c1", at(2), "a.py", "b.py")
        provider.add("c2", at(10), "a.py", "b.py")
        provider.add("c3", at(20), "a.py", "b.py")
        engine.compute_co_change("p1", 30, at(31))
        assert group_map(store) == {"a.py|b.py": (3, at(20))}

        engine.compute_co_change("p1", 30, at(35))
        assert group_map(store) == {"a.py|b.py": (2, at(20))}

    def test_full_rebuild_removes_stale_groups_and_provenance(self, engine, provider, store):
        provider.add("c1", at(2), "a.py", "b.py")
        provider.add("c2", at(3), "a.py", "b.py")
        engine.compute_co_change("p1", 30, at(10))

        # window change forces a full rebuild that no longer sees c1/c2
        result = engine.compute_co_change("p1", 5, at(10))

        assert result.decision == Full(FullReason.WINDOW_CHANGED)
        assert group_map(store) == {}
        assert store.group_commit_keys("p1", "file") == set()


class TestGuardrail:
    def test_mega_commit_ignored_in_full_mode(self, engine, provider, store):
        files = [f"gen/f{i}.py" for i in range(105)]
        provider.add("mega1", at(1), *files)
        provider.add("mega2", at(2), *files)

        engine.compute_co_change("p1", 30, at(3))

        assert group_map(store) == {}
        assert store.group_commit_keys("p1", "file") == set()

    def test_mega_commit_ignored_in_delta_mode(self, engine, provider, store):
        provider.add("c1", at(1), "gen/f0.py", "gen/f1.py")
        engine.compute_co_change("p1", 30, at(2))

        provider.add("mega", at(3), *[f"gen/f{i}.py" for i in range(105)])
        engine.compute_co_change("p1", 30, at(4))

        assert group_map(store) == {}
        assert all(sha != "mega" for _, sha in store.group_commit_keys("p1", "file"))


class TestMemberStats:
    def test_measured_at_latest_supporting_commit(self, engine, provider, store):
        provider.sizes = {"a.py": (120, 12)}
        provider.add("c1", at(1), "a.py", "b.py")
        provider.add("c2", at(2), "a.py", "b.py")

        engine.compute_co_change("p1", 30, at(3))

        stats = {s.member_path: s for s in store.list_member_stats("p1", "file", "a.py|b.py")}
        assert (stats["a.py"].size_bytes, stats["a.py"].loc) == (120, 12)
        assert (stats["b.py"].size_bytes, stats["b.py"].loc) == (None, None)
        assert {s.measured_commit_hash for s in stats.values()} == {"c2"}


class TestProviderFailures:
    def test_failed_fetch_in_delta_leaves_groups(self, engine, provider, store):
        provider.add("c1", at(1), "a.py", "b.py")
        provider.add("c2", at(2), "a.py", "b.py")
        engine.compute_co_change("p1", 30, at(3))

        provider.failing = True
        result = engine.compute_co_change("p1", 30, at(4))

        assert isinstance(result.decision, Delta)
        assert group_map(store) == {"a.py|b.py": (2, at(2))}
        assert store.get_watermark("p1", "co_change").last_run_at == at(4)

    def test_delta_after_failure_only_sees_new_range(self, engine, provider, store):
        """Commits in a range that failed are not retried by later deltas."""
        provider.add("c1", at(1), "a.py", "b.py")
        engine.compute_co_change("p1", 30, at(2))

        provider.add("c2", at(3), "a.py", "b.py")
        provider.failing = True
        engine.compute_co_change("p1", 30, at(4))
        provider.failing = False
        engine.compute_co_change("p1", 30, at(5))

        assert group_map(store) == {}

        # a full rebuild recovers the missed commit
        store.delete_watermark("p1", "co_change")
        engine.compute_co_change("p1", 30, at(5))
        assert group_map(store) == {"a.py|b.py": (2, at(3))}


LIB = "lib/a.ex|lib/b.ex"
SRC = "src/x.py|src/y.py"


@pytest.fixture
def break_writes(store, monkeypatch):
    """Make one store write method raise for a single group key."""

    def install(method: str, group_key: str) -> None:
        original = getattr(store, method)

        def failing(rows):
            if any(r.group_key == group_key for r in rows):
                raise PersistenceError(message=f"disk full writing {group_key}", code=ErrorCode.CH900)
            return original(rows)

        monkeypatch.setattr(store, method, failing)

    return install


class TestWriteFailures:
    """A failed provenance or member-stat write skips one group, not the run."""

    def test_full_rebuild_survives_provenance_failure(self, engine, provider, store, break_writes):
        provider.add("c1", at(0), "lib/a.ex", "lib/b.ex")
        provider.add("c2", at(0, 1), "lib/a.ex", "lib/b.ex")
        provider.add("c3", at(0, 2), "src/x.py", "src/y.py")
        provider.add("c4", at(0, 3), "src/x.py", "src/y.py")
        break_writes("insert_group_commits", LIB)

        result = engine.compute_co_change("p1", 30, at(1))

        assert group_map(store) == {LIB: (2, at(0, 1)), SRC: (2, at(0, 3))}
        assert store.list_group_commits("p1", "file", LIB) == []
        assert [r.commit_hash for r in store.list_group_commits("p1", "file", SRC)] == ["c3", "c4"]
        # group rows and seed rows for LIB both fail
        assert result.stats.scopes["file"].write_failures == 2
        assert store.get_watermark("p1", "co_change").last_run_at == at(1)

    def test_full_rebuild_survives_member_stats_failure(self, engine, provider, store, break_writes):
        provider.add("c1", at(0), "lib/a.ex", "lib/b.ex")
        provider.add("c2", at(0, 1), "lib/a.ex", "lib/b.ex")
        provider.add("c3", at(0, 2), "src/x.py", "src/y.py")
        provider.add("c4", at(0, 3), "src/x.py", "src/y.py")
        break_writes("upsert_member_stats", LIB)

        result = engine.compute_co_change("p1", 30, at(1))

        assert group_map(store) == {LIB: (2, at(0, 1)), SRC: (2, at(0, 3))}
        assert len(store.list_group_commits("p1", "file", LIB)) == 2
        assert store.list_member_stats("p1", "file", LIB) == []
        assert {s.member_path for s in store.list_member_stats("p1", "file", SRC)} == {"src/x.py", "src/y.py"}
        assert result.stats.scopes["file"].write_failures == 1
        assert store.get_watermark("p1", "co_change").version == 1

    def test_delta_survives_provenance_failure(self, engine, provider, store, break_writes):
        provider.add("c1", at(0), "lib/a.ex", "lib/b.ex")
        provider.add("c2", at(0, 1), "lib/a.ex", "lib/b.ex")
        provider.add("c3", at(0, 2), "src/x.py", "src/y.py")
        engine.compute_co_change("p1", 30, at(1))

        provider.add("c4", at(1, 1), "src/x.py", "src/y.py")
        provider.add("c5", at(1, 2), "lib/a.ex", "lib/b.ex")
        break_writes("insert_group_commits", LIB)
        result = engine.compute_co_change("p1", 30, at(2))

        assert isinstance(result.decision, Delta)
        assert group_map(store) == {LIB: (2, at(0, 1)), SRC: (2, at(1, 1))}
        assert result.stats.scopes["file"].write_failures == 1
        watermark = store.get_watermark("p1", "co_change")
        assert (watermark.last_run_at, watermark.version) == (at(2), 2)


class TestScopes:
    def test_file_and_directory_scopes(self, engine, provider, store):
        provider.add("c1", at(1), "lib/a.ex", "test/a_test.exs")
        provider.add("c2", at(2), "lib/b.ex", "test/b_test.exs")

        engine.compute_co_change("p1", 30, at(3))

        assert group_map(store, Scope.FILE.value) == {}
        assert group_map(store, Scope.DIRECTORY.value) == {"lib|test": (2, at(2))}
