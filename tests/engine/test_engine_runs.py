"""Run orchestration: watermarks, unavailable repositories, explicit runs."""

from datetime import datetime, timedelta, timezone

import pytest

from cochange_heat.config import EngineConfig
from cochange_heat.engine import AnalyticsEngine, Delta, Full, FullReason
from cochange_heat.persistence import Watermark
from cochange_heat.temporal.models import DatasetKind
from cochange_heat.temporal.sources import StaticRepoResolver, StoreRepoResolver

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(days: float, hours: float = 0) -> datetime:
    return T0 + timedelta(days=days, hours=hours)


class TestWatermarks:
    def test_first_run_creates_watermark(self, engine, store):
        result = engine.compute_co_change("p1", 30, at(1))

        assert result.watermark == Watermark("p1", "co_change", at(1), 30, version=1)
        assert store.get_watermark("p1", "co_change") == result.watermark
        assert store.get_watermark("p1", "heatmap") is None

    def test_each_run_replaces_watermark(self, engine, store):
        engine.compute_heatmap("p1", 30, at(1))
        engine.compute_heatmap("p1", 30, at(2))
        result = engine.compute_heatmap("p1", 14, at(3))

        assert result.decision == Full(FullReason.WINDOW_CHANGED)
        mark = store.get_watermark("p1", "heatmap")
        assert (mark.last_run_at, mark.window_days, mark.version) == (at(3), 14, 3)

    def test_stale_watermark_falls_back_to_full(self, engine, provider, store):
        provider.add("c1", at(1), "a.py", "b.py")
        provider.add("c2", at(2), "a.py", "b.py")
        engine.compute_co_change("p1", 30, at(3))

        provider.add("c3", at(40), "a.py", "b.py")
        provider.add("c4", at(41), "a.py", "b.py")
        result = engine.compute_co_change("p1", 30, at(45))

        assert result.decision == Full(FullReason.WATERMARK_TOO_OLD)
        groups = store.list_groups("p1", "file")
        assert [(g.group_key, g.frequency) for g in groups] == [("a.py|b.py", 2)]
        assert store.get_watermark("p1", "co_change").last_run_at == at(45)

    def test_run_does_not_persist_watermark(self, engine, store):
        mark = Watermark("p1", "co_change", at(1), 30, version=7)
        result = engine.run_co_change("p1", mark, 30, at(2))

        assert result.decision == Delta(previous_reference_date=at(1))
        assert result.watermark == Watermark("p1", "co_change", at(2), 30, version=8)
        assert store.get_watermark("p1", "co_change") is None

    def test_default_window_from_config(self, store, provider, repo_dir):
        engine = AnalyticsEngine(
            store, provider, StaticRepoResolver({"p1": repo_dir}), config=EngineConfig(window_days=7)
        )
        result = engine.compute_heatmap("p1", reference_date=at(1))
        assert result.watermark.window_days == 7

    def test_invalid_window_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.compute_heatmap("p1", 0, at(1))


class TestUnavailableRepository:
    def test_dataset_untouched_but_watermark_advances(self, store, provider, tmp_path):
        engine = AnalyticsEngine(store, provider, StaticRepoResolver({"p1": str(tmp_path / "gone")}))
        provider.add("c1", at(1), "a.py", "b.py")

        result = engine.compute_co_change("p1", 30, at(2))

        assert result.repo_available is False
        assert result.stats is None
        assert provider.fetch_calls == []
        assert store.get_watermark("p1", "co_change").version == 1

    def test_store_resolver_reads_registered_path(self, store, provider, repo_dir):
        store.register_project("p1", repo_dir, at(0))
        resolver = StoreRepoResolver(store)

        assert resolver.resolve("p1") == repo_dir
        assert resolver.resolve("unknown") is None


class TestComputeAll:
    def test_runs_both_datasets(self, engine, provider, store):
        provider.add("c1", at(1), "a.py", "b.py")
        provider.add("c2", at(2), "a.py", "b.py")

        results = engine.compute_all("p1", 30, at(3))

        assert [r.dataset_kind for r in results] == [DatasetKind.CO_CHANGE, DatasetKind.HEATMAP]
        assert len(store.list_groups("p1", "file")) == 1
        assert {r.relative_path for r in store.list_heatmaps("p1")} == {"a.py", "b.py"}
        assert {w.dataset_kind for w in store.list_watermarks("p1")} == {"co_change", "heatmap"}
