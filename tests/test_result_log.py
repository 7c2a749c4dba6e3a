"""Tests for the crash-safe result log."""

import asyncio
import json
import threading
import time
from pathlib import Path

import pytest

from core.models import ResultRecord, StepMetrics, RunManifest, JobFailure
from memory_bench.experiment import result_log as result_log_module
from memory_bench.experiment.result_log import ResultLog, atomic_write_json, manifest_path_for


def _record(strategy="Full Context", scenario="Early Fact Recall"):
    return ResultRecord(
        strategy_name=strategy,
        scenario_name=scenario,
        steps=[StepMetrics(step=1, input_tokens=100, output_tokens=10, latency_ms=12.5)],
        final_answer="Budget is $347,250",
        correct=True,
        total_input_tokens=100,
        total_output_tokens=10
    )


class TestAtomicWrite:
    """Tests for temp-file-and-rename writes."""

    def test_writes_json_without_leftovers(self, tmp_path):
        """Only the target file remains after a write."""
        path = tmp_path / "nested" / "out.json"

        atomic_write_json(path, [{"a": 1}])

        assert json.loads(path.read_text()) == [{"a": 1}]
        assert [p.name for p in path.parent.iterdir()] == ["out.json"]

    def test_failed_write_keeps_previous_snapshot(self, tmp_path):
        """An unserializable payload leaves the old file intact."""
        path = tmp_path / "out.json"
        atomic_write_json(path, [1, 2])

        with pytest.raises(TypeError):
            atomic_write_json(path, [object()])

        assert json.loads(path.read_text()) == [1, 2]
        assert [p.name for p in tmp_path.iterdir()] == ["out.json"]

    def test_manifest_path(self):
        """The manifest sits beside the log with a .manifest.json suffix."""
        assert manifest_path_for("results/run.json") == Path("results/run.manifest.json")


class TestResultLog:
    """Tests for loading, recording and flushing results."""

    def test_missing_file_is_empty(self, tmp_path):
        """A fresh path has no completed jobs."""
        log = ResultLog(tmp_path / "run.json")

        assert log.load() == []
        assert log.completed_pairs() == set()

    def test_unreadable_file_starts_fresh(self, tmp_path):
        """A corrupt log is ignored rather than crashing the run."""
        path = tmp_path / "run.json"
        path.write_text("{not json")

        assert ResultLog(path).load() == []

    @pytest.mark.asyncio
    async def test_record_persists_full_collection(self, tmp_path):
        """Each record rewrites the whole array; a new log can resume from it."""
        path = tmp_path / "run.json"
        log = ResultLog(path)

        await log.record(_record())
        await log.record(_record(strategy="PersistentRLM"))

        reloaded = ResultLog(path)
        results = reloaded.load()

        assert len(json.loads(path.read_text())) == 2
        assert results[0] == _record()
        assert reloaded.completed_pairs() == {
            ("Full Context", "Early Fact Recall"),
            ("PersistentRLM", "Early Fact Recall"),
        }

    @pytest.mark.asyncio
    async def test_write_failure_is_not_fatal(self, tmp_path, monkeypatch):
        """A disk error is reported and the result stays in memory."""
        def broken_write(path, data):
            raise OSError("disk full")

        monkeypatch.setattr(result_log_module, "atomic_write_json", broken_write)
        log = ResultLog(tmp_path / "run.json")

        await log.record(_record())

        assert len(log.results) == 1
        assert await log.flush() is False
        assert not (tmp_path / "run.json").exists()

    @pytest.mark.asyncio
    async def test_concurrent_records_never_overlap_writes(self, tmp_path, monkeypatch):
        """Concurrent records write one at a time and the last snapshot has everything."""
        real_write = result_log_module.atomic_write_json
        guard = threading.Lock()
        active = []
        overlaps = []

        def slow_write(path, data):
            with guard:
                if active:
                    overlaps.append(len(active))
                active.append(path)
            time.sleep(0.01)
            real_write(path, data)
            with guard:
                active.pop()

        monkeypatch.setattr(result_log_module, "atomic_write_json", slow_write)
        path = tmp_path / "run.json"
        log = ResultLog(path)

        await asyncio.gather(*(log.record(_record(strategy=f"S{i}")) for i in range(20)))

        assert overlaps == []
        data = json.loads(path.read_text())
        assert sorted(item["strategy_name"] for item in data) == sorted(f"S{i}" for i in range(20))

    def test_write_manifest(self, tmp_path):
        """The manifest lands next to the log."""
        log = ResultLog(tmp_path / "run.json")
        manifest = RunManifest(
            output_path=str(log.path),
            planned_runs=2,
            executed_runs=1,
            failed_runs=1,
            failures=[JobFailure("Window(6)", "State Change Tracking", "throttled")]
        )

        path = log.write_manifest(manifest)

        assert path == tmp_path / "run.manifest.json"
        data = json.loads(path.read_text())
        assert data["failed_runs"] == 1
        assert data["failures"] == [
            {"strategy": "Window(6)", "scenario": "State Change Tracking", "error": "throttled"}
        ]
