"""Benchmark harness: concurrent scenario runs with a resumable result log."""

from .limiter import ConcurrencyLimiter
from .result_log import ResultLog, atomic_write_json, manifest_path_for
from .runner import BenchmarkRunner, BenchmarkJob, ScenarioOrchestrator
from .metrics import MetricsCollector, aggregate_steps, calculate_cost

__all__ = [
    "ConcurrencyLimiter",
    "ResultLog",
    "atomic_write_json",
    "manifest_path_for",
    "BenchmarkRunner",
    "BenchmarkJob",
    "ScenarioOrchestrator",
    "MetricsCollector",
    "aggregate_steps",
    "calculate_cost"
]
