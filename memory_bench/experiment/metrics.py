"""Metrics aggregation and reporting for benchmark runs."""

from typing import List, Dict, Any
from statistics import mean

from core.models import ResultRecord, StepMetrics


# Per-million-token pricing used for cost estimates
INPUT_COST_PER_1M = 0.80
OUTPUT_COST_PER_1M = 4.00


def calculate_cost(input_tokens: int, output_tokens: int) -> float:
    """Estimated USD cost of a token volume."""
    return (
        (input_tokens / 1_000_000) * INPUT_COST_PER_1M
        + (output_tokens / 1_000_000) * OUTPUT_COST_PER_1M
    )


def aggregate_steps(
    strategy_name: str,
    scenario_name: str,
    steps: List[StepMetrics],
    final_answer: str,
    correct: bool
) -> ResultRecord:
    """Fold per-step metrics into one result. Overhead tokens are billed as input."""
    total_input = sum(s.input_tokens for s in steps)
    total_output = sum(s.output_tokens for s in steps)
    total_overhead = sum(s.overhead_tokens for s in steps)

    return ResultRecord(
        strategy_name=strategy_name,
        scenario_name=scenario_name,
        steps=list(steps),
        final_answer=final_answer,
        correct=correct,
        total_input_tokens=total_input,
        total_output_tokens=total_output,
        total_overhead_tokens=total_overhead,
        total_latency_ms=sum(s.latency_ms for s in steps),
        estimated_cost_usd=calculate_cost(total_input + total_overhead, total_output),
        peak_context_tokens=max((s.input_tokens for s in steps), default=0)
    )


class MetricsCollector:
    """Collects and aggregates results across benchmark runs."""

    def __init__(self, results: List[ResultRecord] = None):
        self.results: List[ResultRecord] = list(results or [])

    def add(self, result: ResultRecord):
        """Add the result of a single run."""
        self.results.append(result)

    def _group(self, attr: str) -> Dict[str, List[ResultRecord]]:
        groups: Dict[str, List[ResultRecord]] = {}
        for r in self.results:
            groups.setdefault(getattr(r, attr), []).append(r)
        return groups

    def aggregate_by_strategy(self) -> Dict[str, Dict[str, Any]]:
        """Aggregate results grouped by strategy."""
        return {
            strategy: self._compute_aggregates(results)
            for strategy, results in self._group("strategy_name").items()
        }

    def aggregate_by_scenario(self) -> Dict[str, Dict[str, Any]]:
        """Aggregate results grouped by scenario."""
        return {
            scenario: self._compute_aggregates(results)
            for scenario, results in self._group("scenario_name").items()
        }

    def _compute_aggregates(self, results: List[ResultRecord]) -> Dict[str, Any]:
        """Compute aggregate statistics for a list of results."""
        if not results:
            return {}

        return {
            "count": len(results),
            "accuracy": sum(1 for r in results if r.correct) / len(results),
            "avg_input_tokens": mean(r.total_input_tokens for r in results),
            "avg_overhead_tokens": mean(r.total_overhead_tokens for r in results),
            "avg_peak_context_tokens": mean(r.peak_context_tokens for r in results),
            "avg_latency_seconds": mean(r.total_latency_ms for r in results) / 1000,
            "total_cost_usd": sum(r.estimated_cost_usd for r in results)
        }

    def generate_report(self) -> str:
        """Generate a human-readable report."""
        lines = [
            "=" * 96,
            "BENCHMARK RESULTS",
            "=" * 96,
        ]

        for scenario, results in self._group("scenario_name").items():
            lines.append(f"\n--- {scenario} ---\n")
            lines.append(
                f"{'Strategy':<24} | {'Correct':>7} | {'Input Tok':>10} | {'Overhead':>9} | "
                f"{'Peak Ctx':>9} | {'Latency':>8} | {'Cost':>9}"
            )
            lines.append("-" * 96)
            for r in results:
                lines.append(
                    f"{r.strategy_name:<24} | {'YES' if r.correct else 'NO':>7} | "
                    f"{r.total_input_tokens:>10,} | {r.total_overhead_tokens:>9,} | "
                    f"{r.peak_context_tokens:>9,} | {r.total_latency_ms / 1000:>7.1f}s | "
                    f"${r.estimated_cost_usd:>8.4f}"
                )

        lines.extend([
            "\n" + "=" * 96,
            "OVERALL SUMMARY",
            "=" * 96,
            f"{'Strategy':<24} | {'Accuracy':>8} | {'Avg Input':>10} | {'Avg Overhead':>12} | "
            f"{'Avg Latency':>11} | {'Total Cost':>10}",
            "-" * 96,
        ])

        for strategy, stats in self.aggregate_by_strategy().items():
            lines.append(
                f"{strategy:<24} | {stats['accuracy'] * 100:>7.0f}% | "
                f"{round(stats['avg_input_tokens']):>10,} | {round(stats['avg_overhead_tokens']):>12,} | "
                f"{stats['avg_latency_seconds']:>10.1f}s | ${stats['total_cost_usd']:>9.4f}"
            )

        return "\n".join(lines)
