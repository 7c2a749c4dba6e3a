#!/usr/bin/env python3
"""
CLI entry point for the long-conversation memory benchmark.

Usage:
    # Every strategy against every scenario
    python -m memory_bench.run_benchmark

    # One strategy, first two scenarios
    python -m memory_bench.run_benchmark --strategy PersistentRLM --quick

    # Continue an interrupted run
    python -m memory_bench.run_benchmark --resume results/benchmark-20261019-101500.json
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime

from config import get_settings
from core.exceptions import ConfigurationError
from agents.bedrock_client import BedrockClient
from .config import BenchmarkConfig, SCENARIOS, build_strategy_factories
from .experiment.runner import BenchmarkRunner
from .experiment.metrics import MetricsCollector

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Benchmark conversation memory strategies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Only the delegation strategies on the contradiction scenario
  python -m memory_bench.run_benchmark --strategy RLM --scenario contradiction

  # Three random scenarios, reproducible
  python -m memory_bench.run_benchmark --sample 3 --seed 42

  # One job at a time
  python -m memory_bench.run_benchmark --sequential
        """
    )

    # Job selection
    parser.add_argument(
        '--strategy',
        help='Only run strategies whose name contains this text (case-insensitive)'
    )
    parser.add_argument(
        '--scenario',
        help='Only run scenarios whose name contains this text (case-insensitive)'
    )
    parser.add_argument(
        '--quick',
        action='store_true',
        help='Only run the first two scenarios'
    )
    parser.add_argument(
        '--sample',
        type=int,
        help='Run a random subset of N scenarios'
    )
    parser.add_argument(
        '--seed',
        type=int,
        help='Random seed for --sample'
    )

    # Scheduling
    parser.add_argument(
        '--concurrency',
        type=int,
        default=settings.default_concurrency,
        help=f'Maximum jobs in flight (default: {settings.default_concurrency})'
    )
    parser.add_argument(
        '--sequential',
        action='store_true',
        help='Run jobs one at a time'
    )

    # Output options
    output_group = parser.add_mutually_exclusive_group()
    output_group.add_argument(
        '--resume',
        metavar='PATH',
        help='Continue a previous run, skipping jobs already in this results file'
    )
    output_group.add_argument(
        '--output',
        metavar='PATH',
        help='Results file (default: <RESULTS_DIR>/benchmark-<timestamp>.json)'
    )
    parser.add_argument(
        '--list',
        action='store_true',
        help='List strategies and scenarios, then exit'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    return parser.parse_args(argv)


def build_config(args) -> BenchmarkConfig:
    """Translate CLI arguments into a validated run configuration."""
    return BenchmarkConfig(
        output_path=args.resume or args.output,
        concurrency=args.concurrency,
        sequential=args.sequential,
        resume=args.resume is not None,
        strategy_filter=args.strategy,
        scenario_filter=args.scenario,
        quick=args.quick,
        sample=args.sample,
        seed=args.seed
    )


def print_catalog():
    """Print the registered strategies and scenarios."""
    print("Strategies:")
    for factory in build_strategy_factories():
        print(f"  {factory.name}")
    print("\nScenarios:")
    for scenario in SCENARIOS:
        print(f"  {scenario.name} ({len(scenario.steps)} steps): {scenario.description}")


async def run(config: BenchmarkConfig) -> int:
    """Run the benchmark and print the report. Returns the process exit code."""
    client = BedrockClient()
    runner = BenchmarkRunner(
        client=client,
        strategies=build_strategy_factories(),
        scenarios=SCENARIOS,
        config=config
    )

    manifest = await runner.run()

    collector = MetricsCollector(runner.result_log.results)
    print("\n" + collector.generate_report())
    print(
        f"\nPlanned: {manifest.planned_runs}  Cached: {manifest.cached_runs}  "
        f"Executed: {manifest.executed_runs}  Failed: {manifest.failed_runs}"
    )
    print(f"Results: {manifest.output_path}")

    for failure in manifest.failures:
        print(f"  FAILED {failure.strategy_name} × {failure.scenario_name}: {failure.error}")

    return 1 if manifest.failed_runs else 0


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.list:
        print_catalog()
        return 0

    start_time = datetime.now()

    try:
        config = build_config(args)
        exit_code = asyncio.run(run(config))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\n\nInterrupted by user. Completed results are saved; rerun with --resume to continue.")
        return 130
    except Exception as e:
        logger.exception(f"Error running benchmark: {e}")
        return 1

    duration = (datetime.now() - start_time).total_seconds()
    print(f"\nTotal time: {duration:.1f}s")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
