"""Benchmark runner: plays scenarios against strategies and persists the results."""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple

from core.exceptions import ConfigurationError
from core.models import Message, ModelClient, ModelResponse, StepMetrics, ResultRecord, JobFailure, RunManifest
from ..context.strategies import MemoryStrategy, StrategyContext, StrategyFactory
from ..config import BenchmarkConfig, Scenario
from .limiter import ConcurrencyLimiter
from .metrics import aggregate_steps
from .result_log import ResultLog

logger = logging.getLogger(__name__)


class ScenarioOrchestrator:
    """
    Plays one scripted scenario through one memory strategy.

    Every step adds the user message, asks the strategy for context, calls
    the model and feeds the reply back. The final question is asked the
    same way; its answer is checked but not added to memory.
    """

    def __init__(
        self,
        strategy: MemoryStrategy,
        scenario: Scenario,
        client: ModelClient,
        strategy_name: Optional[str] = None
    ):
        self.strategy = strategy
        self.strategy_name = strategy_name or strategy.name
        self.scenario = scenario
        self.client = client
        self.steps: List[StepMetrics] = []

    async def run(self) -> ResultRecord:
        self.strategy.reset()
        self.steps = []

        for i, text in enumerate(self.scenario.steps):
            response = await self._ask(text, step=i + 1)
            self.strategy.add_message(Message(role="assistant", content=response.text))
            logger.debug(
                f"[{self.strategy_name} × {self.scenario.name}] step {i + 1}/{len(self.scenario.steps)}: "
                f"{response.input_tokens} in / {response.output_tokens} out"
            )

        final = await self._ask(self.scenario.final_question, step=len(self.scenario.steps) + 1)
        correct = bool(self.scenario.check_answer(final.text))

        logger.info(
            f"[{self.strategy_name} × {self.scenario.name}] {'PASS' if correct else 'FAIL'}"
        )

        return aggregate_steps(
            strategy_name=self.strategy_name,
            scenario_name=self.scenario.name,
            steps=self.steps,
            final_answer=final.text,
            correct=correct
        )

    async def _ask(self, text: str, step: int) -> ModelResponse:
        self.strategy.add_message(Message(role="user", content=text))
        context = await self.strategy.get_context()

        response = await self.client.chat(context.messages, system_prompt=self._system_prompt(context))
        self.steps.append(StepMetrics(
            step=step,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            latency_ms=response.latency_ms,
            overhead_tokens=context.overhead_tokens
        ))
        return response

    def _system_prompt(self, context: StrategyContext) -> str:
        parts = [self.scenario.system_prompt, context.system]
        return "\n\n".join(p for p in parts if p)


@dataclass(frozen=True)
class BenchmarkJob:
    """One (strategy, scenario) pair to run."""
    strategy: StrategyFactory
    scenario: Scenario

    @property
    def key(self) -> Tuple[str, str]:
        return (self.strategy.name, self.scenario.name)


def _matches(name: str, pattern: Optional[str]) -> bool:
    return pattern is None or pattern.lower() in name.lower()


@dataclass
class BenchmarkRunner:
    """
    Runs every selected strategy against every selected scenario.

    Jobs already present in the result log are skipped, the rest go through
    the concurrency limiter (or one at a time when ``sequential`` is set).
    A failing job is logged and counted; it never stops its siblings. Each
    completed result is written to disk as soon as it arrives, so an
    interrupted run can be resumed from the same file.
    """

    client: ModelClient
    strategies: List[StrategyFactory]
    scenarios: List[Scenario]
    config: BenchmarkConfig = field(default_factory=BenchmarkConfig)

    result_log: ResultLog = field(init=False)
    failures: List[JobFailure] = field(default_factory=list, init=False)
    executed: int = field(default=0, init=False)
    _completed: int = field(default=0, init=False)
    _total: int = field(default=0, init=False)

    def __post_init__(self):
        self.result_log = ResultLog(self.config.output_path)

    def select_strategies(self) -> List[StrategyFactory]:
        selected = [s for s in self.strategies if _matches(s.name, self.config.strategy_filter)]
        if not selected:
            raise ConfigurationError(f"No strategy matches {self.config.strategy_filter!r}")
        return selected

    def select_scenarios(self) -> List[Scenario]:
        """Apply the name filter, then ``quick``, then the seeded random sample."""
        selected = [s for s in self.scenarios if _matches(s.name, self.config.scenario_filter)]
        if not selected:
            raise ConfigurationError(f"No scenario matches {self.config.scenario_filter!r}")

        if self.config.quick:
            selected = selected[:2]

        if self.config.sample is not None and self.config.sample < len(selected):
            rng = random.Random(self.config.seed)
            chosen = set(id(s) for s in rng.sample(selected, self.config.sample))
            # keep catalog order
            selected = [s for s in selected if id(s) in chosen]

        return selected

    def plan_jobs(
        self,
        strategies: List[StrategyFactory],
        scenarios: List[Scenario],
        completed: Set[Tuple[str, str]]
    ) -> List[BenchmarkJob]:
        """Every (strategy × scenario) pair whose result is not already logged."""
        jobs = [
            BenchmarkJob(strategy=strategy, scenario=scenario)
            for scenario in scenarios
            for strategy in strategies
        ]
        return [job for job in jobs if job.key not in completed]

    async def run(self) -> RunManifest:
        """Run all planned jobs and write the manifest. Returns it as well."""
        started_at = datetime.now(timezone.utc)
        strategies = self.select_strategies()
        scenarios = self.select_scenarios()

        if self.config.resume:
            self.result_log.load()
        completed = self.result_log.completed_pairs()

        planned = len(strategies) * len(scenarios)
        jobs = self.plan_jobs(strategies, scenarios, completed)
        cached = planned - len(jobs)

        self.failures = []
        self.executed = 0
        self._completed = 0
        self._total = len(jobs)

        logger.info(
            f"Running {len(jobs)} jobs ({cached} cached) across {len(strategies)} strategies "
            f"and {len(scenarios)} scenarios"
            + (" sequentially" if self.config.sequential else f" with concurrency {self.config.concurrency}")
        )

        if self.config.sequential:
            for job in jobs:
                await self._run_job(job)
        else:
            limiter = ConcurrencyLimiter(self.config.concurrency)
            await asyncio.gather(*(limiter.run(self._run_job, job) for job in jobs))

        await self.result_log.flush()

        manifest = RunManifest(
            output_path=str(self.result_log.path),
            started_at=started_at.isoformat(),
            finished_at=datetime.now(timezone.utc).isoformat(),
            filters=self.config.filters(),
            strategies=[s.name for s in strategies],
            scenarios=[s.name for s in scenarios],
            planned_runs=planned,
            cached_runs=cached,
            executed_runs=self.executed,
            failed_runs=len(self.failures),
            failures=list(self.failures)
        )
        try:
            self.result_log.write_manifest(manifest)
        except OSError as e:
            logger.warning(f"Failed to write manifest for {self.result_log.path}: {e}")

        logger.info(
            f"Done: {self.executed} executed, {cached} cached, {len(self.failures)} failed. "
            f"Results in {self.result_log.path}"
        )
        return manifest

    async def _run_job(self, job: BenchmarkJob) -> Optional[ResultRecord]:
        strategy_name, scenario_name = job.key
        try:
            strategy = job.strategy.create(self.client)
            result = await ScenarioOrchestrator(
                strategy, job.scenario, self.client, strategy_name=strategy_name
            ).run()
        except Exception as e:
            logger.error(f"[{strategy_name} × {scenario_name}] failed: {e}")
            self.failures.append(JobFailure(strategy_name, scenario_name, str(e)))
            return None
        finally:
            self._completed += 1
            logger.info(f"[{self._completed}/{self._total}] {strategy_name} × {scenario_name}")

        await self.result_log.record(result)
        self.executed += 1
        return result
