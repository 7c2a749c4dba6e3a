"""Tests for scenario orchestration and the benchmark runner."""

import json

import pytest

from core.exceptions import ConfigurationError
from core.models import ResultRecord
from memory_bench.config import BenchmarkConfig, Scenario
from memory_bench.context.strategies import (
    StrategyFactory,
    FullContextStrategy,
    SlidingWindowStrategy,
    PersistentDelegationStrategy,
)
from memory_bench.experiment import result_log as result_log_module
from memory_bench.experiment.runner import BenchmarkRunner, BenchmarkJob, ScenarioOrchestrator
from memory_bench.experiment.result_log import manifest_path_for


def _scenario(name, system_prompt="You are a helpful assistant.", steps=("hello", "world")):
    return Scenario(
        name=name,
        description=f"{name} description",
        system_prompt=system_prompt,
        steps=list(steps),
        final_question="What did I say?",
        check_answer=lambda answer: "yes" in answer.lower()
    )


FULL_CONTEXT = StrategyFactory("Full Context", lambda client: FullContextStrategy())
WINDOW = StrategyFactory("Window(2)", lambda client: SlidingWindowStrategy(window_size=2))


class TestScenarioOrchestrator:
    """Tests for playing one scenario through one strategy."""

    @pytest.mark.asyncio
    async def test_plays_steps_and_final_question(self, make_client):
        """Every step and the final question hit the model; the answer is checked."""
        client = make_client(chat_reply="Yes, noted.")
        strategy = FullContextStrategy()
        scenario = _scenario("Recall", steps=["one", "two", "three"])

        result = await ScenarioOrchestrator(strategy, scenario, client).run()

        assert len(client.chat_calls) == 4
        assert [s.step for s in result.steps] == [1, 2, 3, 4]
        assert result.correct is True
        assert result.final_answer == "Yes, noted."
        assert result.job_key == ("Full Context", "Recall")

        final_messages, system_prompt = client.chat_calls[-1]
        assert final_messages[-1].content == "What did I say?"
        assert system_prompt == "You are a helpful assistant."
        # the final answer is not fed back into memory
        assert strategy.get_stats()["total_messages"] == 7

    @pytest.mark.asyncio
    async def test_failed_check(self, make_client):
        """A wrong final answer is recorded as incorrect."""
        client = make_client(chat_reply="I don't remember.")

        result = await ScenarioOrchestrator(FullContextStrategy(), _scenario("Recall"), client).run()

        assert result.correct is False

    @pytest.mark.asyncio
    async def test_knowledge_joins_system_prompt(self, make_client):
        """Strategy system context follows the scenario prompt."""
        client = make_client(invoke_replies=["IDENTIFIERS:\n- code: X1"], chat_reply="ok")
        strategy = PersistentDelegationStrategy(client=client, compress_every=2, recent_window=2)
        scenario = _scenario("Codes", system_prompt="Track codes.", steps=["a", "b", "c"])

        result = await ScenarioOrchestrator(strategy, scenario, client).run()

        system_prompt = client.chat_calls[1][1]
        assert system_prompt.startswith("Track codes.\n\nDELEGATED KNOWLEDGE")
        assert "- code: X1" in system_prompt
        assert result.total_overhead_tokens > 0
        assert result.peak_context_tokens == max(s.input_tokens for s in result.steps)


class TestJobSelection:
    """Tests for scenario selection and job planning."""

    def setup_method(self):
        self.scenarios = [_scenario(f"Scenario {i}") for i in range(5)]

    def _runner(self, client, **config):
        return BenchmarkRunner(
            client=client,
            strategies=[FULL_CONTEXT, WINDOW],
            scenarios=self.scenarios,
            config=BenchmarkConfig(output_path="unused.json", **config)
        )

    def test_filter_is_case_insensitive_substring(self, fake_client):
        """Name filters match anywhere, ignoring case."""
        runner = self._runner(fake_client, scenario_filter="scenario 3", strategy_filter="window")

        assert [s.name for s in runner.select_scenarios()] == ["Scenario 3"]
        assert [s.name for s in runner.select_strategies()] == ["Window(2)"]

    def test_quick_takes_first_two(self, fake_client):
        """Quick mode keeps the first two scenarios."""
        runner = self._runner(fake_client, quick=True)

        assert [s.name for s in runner.select_scenarios()] == ["Scenario 0", "Scenario 1"]

    def test_sample_is_seeded(self, fake_client):
        """The same seed picks the same subset, in catalog order."""
        first = [s.name for s in self._runner(fake_client, sample=3, seed=7).select_scenarios()]
        second = [s.name for s in self._runner(fake_client, sample=3, seed=7).select_scenarios()]

        assert first == second
        assert len(first) == 3
        assert first == sorted(first)

    def test_no_match_is_a_configuration_error(self, fake_client):
        """A filter that selects nothing fails before any job runs."""
        runner = self._runner(fake_client, scenario_filter="nonexistent")

        with pytest.raises(ConfigurationError):
            runner.select_scenarios()

    def test_plan_excludes_completed_pairs(self, fake_client):
        """Completed pairs are not planned again."""
        runner = self._runner(fake_client)
        jobs = runner.plan_jobs(
            [FULL_CONTEXT, WINDOW],
            self.scenarios[:2],
            {("Window(2)", "Scenario 0")}
        )

        assert [job.key for job in jobs] == [
            ("Full Context", "Scenario 0"),
            ("Full Context", "Scenario 1"),
            ("Window(2)", "Scenario 1"),
        ]
        assert isinstance(jobs[0], BenchmarkJob)

    def test_invalid_config(self):
        """Bad concurrency or sample values are rejected up front."""
        with pytest.raises(ConfigurationError):
            BenchmarkConfig(output_path="unused.json", concurrency=0)
        with pytest.raises(ConfigurationError):
            BenchmarkConfig(output_path="unused.json", sample=0)


class TestBenchmarkRunner:
    """Tests for running job sets end to end."""

    def setup_method(self):
        self.scenarios = [_scenario(f"Scenario {i}") for i in range(4)]
        self.scenarios.append(_scenario("Scenario Boom", system_prompt="explode"))

    @staticmethod
    def _chat(messages, system_prompt):
        if system_prompt == "explode":
            return RuntimeError("rate limited")
        return "yes"

    @pytest.mark.asyncio
    async def test_failed_job_does_not_stop_siblings(self, make_client, tmp_path):
        """Five jobs, one failing: four results and one reported failure."""
        client = make_client(chat_handler=self._chat, delay=0.001)
        output = tmp_path / "run.json"
        runner = BenchmarkRunner(
            client=client,
            strategies=[FULL_CONTEXT],
            scenarios=self.scenarios,
            config=BenchmarkConfig(output_path=str(output), concurrency=2)
        )

        manifest = await runner.run()

        assert len(json.loads(output.read_text())) == 4
        assert manifest.planned_runs == 5
        assert manifest.executed_runs == 4
        assert manifest.failed_runs == 1
        assert manifest.failures[0].scenario_name == "Scenario Boom"
        assert "rate limited" in manifest.failures[0].error

        on_disk = json.loads(manifest_path_for(output).read_text())
        assert on_disk["failed_runs"] == 1
        assert on_disk["filters"]["concurrency"] == 2

    @pytest.mark.asyncio
    async def test_resume_skips_completed_pairs(self, make_client, tmp_path):
        """A pair already in the log is reported as cached, not executed."""
        output = tmp_path / "run.json"
        done = ResultRecord(strategy_name="Full Context", scenario_name="Scenario 0", correct=True)
        output.write_text(json.dumps([done.to_dict()]))

        client = make_client(chat_reply="yes")
        runner = BenchmarkRunner(
            client=client,
            strategies=[FULL_CONTEXT],
            scenarios=self.scenarios[:4],
            config=BenchmarkConfig(output_path=str(output), concurrency=2, resume=True)
        )

        manifest = await runner.run()

        assert manifest.cached_runs == 1
        assert manifest.executed_runs == 3
        assert manifest.failed_runs == 0
        # three scenarios, two steps plus the final question each
        assert len(client.chat_calls) == 9
        assert len(json.loads(output.read_text())) == 4

    @pytest.mark.asyncio
    async def test_results_are_keyed_by_registered_name(self, make_client, tmp_path):
        """A factory name that differs from the strategy's own name still resumes."""
        output = tmp_path / "run.json"
        renamed = StrategyFactory("Baseline", lambda client: FullContextStrategy())

        first = BenchmarkRunner(
            client=make_client(chat_reply="yes"),
            strategies=[renamed],
            scenarios=self.scenarios[:2],
            config=BenchmarkConfig(output_path=str(output))
        )
        await first.run()

        assert {item["strategy_name"] for item in json.loads(output.read_text())} == {"Baseline"}

        client = make_client(chat_reply="yes")
        second = BenchmarkRunner(
            client=client,
            strategies=[renamed],
            scenarios=self.scenarios[:2],
            config=BenchmarkConfig(output_path=str(output), resume=True)
        )
        manifest = await second.run()

        assert manifest.cached_runs == 2
        assert manifest.executed_runs == 0
        assert client.chat_calls == []

    @pytest.mark.asyncio
    async def test_without_resume_nothing_is_cached(self, make_client, tmp_path):
        """A fresh run ignores whatever is already at the output path."""
        output = tmp_path / "run.json"
        done = ResultRecord(strategy_name="Full Context", scenario_name="Scenario 0")
        output.write_text(json.dumps([done.to_dict()]))

        runner = BenchmarkRunner(
            client=make_client(chat_reply="yes"),
            strategies=[FULL_CONTEXT],
            scenarios=self.scenarios[:2],
            config=BenchmarkConfig(output_path=str(output))
        )

        manifest = await runner.run()

        assert manifest.cached_runs == 0
        assert manifest.executed_runs == 2

    @pytest.mark.asyncio
    async def test_sequential_mode(self, make_client, tmp_path):
        """Sequential runs give the same accounting."""
        runner = BenchmarkRunner(
            client=make_client(chat_handler=self._chat),
            strategies=[FULL_CONTEXT, WINDOW],
            scenarios=self.scenarios,
            config=BenchmarkConfig(output_path=str(tmp_path / "run.json"), sequential=True)
        )

        manifest = await runner.run()

        assert manifest.planned_runs == 10
        assert manifest.executed_runs == 8
        assert manifest.failed_runs == 2
        assert {f.strategy_name for f in manifest.failures} == {"Full Context", "Window(2)"}

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_running(self, make_client, tmp_path, monkeypatch):
        """Disk errors are logged and results stay in memory."""
        def broken_write(path, data):
            raise OSError("read-only file system")

        monkeypatch.setattr(result_log_module, "atomic_write_json", broken_write)
        runner = BenchmarkRunner(
            client=make_client(chat_reply="yes"),
            strategies=[FULL_CONTEXT],
            scenarios=self.scenarios[:3],
            config=BenchmarkConfig(output_path=str(tmp_path / "run.json"), concurrency=3)
        )

        manifest = await runner.run()

        assert manifest.executed_runs == 3
        assert len(runner.result_log.results) == 3
        assert not (tmp_path / "run.json").exists()

    @pytest.mark.asyncio
    async def test_configuration_error_before_any_job(self, fake_client, tmp_path):
        """An empty selection raises without calling the model."""
        runner = BenchmarkRunner(
            client=fake_client,
            strategies=[FULL_CONTEXT],
            scenarios=self.scenarios,
            config=BenchmarkConfig(output_path=str(tmp_path / "run.json"), strategy_filter="nope")
        )

        with pytest.raises(ConfigurationError):
            await runner.run()

        assert fake_client.chat_calls == []
