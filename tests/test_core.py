"""Tests for core data models and exceptions."""

import pytest

from core.exceptions import MemoryBenchError, ConfigurationError, ModelCallError
from core.models import (
    Message, Role, ModelResponse, StepMetrics, ResultRecord, JobFailure, RunManifest
)


class TestModels:
    """Tests for core data models."""

    def test_message_roles(self):
        """Only user and assistant messages exist."""
        message = Message(role=Role.USER.value, content="Hello")

        assert message.is_user
        assert not Message(role="assistant", content="Hi").is_user
        with pytest.raises(ValueError):
            Message(role="system", content="nope")

    def test_message_is_immutable(self):
        """Messages cannot be edited after creation."""
        message = Message(role="user", content="Hello")

        with pytest.raises(AttributeError):
            message.content = "changed"

    def test_message_dict(self):
        """Message converts to and from the wire format."""
        message = Message.from_dict({"role": "assistant", "content": "Noted."})

        assert message.to_dict() == {"role": "assistant", "content": "Noted."}

    def test_model_response_total(self):
        """Total tokens counts both directions."""
        assert ModelResponse(text="x", input_tokens=12, output_tokens=3).total_tokens == 15

    def test_result_record_from_dict(self):
        """Result records restore from the result log format."""
        data = {
            "strategy_name": "Window(10)",
            "scenario_name": "State Change Tracking",
            "steps": [{"step": 1, "input_tokens": 40, "output_tokens": 8}],
            "correct": True,
            "total_input_tokens": 40
        }

        record = ResultRecord.from_dict(data)

        assert record.job_key == ("Window(10)", "State Change Tracking")
        assert record.steps == [StepMetrics(step=1, input_tokens=40, output_tokens=8)]
        assert record.correct is True
        assert record.to_dict()["steps"][0]["overhead_tokens"] == 0

    def test_manifest_dict(self):
        """Failures are listed with their job identity."""
        manifest = RunManifest(
            output_path="results/run.json",
            failed_runs=1,
            failures=[JobFailure("RLM(8)", "Early Fact Recall", "timeout")]
        )

        data = manifest.to_dict()

        assert data["failures"] == [{"strategy": "RLM(8)", "scenario": "Early Fact Recall", "error": "timeout"}]
        assert data["cached_runs"] == 0


class TestExceptions:
    """Tests for the error taxonomy."""

    def test_hierarchy(self):
        """All benchmark errors share one base class."""
        assert issubclass(ConfigurationError, MemoryBenchError)
        assert issubclass(ModelCallError, MemoryBenchError)

    def test_model_call_error_carries_model(self):
        """The failing model id is kept on the error."""
        error = ModelCallError("throttled", model_id="anthropic.claude-3-5-haiku-20241022-v1:0")

        assert str(error) == "throttled"
        assert error.model_id.startswith("anthropic.")
