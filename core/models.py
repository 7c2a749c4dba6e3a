"""Core data models for the memory benchmark."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any, Protocol, Tuple


class Role(str, Enum):
    """Speaker of a conversation message."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single conversation message. Immutable once created."""
    role: str
    content: str

    def __post_init__(self):
        if self.role not in (Role.USER.value, Role.ASSISTANT.value):
            raise ValueError(f"Unknown message role: {self.role!r}")

    @property
    def is_user(self) -> bool:
        return self.role == Role.USER.value

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary."""
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Create from dictionary."""
        return cls(role=data["role"], content=data.get("content", ""))


@dataclass
class ModelResponse:
    """Text returned by the external model plus its token accounting."""
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ModelClient(Protocol):
    """The external model boundary. Opaque, possibly slow, possibly failing."""

    async def chat(
        self,
        messages: List[Message],
        system_prompt: Optional[str] = None
    ) -> ModelResponse:
        ...

    async def invoke(
        self,
        prompt: str,
        system_prompt: Optional[str] = None
    ) -> ModelResponse:
        ...


@dataclass
class StoreEntry:
    """
    One parsed fact.

    ``key`` is only used for merge matching; ``value`` is the full source
    line, kept verbatim so exact values (phone numbers, codes, amounts) survive.
    """
    key: str
    value: str


@dataclass
class StepMetrics:
    """Token and latency accounting for one conversation step."""
    step: int
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0
    overhead_tokens: int = 0  # spent on summarization / delegation

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "step": self.step,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "latency_ms": self.latency_ms,
            "overhead_tokens": self.overhead_tokens
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepMetrics":
        """Create from dictionary."""
        return cls(
            step=data.get("step", 0),
            input_tokens=data.get("input_tokens", 0),
            output_tokens=data.get("output_tokens", 0),
            latency_ms=data.get("latency_ms", 0.0),
            overhead_tokens=data.get("overhead_tokens", 0)
        )


@dataclass
class ResultRecord:
    """Metrics for one completed (strategy, scenario) job."""
    strategy_name: str
    scenario_name: str
    steps: List[StepMetrics] = field(default_factory=list)
    final_answer: str = ""
    correct: bool = False

    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_overhead_tokens: int = 0
    total_latency_ms: float = 0.0
    estimated_cost_usd: float = 0.0
    peak_context_tokens: int = 0

    @property
    def job_key(self) -> Tuple[str, str]:
        """Identity of the job that produced this record."""
        return (self.strategy_name, self.scenario_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "strategy_name": self.strategy_name,
            "scenario_name": self.scenario_name,
            "steps": [s.to_dict() for s in self.steps],
            "final_answer": self.final_answer,
            "correct": self.correct,
            "total_input_tokens": self.total_input_tokens,
            "total_output_tokens": self.total_output_tokens,
            "total_overhead_tokens": self.total_overhead_tokens,
            "total_latency_ms": self.total_latency_ms,
            "estimated_cost_usd": self.estimated_cost_usd,
            "peak_context_tokens": self.peak_context_tokens
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResultRecord":
        """Create from dictionary."""
        return cls(
            strategy_name=data["strategy_name"],
            scenario_name=data["scenario_name"],
            steps=[StepMetrics.from_dict(s) for s in data.get("steps", [])],
            final_answer=data.get("final_answer", ""),
            correct=bool(data.get("correct", False)),
            total_input_tokens=data.get("total_input_tokens", 0),
            total_output_tokens=data.get("total_output_tokens", 0),
            total_overhead_tokens=data.get("total_overhead_tokens", 0),
            total_latency_ms=data.get("total_latency_ms", 0.0),
            estimated_cost_usd=data.get("estimated_cost_usd", 0.0),
            peak_context_tokens=data.get("peak_context_tokens", 0)
        )


@dataclass
class JobFailure:
    """A job that settled with an error."""
    strategy_name: str
    scenario_name: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary."""
        return {
            "strategy": self.strategy_name,
            "scenario": self.scenario_name,
            "error": self.error
        }


@dataclass
class RunManifest:
    """Run-level metadata written once when a job set finishes."""
    output_path: str
    started_at: str = ""
    finished_at: str = ""
    filters: Dict[str, Any] = field(default_factory=dict)
    strategies: List[str] = field(default_factory=list)
    scenarios: List[str] = field(default_factory=list)

    planned_runs: int = 0
    cached_runs: int = 0
    executed_runs: int = 0
    failed_runs: int = 0
    failures: List[JobFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "output_path": self.output_path,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "filters": self.filters,
            "strategies": self.strategies,
            "scenarios": self.scenarios,
            "planned_runs": self.planned_runs,
            "cached_runs": self.cached_runs,
            "executed_runs": self.executed_runs,
            "failed_runs": self.failed_runs,
            "failures": [f.to_dict() for f in self.failures]
        }
