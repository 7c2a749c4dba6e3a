"""Memory strategies: what a long conversation looks like to the model each turn."""

import logging
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Callable
from dataclasses import dataclass, field

from core.exceptions import ConfigurationError
from core.models import Message, ModelClient
from .delegation import CompressionScheduler, format_transcript, trim_to_user_start
from .summarizer import ConversationSummarizer

logger = logging.getLogger(__name__)


PERSISTENT_KNOWLEDGE_HEADER = "DELEGATED KNOWLEDGE (extracted from earlier conversation):"
WHOLESALE_KNOWLEDGE_HEADER = "DELEGATED KNOWLEDGE (processed by sub-agent from earlier conversation):"
SUMMARY_HEADER = "CONVERSATION SUMMARY (earlier context):"


@dataclass
class StrategyContext:
    """What to send to the model for the next turn."""
    messages: List[Message]
    system: Optional[str] = None
    overhead_tokens: int = 0  # spent on summarization/delegation this step


class MemoryStrategy(ABC):
    """Contract every memory strategy implements."""

    name: str

    @abstractmethod
    def reset(self):
        """Drop all state before a new scenario."""
        pass

    @abstractmethod
    def add_message(self, message: Message):
        """Record a message. Never calls the model."""
        pass

    @abstractmethod
    async def get_context(self) -> StrategyContext:
        """Build the context for the next model call; compression happens here."""
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the strategy's behavior."""
        pass


@dataclass
class FullContextStrategy(MemoryStrategy):
    """
    Baseline strategy: send the whole conversation every time.
    """

    name: str = "Full Context"
    _messages: List[Message] = field(default_factory=list, init=False)

    def reset(self):
        self._messages = []

    def add_message(self, message: Message):
        self._messages.append(message)

    async def get_context(self) -> StrategyContext:
        return StrategyContext(messages=list(self._messages))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "strategy": "full_context",
            "total_messages": len(self._messages),
            "compression_applied": False
        }


@dataclass
class SlidingWindowStrategy(MemoryStrategy):
    """
    Keep only the last N messages; older ones are simply dropped.
    """

    window_size: int = 10
    name: str = ""
    _messages: List[Message] = field(default_factory=list, init=False)

    def __post_init__(self):
        if self.window_size < 1:
            raise ConfigurationError(f"window_size must be >= 1, got {self.window_size}")
        self.name = self.name or f"Window({self.window_size})"

    def reset(self):
        self._messages = []

    def add_message(self, message: Message):
        self._messages.append(message)

    async def get_context(self) -> StrategyContext:
        return StrategyContext(messages=trim_to_user_start(self._messages[-self.window_size:]))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "strategy": "sliding_window",
            "window_size": self.window_size,
            "total_messages": len(self._messages),
            "messages_dropped": max(0, len(self._messages) - self.window_size)
        }


@dataclass
class SummarizationStrategy(MemoryStrategy):
    """
    Rolling summary of old messages plus the most recent ones verbatim.

    Once the buffer exceeds ``summarize_every + recent_window`` messages,
    everything but the recent window is folded into the summary.
    """

    client: Optional[ModelClient] = None
    summarize_every: int = 8
    recent_window: int = 6
    name: str = ""

    summary: str = field(default="", init=False)
    _messages: List[Message] = field(default_factory=list, init=False)
    _summarizer: Optional[ConversationSummarizer] = field(default=None, init=False)
    _total_overhead_tokens: int = field(default=0, init=False)

    def __post_init__(self):
        if self.client is None:
            raise ConfigurationError("SummarizationStrategy needs a model client")
        if self.summarize_every < 1 or self.recent_window < 1:
            raise ConfigurationError("summarize_every and recent_window must be >= 1")
        self.name = self.name or f"Summarize({self.summarize_every})"
        self._summarizer = ConversationSummarizer(client=self.client)

    def reset(self):
        self.summary = ""
        self._messages = []
        self._total_overhead_tokens = 0
        self._summarizer.reset_stats()

    def add_message(self, message: Message):
        self._messages.append(message)

    async def get_context(self) -> StrategyContext:
        overhead = 0

        if len(self._messages) > self.summarize_every + self.recent_window:
            split = len(self._messages) - self.recent_window
            response = await self._summarizer.summarize(
                self._messages[:split],
                previous_summary=self.summary or None
            )
            self.summary = response.text
            overhead = response.total_tokens
            self._total_overhead_tokens += overhead
            self._messages = self._messages[split:]

        return StrategyContext(
            messages=trim_to_user_start(self._messages),
            system=f"{SUMMARY_HEADER}\n{self.summary}" if self.summary else None,
            overhead_tokens=overhead
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "strategy": "summarization",
            "buffered_messages": len(self._messages),
            "total_overhead_tokens": self._total_overhead_tokens,
            **self._summarizer.get_stats()
        }


WHOLESALE_DELEGATION_PROMPT = """{existing}New conversation segment:
{transcript}

You are a sub-agent processing a conversation segment. Your job is to extract a COMPLETE knowledge state from this conversation. Answer these specific questions:

1. ENTITIES: List every person, place, organization, product, or system mentioned with ALL their attributes (names, numbers, roles, relationships).
2. DECISIONS: What decisions were made? What was chosen and what was rejected?
3. CORRECTIONS: Were any previous facts corrected, updated, or changed? List BOTH the old value and the new value explicitly. This is critical: flag every instance where something was changed.
4. NUMBERS: List every specific number, amount, date, time, code, ID, or measurement with its context.
5. CURRENT STATE: What is the current state of affairs as of the end of this segment? Only the latest values.

Be exhaustive. Every specific detail matters. Do NOT generalize."""

WHOLESALE_DELEGATION_SYSTEM_PROMPT = (
    "You are a precise sub-agent in a Recursive Language Model system. "
    "Your output will be the ONLY record of this conversation segment. "
    "If you miss a detail, it is lost forever. Be thorough and exact."
)


@dataclass
class DelegationStrategy(MemoryStrategy):
    """
    Delegate old messages to a sub-model and keep only its latest answer.

    Each cycle replaces the previous knowledge wholesale, so any fact the
    sub-model forgets to repeat is gone. Kept as the baseline that
    ``PersistentDelegationStrategy`` improves on.
    """

    client: Optional[ModelClient] = None
    delegate_every: int = 8
    recent_window: int = 4
    name: str = ""

    knowledge: str = field(default="", init=False)
    _messages: List[Message] = field(default_factory=list, init=False)
    _since_delegation: int = field(default=0, init=False)
    _cycles: int = field(default=0, init=False)
    _total_overhead_tokens: int = field(default=0, init=False)

    def __post_init__(self):
        if self.client is None:
            raise ConfigurationError("DelegationStrategy needs a model client")
        if self.delegate_every < 1 or self.recent_window < 1:
            raise ConfigurationError("delegate_every and recent_window must be >= 1")
        self.name = self.name or f"RLM({self.delegate_every})"

    def reset(self):
        self.knowledge = ""
        self._messages = []
        self._since_delegation = 0
        self._cycles = 0
        self._total_overhead_tokens = 0

    def add_message(self, message: Message):
        self._messages.append(message)
        self._since_delegation += 1

    async def get_context(self) -> StrategyContext:
        overhead = 0

        if self._since_delegation >= self.delegate_every and len(self._messages) > self.recent_window:
            split = len(self._messages) - self.recent_window
            existing = f"Previously extracted knowledge:\n{self.knowledge}\n\n" if self.knowledge else ""
            prompt = WHOLESALE_DELEGATION_PROMPT.format(
                existing=existing,
                transcript=format_transcript(self._messages[:split])
            )
            response = await self.client.invoke(prompt, system_prompt=WHOLESALE_DELEGATION_SYSTEM_PROMPT)

            self.knowledge = response.text
            overhead = response.total_tokens
            self._total_overhead_tokens += overhead
            self._cycles += 1
            self._messages = self._messages[split:]
            self._since_delegation = 0

        return StrategyContext(
            messages=trim_to_user_start(self._messages),
            system=f"{WHOLESALE_KNOWLEDGE_HEADER}\n{self.knowledge}" if self.knowledge else None,
            overhead_tokens=overhead
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "strategy": "delegation",
            "delegation_cycles": self._cycles,
            "buffered_messages": len(self._messages),
            "total_overhead_tokens": self._total_overhead_tokens
        }


@dataclass
class PersistentDelegationStrategy(MemoryStrategy):
    """
    Delegation with typed, incrementally merged knowledge stores.

    Every cycle the sub-model's output is parsed into six sections and merged
    into stores that live for the whole scenario, so a fact the sub-model
    drops in cycle N still survives from cycle N-1. The rendered stores are
    returned as system context; the recent window is sent verbatim.
    """

    client: Optional[ModelClient] = None
    compress_every: int = 8
    recent_window: int = 4
    enable_logging: bool = False
    name: str = "PersistentRLM"

    scheduler: Optional[CompressionScheduler] = field(default=None, init=False)

    def __post_init__(self):
        if self.client is None:
            raise ConfigurationError("PersistentDelegationStrategy needs a model client")
        self.scheduler = CompressionScheduler(
            client=self.client,
            compress_every=self.compress_every,
            recent_window=self.recent_window,
            enable_logging=self.enable_logging
        )

    @property
    def store(self):
        return self.scheduler.store

    @property
    def delegation_log(self):
        return self.scheduler.delegation_log

    def reset(self):
        self.scheduler.reset()

    def add_message(self, message: Message):
        self.scheduler.add_message(message)

    async def get_context(self) -> StrategyContext:
        overhead = await self.scheduler.compress_if_due()
        knowledge = self.scheduler.store.render()

        return StrategyContext(
            messages=self.scheduler.messages(),
            system=f"{PERSISTENT_KNOWLEDGE_HEADER}\n{knowledge}" if knowledge else None,
            overhead_tokens=overhead
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "strategy": "persistent_delegation",
            "delegation_cycles": self.scheduler.delegation_cycle,
            "buffered_messages": len(self.scheduler.buffer),
            "total_overhead_tokens": self.scheduler.total_overhead_tokens,
            "store": self.scheduler.store.get_stats()
        }


@dataclass(frozen=True)
class StrategyFactory:
    """Named constructor; every ``create`` call returns a fresh strategy."""
    name: str
    build: Callable[[ModelClient], MemoryStrategy]

    def create(self, client: ModelClient) -> MemoryStrategy:
        strategy = self.build(client)
        strategy.reset()
        return strategy
