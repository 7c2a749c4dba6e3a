"""Compression scheduler: delegates old messages to the model and merges the result."""

import logging
from dataclasses import dataclass, field
from typing import List

from core.exceptions import ConfigurationError
from core.models import Message, ModelClient
from .knowledge_store import KnowledgeStore
from .sections import parse_sections

logger = logging.getLogger(__name__)


DELEGATION_SYSTEM_PROMPT = (
    "You are a precise sub-agent in a Recursive Language Model system. "
    "Output structured facts using the exact section format requested. "
    "Your output will be parsed, so follow the format exactly. "
    "If you miss a detail, it is lost forever."
)

DELEGATION_PROMPT = """{existing}New conversation segment:
{transcript}

Extract ALL information into these exact sections. Each entry must be on its own line starting with "- ". Use "key: value" format within each entry.

IDENTIFIERS:
Every ID, phone number, code, reference number, account number, policy number. Copy the EXACT format and do not reformat numbers.
Example: - Kenji's phone: 090-8765-4321

ENTITIES:
Every person, place, organization, product with ALL their attributes and current status.
Example: - Sarah Chen: project lead, based in Portland, reports to VP of Engineering

QUANTITIES:
Every quantity, price, measurement, count, percentage with its full context. Include the item name AND any status qualifiers (e.g. clearance, damaged, transferred).
Example: - Widget-A (main inventory): 370 units at $24.99 each
Example: - Gadget-X (clearance): 200 units

DATES:
Every date, time, deadline, schedule item.
Example: - project deadline: March 15, 2026

CORRECTIONS:
Every instance where a previous fact was updated or changed. State BOTH old and new values. This is critical.
Example: - Hotel changed: Marriott → Hilton Garden Inn

STRUCTURAL:
Every spatial relationship, location assignment, decision (what was chosen AND rejected), and relationship between entities.
Example: - Floor 3: conference room, capacity 50, has projector
Example: - Chose React over Vue for frontend (faster team ramp-up)

Be exhaustive. Every specific detail matters. Do NOT generalize or summarize. Include status qualifiers (clearance, damaged, discontinued) alongside quantities."""

EXISTING_KNOWLEDGE_PREFIX = "Previously extracted knowledge:\n{knowledge}\n\n"


def format_transcript(messages: List[Message]) -> str:
    """Flatten messages into ``role: content`` lines."""
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


def trim_to_user_start(messages: List[Message]) -> List[Message]:
    """Drop leading messages until the first user message, if there is one."""
    for index, message in enumerate(messages):
        if message.is_user:
            return list(messages[index:])
    return list(messages)


def build_delegation_prompt(store: KnowledgeStore, to_compress: List[Message]) -> str:
    """Combine the current store snapshot and the transcript to compress."""
    knowledge = store.render()
    existing = EXISTING_KNOWLEDGE_PREFIX.format(knowledge=knowledge) if knowledge else ""
    return DELEGATION_PROMPT.format(
        existing=existing,
        transcript=format_transcript(to_compress)
    )


@dataclass
class DelegationLogEntry:
    """Raw model output of one compression cycle, kept for offline analysis."""
    cycle: int
    step: int
    content: str
    messages_compressed: int

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "cycle": self.cycle,
            "step": self.step,
            "content": self.content,
            "messages_compressed": self.messages_compressed
        }


@dataclass
class CompressionScheduler:
    """
    Owns one conversation's message buffer and knowledge store.

    ``add_message`` only records. ``compress_if_due`` is the one place work
    happens: once ``compress_every`` messages have arrived since the last cycle
    and the buffer is longer than ``recent_window``, everything but the last
    ``recent_window`` messages is sent to the model, the reply is parsed and
    merged into the store, and the buffer is cut back to the recent window.

    A failed model call propagates and leaves buffer, counter and store exactly
    as they were.
    """

    client: ModelClient
    compress_every: int = 8
    recent_window: int = 4
    enable_logging: bool = False

    store: KnowledgeStore = field(default_factory=KnowledgeStore, init=False)
    buffer: List[Message] = field(default_factory=list, init=False)
    messages_since_compression: int = field(default=0, init=False)
    current_step: int = field(default=0, init=False)
    delegation_cycle: int = field(default=0, init=False)
    total_overhead_tokens: int = field(default=0, init=False)
    delegation_log: List[DelegationLogEntry] = field(default_factory=list, init=False)

    def __post_init__(self):
        if self.compress_every < 1:
            raise ConfigurationError(f"compress_every must be >= 1, got {self.compress_every}")
        if self.recent_window < 1:
            raise ConfigurationError(f"recent_window must be >= 1, got {self.recent_window}")

    def add_message(self, message: Message) -> None:
        self.buffer.append(message)
        self.messages_since_compression += 1
        self.current_step += 1

    def reset(self) -> None:
        """Forget everything: buffer, counters, stores and the delegation log."""
        self.store = KnowledgeStore()
        self.buffer = []
        self.messages_since_compression = 0
        self.current_step = 0
        self.delegation_cycle = 0
        self.total_overhead_tokens = 0
        self.delegation_log = []

    @property
    def is_due(self) -> bool:
        return (
            self.messages_since_compression >= self.compress_every
            and len(self.buffer) > self.recent_window
        )

    def messages(self) -> List[Message]:
        """Current buffer, starting at the first user message."""
        return trim_to_user_start(self.buffer)

    async def compress_if_due(self) -> int:
        """
        Run one compression cycle if the trigger condition holds.

        Returns:
            Tokens spent on the delegation exchange (0 when nothing ran)
        """
        if not self.is_due:
            return 0

        split = len(self.buffer) - self.recent_window
        to_compress = self.buffer[:split]
        kept = self.buffer[split:]

        prompt = build_delegation_prompt(self.store, to_compress)
        response = await self.client.invoke(prompt, system_prompt=DELEGATION_SYSTEM_PROMPT)

        overhead = response.total_tokens
        self.total_overhead_tokens += overhead
        self.delegation_cycle += 1

        if self.enable_logging:
            self.delegation_log.append(DelegationLogEntry(
                cycle=self.delegation_cycle,
                step=self.current_step,
                content=response.text,
                messages_compressed=len(to_compress)
            ))

        self.store.merge(parse_sections(response.text))
        self.buffer = kept
        self.messages_since_compression = 0

        logger.info(
            f"Delegation cycle {self.delegation_cycle}: compressed {len(to_compress)} messages, "
            f"store holds {self.store.entry_count} entries ({overhead} overhead tokens)"
        )
        return overhead
