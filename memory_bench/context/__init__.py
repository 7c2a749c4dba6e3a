"""Context management strategies and the knowledge compression engine."""

from .sections import (
    Section,
    SECTION_ALIASES,
    CANONICAL_SECTIONS,
    SectionParser,
    parse_sections,
    parse_entry,
    resolve_section,
)
from .knowledge_store import KnowledgeStore, merge_into_store, render_store
from .delegation import CompressionScheduler, DelegationLogEntry
from .summarizer import ConversationSummarizer
from .strategies import (
    MemoryStrategy,
    StrategyContext,
    StrategyFactory,
    FullContextStrategy,
    SlidingWindowStrategy,
    SummarizationStrategy,
    DelegationStrategy,
    PersistentDelegationStrategy,
)

__all__ = [
    "Section",
    "SECTION_ALIASES",
    "CANONICAL_SECTIONS",
    "SectionParser",
    "parse_sections",
    "parse_entry",
    "resolve_section",
    "KnowledgeStore",
    "merge_into_store",
    "render_store",
    "CompressionScheduler",
    "DelegationLogEntry",
    "ConversationSummarizer",
    "MemoryStrategy",
    "StrategyContext",
    "StrategyFactory",
    "FullContextStrategy",
    "SlidingWindowStrategy",
    "SummarizationStrategy",
    "DelegationStrategy",
    "PersistentDelegationStrategy",
]
