"""Typed knowledge stores with per-category merge semantics."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from core.models import StoreEntry
from .sections import CANONICAL_SECTIONS, ParsedSections, Section

logger = logging.getLogger(__name__)


# Keys match when either one contains the other's first 25 characters
KEY_PREFIX_LENGTH = 25
# Corrections match when either one contains the other's first 30 characters
CORRECTION_OVERLAP_LENGTH = 30

OVERFLOW_LABEL = "ADDITIONAL CONTEXT"


@dataclass
class KnowledgeStore:
    """
    Everything a strategy has learned from compressed conversation history.

    Map-backed sections keep one value per key, last write wins. Corrections
    are an append-only audit trail: the old/new pair is itself the fact, so
    nothing is ever overwritten. Overflow holds lines the parser could not
    place and is replaced wholesale on every cycle.
    """

    identifiers: Dict[str, str] = field(default_factory=dict)
    entities: Dict[str, str] = field(default_factory=dict)
    quantities: Dict[str, str] = field(default_factory=dict)
    dates: Dict[str, str] = field(default_factory=dict)
    structural: Dict[str, str] = field(default_factory=dict)
    corrections: List[str] = field(default_factory=list)
    overflow: List[str] = field(default_factory=list)

    def map_for(self, section: Section) -> Dict[str, str]:
        """Key/value store backing a map section."""
        stores = {
            Section.IDENTIFIERS: self.identifiers,
            Section.ENTITIES: self.entities,
            Section.QUANTITIES: self.quantities,
            Section.DATES: self.dates,
            Section.STRUCTURAL: self.structural,
        }
        if section not in stores:
            raise KeyError(f"{section.value} is not a map-backed section")
        return stores[section]

    def values_for(self, section: Section) -> List[str]:
        """Stored lines for any section, in insertion order."""
        if section == Section.CORRECTIONS:
            return list(self.corrections)
        if section == Section.OVERFLOW:
            return list(self.overflow)
        return list(self.map_for(section).values())

    @property
    def entry_count(self) -> int:
        return sum(len(self.values_for(section)) for section in Section)

    @property
    def is_empty(self) -> bool:
        return self.entry_count == 0

    def merge(self, parsed: ParsedSections) -> None:
        merge_into_store(self, parsed)

    def render(self) -> str:
        return render_store(self)

    def get_stats(self) -> Dict[str, int]:
        """Entry counts per section."""
        return {section.value.lower(): len(self.values_for(section)) for section in Section}


def _keys_overlap(existing: str, new: str) -> bool:
    existing_lower = existing.lower()
    new_lower = new.lower()
    return (
        new_lower[:KEY_PREFIX_LENGTH] in existing_lower
        or existing_lower[:KEY_PREFIX_LENGTH] in new_lower
    )


def _corrections_overlap(existing: str, new: str) -> bool:
    existing_lower = existing.lower()
    new_lower = new.lower()
    return (
        new_lower[:CORRECTION_OVERLAP_LENGTH] in existing_lower
        or existing_lower[:CORRECTION_OVERLAP_LENGTH] in new_lower
    )


def merge_map(store: Dict[str, str], entries: List[StoreEntry]) -> None:
    """
    Merge entries into a key/value store by key similarity.

    A prefix-overlapping key is removed and the entry is inserted under its own
    key, so the store follows the newest wording while near-identical keys stay
    a single fact.
    """
    for entry in entries:
        for existing_key in list(store):
            if _keys_overlap(existing_key, entry.key):
                del store[existing_key]
                break
        store[entry.key] = entry.value


def merge_corrections(corrections: List[str], entries: List[StoreEntry]) -> None:
    """Append corrections not already recorded. Never removes anything."""
    for entry in entries:
        if any(_corrections_overlap(existing, entry.value) for existing in corrections):
            continue
        corrections.append(entry.value)


def merge_into_store(store: KnowledgeStore, parsed: ParsedSections) -> None:
    """Apply one cycle's parsed sections to the store."""
    for section in CANONICAL_SECTIONS:
        entries = parsed.get(section, [])
        if section == Section.CORRECTIONS:
            merge_corrections(store.corrections, entries)
        else:
            merge_map(store.map_for(section), entries)

    # Overflow is cycle-local: replaced, not merged
    store.overflow = [entry.value for entry in parsed.get(Section.OVERFLOW, [])]

    logger.debug(f"Merged delegation output, store now holds {store.entry_count} entries")


def _render_section(label: str, values: List[str]) -> str:
    return f"{label}:\n" + "\n".join(f"- {value}" for value in values)


def render_store(store: KnowledgeStore) -> str:
    """
    Render every non-empty section in fixed order, overflow last.

    Equal stores always render to identical text.
    """
    parts = []
    for section in CANONICAL_SECTIONS:
        values = store.values_for(section)
        if values:
            parts.append(_render_section(section.value, values))

    if store.overflow:
        parts.append(_render_section(OVERFLOW_LABEL, store.overflow))

    return "\n\n".join(parts)
