"""
Section parser for delegated-knowledge output.

The delegation prompt asks the model for six fixed sections of
``key: value`` / ``old → new`` bullet lines. Models drift from that grammar
(bold or ``##`` headers, synonyms like ``NUMBERS:``, wrapped lines, chatty
preambles), so parsing is a small line-by-line state machine. Its rules are
tried in a fixed order:

1. continuation   an indented line that extends the previous entry
2. header         ``IDENTIFIERS:`` / ``**Numbers**`` / ``## Current State``
3. inline header  ``DATES: June 10 kickoff`` switches section, line kept whole
4. entry          anything else, list prefix stripped

A header is a line of capitalized words. One outside the alias table switches
to ``OVERFLOW``. Content the parser cannot place goes to ``OVERFLOW`` instead
of being dropped. Malformed input never raises.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from core.models import StoreEntry

logger = logging.getLogger(__name__)


class Section(str, Enum):
    """Knowledge categories recognized by the parser."""
    IDENTIFIERS = "IDENTIFIERS"
    ENTITIES = "ENTITIES"
    QUANTITIES = "QUANTITIES"
    DATES = "DATES"
    CORRECTIONS = "CORRECTIONS"
    STRUCTURAL = "STRUCTURAL"
    OVERFLOW = "OVERFLOW"


# Serialization and prompt order
CANONICAL_SECTIONS = (
    Section.IDENTIFIERS,
    Section.ENTITIES,
    Section.QUANTITIES,
    Section.DATES,
    Section.CORRECTIONS,
    Section.STRUCTURAL,
)

SECTION_ALIASES: Dict[str, Section] = {
    # Canonical
    "IDENTIFIERS": Section.IDENTIFIERS,
    "ENTITIES": Section.ENTITIES,
    "QUANTITIES": Section.QUANTITIES,
    "DATES": Section.DATES,
    "CORRECTIONS": Section.CORRECTIONS,
    "STRUCTURAL": Section.STRUCTURAL,
    # Quantities
    "NUMBERS": Section.QUANTITIES,
    "AMOUNTS": Section.QUANTITIES,
    "MEASUREMENTS": Section.QUANTITIES,
    "COUNTS": Section.QUANTITIES,
    # Dates
    "DATES/TIMES": Section.DATES,
    "DATES AND TIMES": Section.DATES,
    "TIMES": Section.DATES,
    "DEADLINES": Section.DATES,
    "SCHEDULE": Section.DATES,
    # Identifiers
    "IDS": Section.IDENTIFIERS,
    "CODES": Section.IDENTIFIERS,
    "REFERENCES": Section.IDENTIFIERS,
    "PHONE NUMBERS": Section.IDENTIFIERS,
    # Entities
    "PEOPLE": Section.ENTITIES,
    "ORGANIZATIONS": Section.ENTITIES,
    "PRODUCTS": Section.ENTITIES,
    "ITEMS": Section.ENTITIES,
    # Corrections
    "UPDATES": Section.CORRECTIONS,
    "CHANGES": Section.CORRECTIONS,
    "REVISIONS": Section.CORRECTIONS,
    "MODIFIED": Section.CORRECTIONS,
    # Structural
    "SPATIAL": Section.STRUCTURAL,
    "LOCATIONS": Section.STRUCTURAL,
    "RELATIONSHIPS": Section.STRUCTURAL,
    "DECISIONS": Section.STRUCTURAL,
    "CURRENT STATE": Section.STRUCTURAL,
    "STATE": Section.STRUCTURAL,
    "LAYOUT": Section.STRUCTURAL,
}

ParsedSections = Dict[Section, List[StoreEntry]]

BARE_KEY_LENGTH = 40

_LEADING_EMPHASIS_RE = re.compile(r"^\*{1,3}(?=\S)")
_TRAILING_EMPHASIS_RE = re.compile(r"\*{1,3}(?=:?$)")
_HEADING_MARKER_RE = re.compile(r"^#{1,4}\s*")
_HEADER_RE = re.compile(r"^([A-Z][A-Z\s/]+?)\s*:?\s*$", re.IGNORECASE)
_INLINE_HEADER_RE = re.compile(r"^([A-Z][A-Z\s/]+?)\s*:\s+(.+)$", re.IGNORECASE)
_CONTINUATION_RE = re.compile(r"^\s{2,}")
_LIST_PREFIX_RE = re.compile(r"^(?:[-*•]\s+|\d+\.\s+)")
_KEY_VALUE_RE = re.compile(r"^([^:]{2,}):\s+(.+)$")
_ARROW_RE = re.compile(r"^(.+?)\s*(?:→|->)+\s*(.+)$")


def resolve_section(header: str) -> Optional[Section]:
    """Map a header (canonical name or alias, any case) to its section, or None."""
    return SECTION_ALIASES.get(header.strip().upper())


def parse_entry(line: str) -> StoreEntry:
    """
    Parse one content line into a store entry.

    Tries ``key: value`` first (at least two non-colon characters before the
    first colon, then whitespace, so ``3:00`` is never split), then
    ``old → new`` / ``old -> new``, then falls back to a bare line keyed by its
    first 40 characters. The value is always the line itself.
    """
    match = _KEY_VALUE_RE.match(line)
    if match:
        return StoreEntry(key=match.group(1).strip(), value=line)

    match = _ARROW_RE.match(line)
    if match:
        return StoreEntry(key=match.group(1).strip(), value=line)

    return StoreEntry(key=line[:BARE_KEY_LENGTH].strip(), value=line)


def empty_sections() -> ParsedSections:
    """A result with every section present and empty."""
    return {section: [] for section in Section}


def strip_decoration(line: str) -> str:
    """Remove markdown emphasis and heading markers around a trimmed line."""
    cleaned = _LEADING_EMPHASIS_RE.sub("", line)
    cleaned = _TRAILING_EMPHASIS_RE.sub("", cleaned)
    cleaned = _HEADING_MARKER_RE.sub("", cleaned)
    return cleaned.strip()


@dataclass
class _ParseState:
    """Mutable cursor for a single ``parse`` call."""
    result: ParsedSections = field(default_factory=empty_sections)
    current: Section = Section.OVERFLOW
    last_entry: Optional[StoreEntry] = None
    last_section: Optional[Section] = None
    seen_section: bool = False

    def add(self, entry: StoreEntry) -> None:
        self.result[self.current].append(entry)
        self.last_entry = entry
        self.last_section = self.current


def _is_header_label(label: str) -> bool:
    """Every word capitalized, as in ``WEATHER NOTES`` or ``Additional Notes``."""
    words = label.replace("/", " ").split()
    return bool(words) and all(word[0].isupper() for word in words)


class SectionParser:
    """
    Line-oriented state machine turning model output into section buckets.

    Instances hold no state between calls; parsing the same text twice gives
    equal results.
    """

    def parse(self, text: str) -> ParsedSections:
        state = _ParseState()

        for raw_line in text.split("\n"):
            line = raw_line.strip()
            if not line:
                continue

            cleaned = strip_decoration(line)

            if self._apply_continuation(state, raw_line, line, cleaned):
                continue

            if self._apply_header(state, cleaned, line):
                continue

            self._apply_inline_header(state, cleaned)
            self._apply_entry(state, line)

        return state.result

    def _names_section(self, cleaned: str) -> bool:
        match = _HEADER_RE.match(cleaned) or _INLINE_HEADER_RE.match(cleaned)
        return match is not None and resolve_section(match.group(1)) is not None

    def _apply_continuation(self, state: _ParseState, raw_line: str, line: str, cleaned: str) -> bool:
        """Indented line following an entry in the same section extends that entry."""
        if (
            _CONTINUATION_RE.match(raw_line)
            and state.last_entry is not None
            and state.last_section == state.current
            and not self._names_section(cleaned)
        ):
            state.last_entry.value += " " + line
            return True
        return False

    def _apply_header(self, state: _ParseState, cleaned: str, line: str) -> bool:
        """A line made only of header words. Unresolved headers switch to OVERFLOW."""
        match = _HEADER_RE.match(cleaned)
        if not match:
            return False

        label = match.group(1)
        resolved = resolve_section(label)
        if resolved is None and not _is_header_label(label):
            # "Here is what I found:" is prose, not a header
            return False

        state.last_entry = None
        if resolved is not None:
            state.current = resolved
            state.seen_section = True
            return True

        # An unknown header must not leave the previous section active
        state.current = Section.OVERFLOW
        if not state.seen_section:
            # Preamble lines are kept verbatim
            state.result[Section.OVERFLOW].append(parse_entry(line))
        logger.debug(f"Unrecognized section header routed to overflow: {label!r}")
        return True

    def _apply_inline_header(self, state: _ParseState, cleaned: str) -> None:
        """
        ``HEADER: content`` switches section when HEADER resolves; the whole
        line is still parsed as an entry. An unresolved prefix is left alone;
        it is probably a ``key: value`` fact.
        """
        match = _INLINE_HEADER_RE.match(cleaned)
        if not match:
            return

        resolved = resolve_section(match.group(1))
        if resolved is None:
            return

        state.current = resolved
        state.seen_section = True
        state.last_entry = None

    def _apply_entry(self, state: _ParseState, content: str) -> None:
        content = _LIST_PREFIX_RE.sub("", content).strip()
        if not content:
            return

        # A bullet that only repeats a section name carries no fact
        if resolve_section(content.rstrip(":")) is not None:
            return

        state.add(parse_entry(content))


def parse_sections(text: str) -> ParsedSections:
    """Parse model output into entry lists for every section."""
    return SectionParser().parse(text)
