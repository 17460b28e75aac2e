"""Ordinal session numbering ("Tue Session II") derived from concurrency."""
import logging
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from processor.identifiers import parse_local_time, to_local
from processor.models import Event

logger = logging.getLogger(__name__)

ROMAN_NUMERALS = ('I', 'II', 'III', 'IV', 'V', 'VI', 'VII', 'VIII', 'IX', 'X')
WEEKDAY_ABBREVIATIONS = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')

# One-off slots that never receive a number, matched on title or type label.
SPECIAL_EVENT_KEYWORDS = (
    'break', 'plenary', 'hackathon', 'noc', 'helpdesk', 'help desk',
    'office hours', 'registration', 'reception', 'social', 'dinner', 'lunch',
    'happy hour', 'game night', 'networking', 'iepg', 'tutorial', 'newcomer',
    'new participant', 'education', 'outreach',
)


def is_session_typed(event: Event) -> bool:
    return 'session' in event.session_type_label.lower()


def is_special_event(event: Event) -> bool:
    text = f"{event.title} {event.session_type_label}".lower()
    return any(keyword in text for keyword in SPECIAL_EVENT_KEYWORDS)


def ordinal(rank: int) -> str:
    """Roman numeral for a 0-based rank, decimal past X."""
    if rank < len(ROMAN_NUMERALS):
        return ROMAN_NUMERALS[rank]
    return str(rank + 1)


class NumberingTable:
    """Per-day qualifying start instants and the labels they map to."""

    def __init__(self, days: Dict[Tuple[int, int], List[int]], tz: ZoneInfo):
        self.days = days
        self.tz = tz
        self._labels = {}
        for instants in days.values():
            for rank, start_ms in enumerate(instants):
                weekday = WEEKDAY_ABBREVIATIONS[to_local(start_ms, tz).weekday()]
                self._labels[start_ms] = f"{weekday} Session {ordinal(rank)}"

    def label_for(self, start_ms: int) -> Optional[str]:
        return self._labels.get(start_ms)

    def __contains__(self, start_ms: int) -> bool:
        return start_ms in self._labels

    def __len__(self) -> int:
        return len(self._labels)


class SessionNumberer:
    """Finds the start instants that represent parallel working-group slots."""

    CONCURRENCY_THRESHOLD = 2

    def __init__(self, tz: ZoneInfo, threshold: int = CONCURRENCY_THRESHOLD):
        self.tz = tz
        self.threshold = threshold

    def build(self, events: Iterable[Event]) -> NumberingTable:
        """
        Build the numbering table for a run.

        Args:
            events: Decoded events of the run

        Returns:
            NumberingTable keyed by start instant (epoch ms)
        """
        counts = Counter()
        for event in events:
            if not is_session_typed(event) or is_special_event(event):
                continue
            try:
                counts[parse_local_time(event.start_raw, self.tz)] += 1
            except ValueError as e:
                logger.warning(f"Unparseable start time for '{event.title}': {e}")

        days = defaultdict(list)
        for start_ms, count in counts.items():
            if count < self.threshold:
                continue
            local = to_local(start_ms, self.tz)
            days[(local.year, local.timetuple().tm_yday)].append(start_ms)

        for instants in days.values():
            instants.sort()

        table = NumberingTable(dict(days), self.tz)
        logger.debug(f"Numbered {len(table)} session slots over {len(days)} days")
        return table
