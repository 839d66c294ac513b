import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

# Performance line, e.g. "15:20:22 DEFAULT   : FPS: 58.123456 | Player: 15"
PERFORMANCE_PATTERN = re.compile(r"FPS:\s*([\d.]+).*?Player:\s*(\d+)")
VICTORY_PATTERN = re.compile(r"\b(NATO|USSR|RUSSIA) won the conflict", re.IGNORECASE)
MATCH_DURATION_PATTERN = re.compile(r"Match Duration:\s*(.+?)(?:\s*\||$)", re.IGNORECASE)
BASE_CAPTURED_PATTERN = re.compile(r"Base Captured:\s*(\d+)", re.IGNORECASE)
PLAYERS_KILLED_PATTERN = re.compile(r"Total Players Killed.*?:\s*(\d+)", re.IGNORECASE)
ADMIN_WINNER_PATTERN = re.compile(
    r"ServerAdminTools.*serveradmintools_game_ended.*winner:\s*(NATO|RUSSIA)", re.IGNORECASE
)

FACTION_ALIASES = {"NATO": "NATO", "USSR": "RUSSIA", "RUSSIA": "RUSSIA"}


@dataclass
class LogEvents:
    """Everything one scan of the line window found. None means not seen."""

    fps: Optional[float] = None
    players: Optional[int] = None
    victory: Optional[str] = None
    match_duration: Optional[str] = None
    bases_captured: Optional[int] = None
    players_killed: Optional[int] = None
    admin_winner: Optional[str] = None
    crash_keyword: Optional[str] = None

    @property
    def has_performance(self) -> bool:
        return self.fps is not None and self.players is not None


def normalize_faction(name: str) -> str:
    return FACTION_ALIASES[name.upper()]


def find_crash_keyword(lines: Sequence[str], keywords: Iterable[str]) -> Optional[str]:
    """Returns the first keyword, in priority order, found in any line."""
    for keyword in keywords:
        if keyword and any(keyword in line for line in lines):
            return keyword
    return None


def parse_log_window(lines: List[str], crash_keywords: Iterable[str] = (), window: int = 100) -> LogEvents:
    """
    Parses the most recent `window` lines of a server log into a LogEvents record.

    Performance and victory lines are searched newest-to-oldest and the first
    hit wins. Round-summary fields are searched oldest-to-newest so the last
    matching line wins. Empty input yields an empty record, never an error.
    """
    events = LogEvents()
    if not lines:
        return events

    recent = lines[-window:] if window > 0 else list(lines)
    events.crash_keyword = find_crash_keyword(recent, crash_keywords)

    for line in reversed(recent):
        if events.fps is None:
            perf_match = PERFORMANCE_PATTERN.search(line)
            if perf_match:
                try:
                    events.fps = float(perf_match.group(1))
                    events.players = int(perf_match.group(2))
                except ValueError:
                    # "FPS: ..." style garbage, keep looking further back
                    events.fps = None
                    events.players = None
        if events.victory is None:
            victory_match = VICTORY_PATTERN.search(line)
            if victory_match:
                events.victory = normalize_faction(victory_match.group(1))
        if events.fps is not None and events.victory is not None:
            break

    for line in recent:
        duration_match = MATCH_DURATION_PATTERN.search(line)
        if duration_match:
            events.match_duration = duration_match.group(1).strip()
        bases_match = BASE_CAPTURED_PATTERN.search(line)
        if bases_match:
            events.bases_captured = int(bases_match.group(1))
        killed_match = PLAYERS_KILLED_PATTERN.search(line)
        if killed_match:
            events.players_killed = int(killed_match.group(1))
        winner_match = ADMIN_WINNER_PATTERN.search(line)
        if winner_match:
            events.admin_winner = normalize_faction(winner_match.group(1))

    return events
