"""Lucky draw engine: configuration, entries, selection, draws and redraws."""

from .configuration import (
    DrawRules,
    archive_configuration,
    create_or_update_configuration,
    get_active_configuration,
    get_latest_configuration,
    parse_tiers,
    transition_status,
)
from .engine import DrawExecutor, DrawResult, DrawStatistics, TierOutcome
from .entries import (
    Participant,
    create_entry,
    create_manual_entries,
    list_eligible_entries,
    list_entries,
    participant_entry_statistics,
    summarize_participants,
)
from .redraw import RedrawHandler, RedrawResult
from .selection import RandomSource, select_random
from .winners import (
    draw_statistics,
    get_winner,
    list_executions,
    list_winners,
    mark_winner_claimed,
)

__all__ = [
    "DrawExecutor",
    "DrawResult",
    "DrawRules",
    "DrawStatistics",
    "Participant",
    "RandomSource",
    "RedrawHandler",
    "RedrawResult",
    "TierOutcome",
    "archive_configuration",
    "create_entry",
    "create_manual_entries",
    "create_or_update_configuration",
    "draw_statistics",
    "get_active_configuration",
    "get_latest_configuration",
    "get_winner",
    "list_eligible_entries",
    "list_entries",
    "list_executions",
    "list_winners",
    "mark_winner_claimed",
    "parse_tiers",
    "participant_entry_statistics",
    "select_random",
    "summarize_participants",
    "transition_status",
]
