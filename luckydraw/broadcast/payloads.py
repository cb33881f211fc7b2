"""Messages pushed to viewers of an event while a draw runs."""

from __future__ import annotations

from typing import Any

from ..db.utils import dt_iso
from ..models import DrawConfiguration, Winner

DRAW_STARTED = "draw_started"
DRAW_WINNER = "draw_winner"


def winner_payload(winner: Winner) -> dict[str, Any]:
    """Viewer-facing description of one winner.

    ``prize_tier`` is the numeric tier rank; clients order reveal animations by it.
    """

    return {
        "winner_id": winner.id,
        "participant_name": winner.participant_name,
        "selfie_url": winner.selfie_url,
        "prize_tier": winner.tier_rank,
        "tier": winner.tier,
        "prize_name": winner.prize_name,
        "selection_order": winner.selection_order,
        "is_claimed": winner.is_claimed,
        "is_forfeited": winner.is_forfeited,
        "drawn_at": dt_iso(winner.drawn_at),
    }


def draw_started_payload(configuration: DrawConfiguration) -> dict[str, Any]:
    return {
        "config_id": configuration.id,
        "prize_tiers": [tier.to_dict() for tier in configuration.tiers],
        "total_entries": configuration.total_entries,
        "presentation": configuration.presentation or {},
    }


__all__ = [
    "DRAW_STARTED",
    "DRAW_WINNER",
    "draw_started_payload",
    "winner_payload",
]
