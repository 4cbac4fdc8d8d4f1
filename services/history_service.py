"""
History summary service.

Builds the rows shown in the scoreboard's closed-rounds table so clients
do not have to walk every bid list themselves.
"""
from typing import List, Dict, Any, Sequence

from core.state import HistoryEntry
from core.state_machine import START_NOTE


def summarize_history(history: Sequence[HistoryEntry]) -> List[Dict[str, Any]]:
    """
    Return one summary row per closed round, newest first.

    `bid_count` counts real bids only (the synthetic START event is
    excluded); `last_event_at` is the wall-clock time of the round's last
    event, START included, so rounds without bids still show a time.
    """
    rows: List[Dict[str, Any]] = []

    for entry in reversed(history):
        real_bids = [bid for bid in entry.bids if bid.note != START_NOTE]
        last_event = entry.bids[-1] if entry.bids else None

        rows.append({
            "round_id": entry.round_id,
            "item": entry.item,
            "metadata": dict(entry.metadata),
            "start_price": entry.start_price,
            "winner_name": entry.winner_name,
            "final_amount": entry.final_amount,
            "bid_count": len(real_bids),
            "last_event_at": last_event.timestamp if last_event else None,
            "closed_at": entry.closed_at,
        })

    return rows


def total_spent_by_winner(history: Sequence[HistoryEntry]) -> Dict[str, int]:
    """Sum of final amounts per winner name, for the end-of-auction recap."""
    totals: Dict[str, int] = {}
    for entry in history:
        if not entry.winner_name:
            continue
        totals[entry.winner_name] = totals.get(entry.winner_name, 0) + entry.final_amount
    return totals
