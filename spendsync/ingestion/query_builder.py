from datetime import datetime, timedelta
from typing import Optional, Sequence

DEFAULT_KEYWORDS = (
    "statement", "receipt", "purchase", "transaction",
    "payment", "invoice", "card", "bank", "upi",
)


def build_sync_query(
    last_completed_at: Optional[datetime],
    keywords: Sequence[str] = DEFAULT_KEYWORDS,
    lookback_days: int = 180,
    safety_offset_days: int = 5,
) -> str:
    """
    Build the provider search query for a sync.

    Incremental when a previous sync completed: anchored at its completion time
    minus a safety offset for provider clock skew. First syncs look back a fixed
    number of days.

    Returns:
        e.g. 'subject:(statement OR receipt) after:1714521600'
    """
    terms = f"subject:({' OR '.join(keywords)})"
    if last_completed_at is not None:
        anchor = last_completed_at - timedelta(days=safety_offset_days)
        return f"{terms} after:{int(anchor.timestamp())}"
    return f"{terms} newer_than:{lookback_days}d"
