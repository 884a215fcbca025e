"""
Activity Resolver for the Inactivity Engine.

Derives a single last-activity instant from the sign-in timestamps
recorded on an account.
"""

import logging
from datetime import datetime
from typing import List, Optional

from ..models import ActivityResolution, ActivitySource, ActivityTimestamps, parse_directory_datetime

logger = logging.getLogger(__name__)

ACTIVITY_SOURCES: List[ActivitySource] = [
    ActivitySource.INTERACTIVE,
    ActivitySource.NON_INTERACTIVE,
    ActivitySource.LAST_SUCCESSFUL,
]


def resolve_activity(timestamps: ActivityTimestamps, account_id: Optional[str] = None) -> ActivityResolution:
    """
    Resolve the most recent activity instant.

    Unparseable timestamps are skipped with a warning. When no source yields
    an instant the resolution is "never" (``last_activity`` is None), which
    callers treat as maximal inactivity.

    Args:
        timestamps: Raw timestamps from the account record
        account_id: Used only for log messages

    Returns:
        ActivityResolution with the maximum instant and its source
    """
    raw_by_source = timestamps.by_source()

    latest: Optional[datetime] = None
    latest_source: Optional[ActivitySource] = None
    missing: List[ActivitySource] = []
    unparseable: List[ActivitySource] = []

    for source in ACTIVITY_SOURCES:
        raw = raw_by_source.get(source)
        try:
            instant = parse_directory_datetime(raw)
        except ValueError:
            logger.warning(f"Skipping unparseable {source.value} timestamp '{raw}' for {account_id or 'account'}")
            unparseable.append(source)
            continue

        if instant is None:
            missing.append(source)
            continue

        if latest is None or instant > latest:
            latest = instant
            latest_source = source

    return ActivityResolution(
        last_activity=latest,
        source=latest_source,
        missing_sources=missing,
        unparseable_sources=unparseable,
    )
