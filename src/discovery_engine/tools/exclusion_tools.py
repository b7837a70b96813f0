"""Exclusion rules deciding which users may never appear in a batch."""

from __future__ import annotations

from collections.abc import Iterable

from discovery_engine.models import DiscoverySession, SwipeAction, SwipeRecord
from discovery_engine.utils.logging_config import logger

DEFAULT_SKIP_THRESHOLD = 3


def latest_skip_counts(history: Iterable[SwipeRecord]) -> dict[str, int]:
    """Map each target to the skip count of the swiper's most recent SKIP on it.

    ``history`` is expected in append order; on equal timestamps the later
    entry wins.
    """

    latest: dict[str, SwipeRecord] = {}
    for record in history:
        if record.action is not SwipeAction.SKIP:
            continue
        current = latest.get(record.target_id)
        if current is None or record.created_at >= current.created_at:
            latest[record.target_id] = record
    return {target_id: record.skip_count for target_id, record in latest.items()}


def skip_threshold_ids(
    history: Iterable[SwipeRecord], threshold: int = DEFAULT_SKIP_THRESHOLD
) -> set[str]:
    return {
        target_id
        for target_id, count in latest_skip_counts(history).items()
        if count >= threshold
    }


def resolve_exclusions(
    requester_id: str,
    history: Iterable[SwipeRecord],
    related_ids: Iterable[str],
    session: DiscoverySession | None = None,
    *,
    threshold: int = DEFAULT_SKIP_THRESHOLD,
) -> set[str]:
    """Build the full set of user ids that must not be returned to the requester.

    The set is the union of the requester themself, every relationship
    counterpart (any status, either direction), targets past the skip
    threshold, and everything the active session already showed.
    """

    related = set(related_ids)
    skipped = skip_threshold_ids(history, threshold)
    shown = set(session.shown_candidate_ids) if session else set()

    logger.debug(
        "resolve_exclusions related=%s skipped=%s shown=%s",
        len(related),
        len(skipped),
        len(shown),
    )
    return {requester_id} | related | skipped | shown
