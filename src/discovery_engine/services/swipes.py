"""Swipe recording, connection-sent reconciliation, and swipe statistics."""

from __future__ import annotations

from discovery_engine.config import Config, config
from discovery_engine.models import SwipeAction, SwipeResult, SwipeStats
from discovery_engine.stores.base import SessionStore, SwipeLog, UserDirectory
from discovery_engine.utils.errors import (
    DiscoveryError,
    InvalidInputError,
    NotFoundError,
)
from discovery_engine.utils.logging_config import logger


def parse_action(action: SwipeAction | str) -> SwipeAction:
    try:
        return SwipeAction(action)
    except ValueError:
        raise InvalidInputError(
            f"Unsupported swipe action: {action!r}. Valid options: SKIP, INTERESTED"
        ) from None


class SwipeService:
    """Records SKIP/INTERESTED decisions against the append-only swipe log."""

    def __init__(
        self,
        directory: UserDirectory,
        swipes: SwipeLog,
        sessions: SessionStore,
        settings: Config = config,
    ):
        self.directory = directory
        self.swipes = swipes
        self.sessions = sessions
        self.settings = settings

    def record_swipe(
        self,
        swiper_id: str,
        target_id: str,
        action: SwipeAction | str,
        session_id: str | None = None,
    ) -> SwipeResult:
        """Record one swipe.

        SKIP always appends a new record continuing the pair's skip tally.
        INTERESTED is written at most once per pair; repeats return
        ``already_swiped=True`` without writing.
        """

        action = parse_action(action)
        if swiper_id == target_id:
            raise InvalidInputError("Cannot swipe on yourself")
        if not self.directory.exists(target_id):
            raise NotFoundError(f"Target user not found: {target_id}")

        threshold = self.settings.SKIP_THRESHOLD

        if action is SwipeAction.SKIP:
            record = self.swipes.append_skip(swiper_id, target_id)
            self._bump_session(session_id, action)
            logger.info(
                "swipe recorded: swiper=%s target=%s action=SKIP count=%s",
                swiper_id,
                target_id,
                record.skip_count,
            )
            message = (
                "User will not be shown again"
                if record.skip_count >= threshold
                else f"Skipped ({record.skip_count}/{threshold})"
            )
            return SwipeResult(
                action=action, skip_count=record.skip_count, message=message
            )

        _record, created = self.swipes.add_interested_if_absent(swiper_id, target_id)
        if not created:
            return SwipeResult(
                action=action,
                already_swiped=True,
                message="Already expressed interest in this user",
            )

        self._bump_session(session_id, action)
        logger.info(
            "swipe recorded: swiper=%s target=%s action=INTERESTED",
            swiper_id,
            target_id,
        )
        return SwipeResult(
            action=action,
            message="Interest recorded. Send a connection request to connect!",
        )

    def _bump_session(self, session_id: str | None, action: SwipeAction) -> None:
        """Best-effort counter update; never fails the swipe itself."""

        if not session_id:
            return
        try:
            if action is SwipeAction.SKIP:
                self.sessions.increment_skips(session_id)
            else:
                self.sessions.increment_interested(session_id)
        except DiscoveryError as exc:
            logger.warning(
                "Failed to update session %s counters; swipe kept: %s",
                session_id,
                str(exc),
            )

    def mark_connection_sent(
        self, swiper_id: str, target_id: str, connection_id: str
    ) -> int:
        """Attach a created connection to the pair's INTERESTED record.

        Silently does nothing when there is no matching record.
        """

        updated = self.swipes.mark_connection_sent(swiper_id, target_id, connection_id)
        if not updated:
            logger.debug(
                "mark_connection_sent: no INTERESTED record for %s -> %s",
                swiper_id,
                target_id,
            )
        return updated

    def get_swipe_stats(self, user_id: str) -> SwipeStats:
        if not self.directory.exists(user_id):
            raise NotFoundError(f"User not found: {user_id}")

        interested = skipped = connections_sent = 0
        for record in self.swipes.list_by_swiper(user_id):
            if record.action is SwipeAction.INTERESTED:
                interested += 1
                if record.connection_sent:
                    connections_sent += 1
            else:
                skipped += 1

        return SwipeStats(
            total_swipes=interested + skipped,
            interested=interested,
            skipped=skipped,
            connections_sent=connections_sent,
            pending_interests=interested - connections_sent,
        )
