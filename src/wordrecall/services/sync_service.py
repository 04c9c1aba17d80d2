"""Cross-device replication of word states and session summaries.

The transport is an injected client; this module only decides when to push
and how to reconcile a local state with the one held remotely. Pulls run the
merge policy below and write the winners through the storage service.
"""
import logging
from datetime import datetime, UTC
from typing import Any, Dict, Optional, Tuple

from wordrecall.models.srs_models import WordState

logger = logging.getLogger(__name__)

IMPORT = "import"
UPDATE = "update"
KEEP = "keep"

_EPOCH = datetime.min.replace(tzinfo=UTC)


def _timestamp(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def merge_word_state(local: Optional[WordState], cloud: WordState) -> Tuple[WordState, str]:
    """Reconcile a local word state with its remote copy.

    The higher level wins. At equal levels the newer copy provides dates,
    while the error count keeps its minimum and the streak its maximum.
    """
    if local is None:
        return cloud.copy(), IMPORT

    cloud_level = cloud.level or 0
    local_level = local.level or 0
    if cloud_level > local_level:
        return cloud.copy(), UPDATE

    if cloud_level == local_level and _timestamp(cloud.updated_at) > _timestamp(local.updated_at):
        merged = local.copy(
            last_seen_at=cloud.last_seen_at,
            next_review_at=cloud.next_review_at,
            wrong_count=min(cloud.wrong_count or 0, local.wrong_count or 0),
            correct_streak=max(cloud.correct_streak or 0, local.correct_streak or 0),
            updated_at=cloud.updated_at,
        )
        return merged, UPDATE

    return local, KEEP


def merge_setting(
    local_value: Any,
    local_updated_at: Optional[datetime],
    cloud_value: Any,
    cloud_updated_at: Optional[datetime],
    has_local: bool = True,
) -> Any:
    """Newer setting wins; a setting missing locally takes the cloud value."""
    if not has_local or _timestamp(cloud_updated_at) > _timestamp(local_updated_at):
        return cloud_value
    return local_value


class ReplicaSync:
    """Best-effort exchange with a remote replica.

    Pushes need ``push_word_state(state)`` and ``push_session(summary)`` on the
    client. Client failures are logged and dropped; the local durable write is
    the source of truth, so storage errors during a pull still propagate.
    """

    def __init__(self, client: Any = None, online: bool = True):
        self.client = client
        self.online = online

    @property
    def enabled(self) -> bool:
        return self.client is not None and self.online

    def push_word_state(self, state: WordState) -> bool:
        if not self.enabled:
            logger.debug(f"Skipping push of {state.word_text!r}: replica unavailable")
            return False
        try:
            self.client.push_word_state(state)
        except Exception as e:
            logger.error(f"Error pushing word state {state.word_text!r}: {e}")
            return False
        logger.debug(f"Pushed word state {state.word_text!r} level={state.level}")
        return True

    def push_session(self, summary: Dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.push_session(summary)
        except Exception as e:
            logger.error(f"Error pushing session summary: {e}")
            return False
        return True

    def pull_word_states(self, storage) -> int:
        """Merge remote word states into storage; returns how many were written.

        The client needs ``fetch_word_states()`` returning ``WordState`` objects.
        """
        if not self.enabled:
            return 0
        try:
            remote_states = list(self.client.fetch_word_states())
        except Exception as e:
            logger.error(f"Error fetching word states: {e}")
            return 0

        applied = 0
        for cloud in remote_states:
            merged, action = merge_word_state(storage.get_word_state(cloud.word_text), cloud)
            if action == KEEP:
                continue
            storage.save_word_state(merged)
            applied += 1
        logger.info(f"Pulled {len(remote_states)} word states, applied {applied}")
        return applied

    def pull_settings(self, storage) -> int:
        """Merge remote settings into storage; returns how many were written.

        The client needs ``fetch_settings()`` returning
        ``(key, value, updated_at)`` rows.
        """
        if not self.enabled:
            return 0
        try:
            remote_settings = list(self.client.fetch_settings())
        except Exception as e:
            logger.error(f"Error fetching settings: {e}")
            return 0

        applied = 0
        for key, cloud_value, cloud_updated_at in remote_settings:
            entry = storage.get_setting_entry(key)
            local_value, local_updated_at = entry if entry is not None else (None, None)
            value = merge_setting(
                local_value,
                local_updated_at,
                cloud_value,
                cloud_updated_at,
                has_local=entry is not None,
            )
            if entry is not None and value == local_value:
                continue
            storage.set_setting(key, value)
            applied += 1
        logger.info(f"Pulled {len(remote_settings)} settings, applied {applied}")
        return applied
