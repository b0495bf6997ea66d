"""Planner state persistence."""
import logging
import uuid
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from processor.text import clean_text
from storage.dynamodb_manager import DynamoDBManager
from storage.local_store import LocalStore

logger = logging.getLogger(__name__)

MINUTES_IN_DAY = 24 * 60
MIN_PLAN_BLOCK_MINUTES = 30


def _clamp_minutes(value: Any, lowest: int, highest: int) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return lowest
    if number != number:
        return lowest
    return int(min(highest, max(lowest, round(number))))


def sanitize_planner(value: Any) -> Dict[str, List[Dict[str, Any]]]:
    """
    Clean a planner payload keyed by ISO date.

    Items without a ``sourceKey`` are dropped, minutes are clamped to the
    day and every block lasts at least 30 minutes.

    Args:
        value: Untrusted ``{dateISO: [item, ...]}`` payload

    Returns:
        Sanitized planner mapping with empty dates removed
    """
    if not isinstance(value, dict):
        return {}

    cleaned = {}
    for date_iso, items in value.items():
        if not date_iso or not isinstance(items, list):
            continue

        cleaned_items = []
        for item in items:
            if not isinstance(item, dict):
                continue
            source_key = clean_text(item.get('sourceKey'))
            if not source_key:
                continue
            start = _clamp_minutes(item.get('startMinutes'), 0, MINUTES_IN_DAY)
            end = _clamp_minutes(item.get('endMinutes'), start + MIN_PLAN_BLOCK_MINUTES, MINUTES_IN_DAY)
            cleaned_items.append({
                'id': clean_text(item.get('id')) or f"plan-{uuid.uuid4().hex[:7]}",
                'kind': 'event' if item.get('kind') == 'event' else 'place',
                'sourceKey': source_key,
                'title': clean_text(item.get('title')) or 'Untitled stop',
                'locationText': clean_text(item.get('locationText')),
                'link': clean_text(item.get('link')),
                'tag': clean_text(item.get('tag')),
                'startMinutes': start,
                'endMinutes': end,
            })

        if cleaned_items:
            cleaned[date_iso] = cleaned_items
    return cleaned


class PlannerStore:
    """Planner state stored remotely with a local file copy."""

    def __init__(self, local: LocalStore, remote: Optional[DynamoDBManager] = None):
        self.local = local
        self.remote = remote

    def load(self, room_key: str = 'default') -> Dict[str, Any]:
        """
        Load planner state for a room.

        Returns:
            ``{plannerByDate, source}`` where source is "remote" or "local"
        """
        if self.remote is not None:
            try:
                record = self.remote.get_planner_state(room_key)
                if record is not None:
                    return {
                        'plannerByDate': sanitize_planner(record.get('plannerByDate')),
                        'source': 'remote',
                    }
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Remote planner read failed, falling back to local planner cache: {e}")

        states = self.local.read_json(LocalStore.PLANNER_STATE_FILE) or {}
        return {
            'plannerByDate': sanitize_planner(states.get(room_key) if isinstance(states, dict) else None),
            'source': 'local',
        }

    def save(self, planner_by_date: Any, room_key: str = 'default') -> Dict[str, Any]:
        """
        Save planner state locally, then best-effort remotely.

        Returns:
            ``{plannerByDate, persisted}`` where persisted is "remote" or "local"
        """
        cleaned = sanitize_planner(planner_by_date)

        states = self.local.read_json(LocalStore.PLANNER_STATE_FILE)
        states = states if isinstance(states, dict) else {}
        states[room_key] = cleaned
        self.local.write_json(LocalStore.PLANNER_STATE_FILE, states)

        persisted = 'local'
        if self.remote is not None:
            try:
                self.remote.put_planner_state(room_key, cleaned)
                persisted = 'remote'
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Remote planner write failed; local planner cache is still used: {e}")

        return {'plannerByDate': cleaned, 'persisted': persisted}
