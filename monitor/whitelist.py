"""
Operator-facing management of the YouTube target whitelist.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Union

from monitor.models import TargetType, WhitelistEntry

logger = logging.getLogger(__name__)

_VIDEO_URL = re.compile(r"(?:v=|youtu\.be/|/shorts/|/embed/)([A-Za-z0-9_-]{11})")
_CHANNEL_URL = re.compile(r"/channel/(UC[A-Za-z0-9_-]{22})")


def parse_target_id(target_type: TargetType, raw: str) -> str:
    """Accept a bare id or a YouTube URL and return the id."""
    value = (raw or "").strip()
    pattern = _VIDEO_URL if target_type is TargetType.VIDEO else _CHANNEL_URL
    match = pattern.search(value)
    return match.group(1) if match else value


class WhitelistManager:
    def __init__(self, store) -> None:
        self.store = store

    def add(
        self,
        target_type: Union[TargetType, str],
        target_id: str,
        title: Optional[str] = None,
        priority: Optional[int] = None,
        max_items: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> WhitelistEntry:
        """Register a target, or update and reactivate it. Omitted fields keep their stored value."""
        target_type = TargetType(target_type)
        target_id = parse_target_id(target_type, target_id)
        if not target_id:
            raise ValueError("target id must not be empty")
        if max_items is not None and max_items <= 0:
            raise ValueError("max_items must be positive")

        existing = self.store.get_whitelist(target_type, target_id)
        entry = WhitelistEntry(
            target_type=target_type,
            target_id=target_id,
            priority=priority if priority is not None else (existing.priority if existing else 0),
            max_items=max_items if max_items is not None else (existing.max_items if existing else None),
            title=title,
            notes=notes,
        )
        self.store.upsert_whitelist(entry)
        logger.info("Whitelisted %s %s (priority %d)", target_type.value, target_id, entry.priority)
        return self.store.get_whitelist(target_type, target_id)

    def remove(self, target_type: Union[TargetType, str], target_id: str) -> bool:
        target_type = TargetType(target_type)
        target_id = parse_target_id(target_type, target_id)
        removed = self.store.deactivate_whitelist(target_type, target_id)
        if not removed:
            logger.warning("No active %s %s in whitelist", target_type.value, target_id)
        return removed

    def active(self, target_type: Optional[Union[TargetType, str]] = None) -> List[WhitelistEntry]:
        return self.store.list_whitelist(TargetType(target_type) if target_type else None, active_only=True)

    def stats(self) -> Dict[str, int]:
        entries = self.active()
        return {
            "active": len(entries),
            "videos": sum(1 for e in entries if e.target_type is TargetType.VIDEO),
            "channels": sum(1 for e in entries if e.target_type is TargetType.CHANNEL),
            "total_collected": sum(e.total_collected for e in entries),
        }
