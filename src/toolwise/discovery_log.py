"""
Append-only discovery log.

Persists one record per tool admitted by discovery to
``~/.toolwise/discovered.json``.  Used for audit and stats only; nothing in
the recommendation path reads it.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from .models import DiscoveryLogState, DiscoveryRecord, Tool

logger = logging.getLogger(__name__)


class DiscoveryLog:
    """Persistent record of discovered tools."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._state = self._load()

    @property
    def state(self) -> DiscoveryLogState:
        return self._state

    @property
    def records(self) -> List[DiscoveryRecord]:
        return list(self._state.tools)

    # ---- persistence -----------------------------------------------------

    def _load(self) -> DiscoveryLogState:
        """Load state from disk, returning defaults on any error."""
        if not self._path.exists():
            logger.debug("No discovery log at %s; starting fresh", self._path)
            return DiscoveryLogState()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return DiscoveryLogState.model_validate(data)
        except json.JSONDecodeError as exc:
            logger.warning("Corrupt discovery log -- resetting: %s", exc)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to load discovery log -- resetting: %s", exc)
        return DiscoveryLogState()

    def _save(self) -> None:
        """Persist state via atomic tmp-file rename."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            payload = self._state.model_dump(mode="json", by_alias=True)
            tmp = self._path.with_suffix(".json.tmp")
            tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as exc:
            logger.error("Failed to save discovery log: %s", exc)

    # ---- recording -------------------------------------------------------

    def append(self, tool: Tool, category: str, source_url: str = "") -> DiscoveryRecord:
        now = datetime.now(timezone.utc)
        record = DiscoveryRecord(
            tool_id=tool.id,
            name=tool.name,
            category=category,
            discovered_at=now,
            source_url=source_url or tool.url,
        )
        with self._lock:
            self._state.tools.append(record)
            self._state.last_scrape = now
            self._state.total_discovered = len(self._state.tools)
            self._save()
        logger.info("Logged discovery of %s in %s", tool.id, category)
        return record
