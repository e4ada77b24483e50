"""Generation history: previously rendered codes in a JSON file, newest first."""

import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from qrforge.formatters import detect_qr_type
from qrforge.logging import audit, get_logger, trace
from qrforge.style import StyleDescriptor, style_from_dict, style_to_dict

log = get_logger("history")


@dataclass(frozen=True)
class HistoryItem:
    id: int
    content: str
    qr_type: str
    label: str | None
    style: StyleDescriptor
    created_at: str


@dataclass(frozen=True)
class HistoryPage:
    items: list[HistoryItem]
    total: int
    has_more: bool


class HistoryStore:
    """JSON-file-backed generation history.

    Thread-safe. Ids only grow, so id order is creation order.
    """

    def __init__(self, db_path: str | Path = "qrforge_history.json"):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._data = {"counter": 1, "items": {}}
        if self.db_path.exists():
            with open(self.db_path) as f:
                self._data = json.load(f)
            log.info("Loaded history from %s (%d entries)", self.db_path, len(self._data["items"]))

    def _save(self):
        with open(self.db_path, "w") as f:
            json.dump(self._data, f, indent=2)

    @staticmethod
    def _to_item(item_id: str, entry: dict) -> HistoryItem:
        return HistoryItem(
            id=int(item_id),
            content=entry["content"],
            qr_type=entry["qr_type"],
            label=entry.get("label"),
            style=style_from_dict(entry.get("style") or {}),
            created_at=entry["created_at"],
        )

    @trace
    def save(self, content: str, style: StyleDescriptor, qr_type: str | None = None,
             label: str | None = None) -> int:
        """Record one generated code and return its id."""
        with self._lock:
            item_id = self._data["counter"]
            self._data["counter"] += 1
            self._data["items"][str(item_id)] = {
                "content": content,
                "qr_type": qr_type or detect_qr_type(content),
                "label": label,
                "style": style_to_dict(style),
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            self._save()
        audit("history.saved", logger=log, id=item_id, content=content[:80])
        return item_id

    def get(self, item_id: int) -> HistoryItem | None:
        entry = self._data["items"].get(str(item_id))
        return None if entry is None else self._to_item(str(item_id), entry)

    @trace
    def list(self, limit: int = 50, offset: int = 0, search: str | None = None) -> HistoryPage:
        """One page of history, newest first.

        Args:
            limit: Maximum number of items on the page.
            offset: Items to skip from the newest end.
            search: Case-insensitive substring matched against content and label.

        Returns:
            HistoryPage whose ``total`` counts every match, not just this page.
        """
        needle = search.lower() if search else None
        matches = []
        for key in sorted(self._data["items"], key=int, reverse=True):
            entry = self._data["items"][key]
            if needle is not None and needle not in entry["content"].lower() \
                    and needle not in (entry.get("label") or "").lower():
                continue
            matches.append((key, entry))
        offset = max(0, offset)
        page = matches[offset : offset + max(0, limit)]
        return HistoryPage(
            items=[self._to_item(k, v) for k, v in page],
            total=len(matches),
            has_more=offset + len(page) < len(matches),
        )

    def count(self) -> int:
        return len(self._data["items"])

    @trace
    def delete(self, item_id: int) -> bool:
        with self._lock:
            removed = self._data["items"].pop(str(item_id), None)
            if removed is None:
                return False
            self._save()
        audit("history.deleted", logger=log, id=item_id)
        return True

    @trace
    def clear(self) -> int:
        """Remove every entry; returns how many were removed."""
        with self._lock:
            removed = len(self._data["items"])
            self._data["items"] = {}
            self._save()
        audit("history.cleared", logger=log, removed=removed)
        return removed
