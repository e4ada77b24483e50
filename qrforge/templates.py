"""Template storage: saved style descriptors keyed by numeric id in a JSON file."""

import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from qrforge.logging import audit, get_logger, trace
from qrforge.style import StyleDescriptor, style_from_dict, style_to_dict

log = get_logger("templates")


@dataclass(frozen=True)
class Template:
    id: int
    name: str
    style: StyleDescriptor
    is_default: bool
    created_at: str


class TemplateStore:
    """JSON-file-backed template store.

    Thread-safe. Styles are stored through ``style_to_dict`` so a saved
    descriptor comes back equal to the one that went in.
    """

    def __init__(self, db_path: str | Path = "qrforge_templates.json"):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._data = {"counter": 1, "templates": {}}
        if self.db_path.exists():
            with open(self.db_path) as f:
                self._data = json.load(f)
            log.info("Loaded templates from %s (%d entries)", self.db_path, len(self._data["templates"]))

    def _save(self):
        with open(self.db_path, "w") as f:
            json.dump(self._data, f, indent=2)

    @staticmethod
    def _to_template(template_id: str, entry: dict) -> Template:
        return Template(
            id=int(template_id),
            name=entry["name"],
            style=style_from_dict(entry["style"]),
            is_default=bool(entry.get("is_default", False)),
            created_at=entry["created_at"],
        )

    @trace
    def save(self, name: str, style: StyleDescriptor, is_default: bool = False) -> int:
        """Store a template and return its id."""
        with self._lock:
            template_id = self._data["counter"]
            self._data["counter"] += 1
            if is_default:
                for entry in self._data["templates"].values():
                    entry["is_default"] = False
            self._data["templates"][str(template_id)] = {
                "name": name,
                "style": style_to_dict(style),
                "is_default": is_default,
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            self._save()
        audit("template.saved", logger=log, id=template_id, name=name[:80], is_default=is_default)
        return template_id

    @trace
    def get(self, template_id: int) -> Template | None:
        entry = self._data["templates"].get(str(template_id))
        if entry is None:
            audit("template.miss", logger=log, id=template_id)
            return None
        return self._to_template(str(template_id), entry)

    def list(self) -> list[Template]:
        """Default template first, then newest first."""
        items = [self._to_template(k, v) for k, v in self._data["templates"].items()]
        return sorted(items, key=lambda t: (not t.is_default, -t.id))

    @trace
    def rename(self, template_id: int, name: str) -> bool:
        with self._lock:
            entry = self._data["templates"].get(str(template_id))
            if entry is None:
                return False
            entry["name"] = name
            self._save()
        return True

    @trace
    def set_default(self, template_id: int) -> bool:
        with self._lock:
            if str(template_id) not in self._data["templates"]:
                return False
            for key, entry in self._data["templates"].items():
                entry["is_default"] = key == str(template_id)
            self._save()
        audit("template.default_set", logger=log, id=template_id)
        return True

    def default(self) -> Template | None:
        for template in self.list():
            if template.is_default:
                return template
        return None

    @trace
    def delete(self, template_id: int) -> bool:
        with self._lock:
            removed = self._data["templates"].pop(str(template_id), None)
            if removed is None:
                return False
            self._save()
        audit("template.deleted", logger=log, id=template_id)
        return True
