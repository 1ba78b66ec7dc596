from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List


@dataclass(slots=True)
class StepRecord:
    completed_at: str


class State:
    """What nixstrap did to this machine, as recorded at the time."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.completed: Dict[str, StepRecord] = {}
        self.links: Dict[str, str] = {}
        self.backups: List[str] = []

    def load(self) -> None:
        if not self.path.exists():
            self.completed, self.links, self.backups = {}, {}, []
            return
        data = json.loads(self.path.read_text(encoding="utf-8"))
        self.completed = {
            name: StepRecord(**info) for name, info in data.get("completed", {}).items()
        }
        self.links = dict(data.get("links", {}))
        self.backups = list(data.get("backups", []))

    def save(self) -> None:
        data = {
            "completed": {
                name: {"completed_at": rec.completed_at} for name, rec in self.completed.items()
            },
            "links": self.links,
            "backups": self.backups,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")

    def mark_completed(self, name: str) -> None:
        self.completed[name] = StepRecord(completed_at=datetime.now(timezone.utc).isoformat())

    def is_completed(self, name: str) -> bool:
        return name in self.completed

    def record_link(self, link: Path, target: Path) -> None:
        self.links[str(link)] = str(target)

    def forget_link(self, link: Path) -> None:
        self.links.pop(str(link), None)

    def record_backup(self, path: Path) -> None:
        if str(path) not in self.backups:
            self.backups.append(str(path))
