from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Tuple


@dataclass(slots=True)
class Step:
    name: str
    title: str
    # Returns False when the stage was declined or skipped.
    run: Callable[[], Optional[bool]]
    # True when the stage is already satisfied on this machine.
    probe: Optional[Callable[[], bool]] = None

    def __post_init__(self) -> None:
        if not self.name or not isinstance(self.name, str):
            raise ValueError("Step.name must be non-empty str")

    def satisfied(self) -> Optional[bool]:
        return self.probe() if self.probe is not None else None


@dataclass(frozen=True, slots=True)
class Category:
    """A group of paths removed together after one yes/no question."""

    name: str
    question: str
    entries: Tuple[Tuple[Path, str], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.entries:
            raise ValueError(f"Category {self.name} has no entries")
