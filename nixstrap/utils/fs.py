from __future__ import annotations

import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..config import BACKUP_SUFFIX, TIMESTAMP_FORMAT


def ensure_dir(path: Path, mode: int = 0o755, exist_ok: bool = True) -> None:
    path.mkdir(parents=True, exist_ok=exist_ok)
    if mode is not None:
        os.chmod(path, mode)


def atomic_write(path: Path, data: bytes, mode: int = 0o644) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_bytes(data)
    os.replace(tmp, path)
    if mode is not None:
        os.chmod(path, mode)


def read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def write_lines(path: Path, lines: List[str]) -> None:
    atomic_write(path, ("\n".join(lines) + ("\n" if lines else "")).encode("utf-8"))


def is_link_to(path: Path, target: Path) -> bool:
    try:
        return path.is_symlink() and Path(os.readlink(path)) == target
    except OSError:
        return False


def lexists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
    elif path.is_dir():
        shutil.rmtree(path)


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def timestamped_backups(path: Path) -> List[Path]:
    """``<name>.<digits>...`` siblings of ``path``, newest first."""
    prefix = path.name + "."
    found = [
        p
        for p in path.parent.glob(path.name + ".*")
        if p.name[len(prefix):][:1].isdigit()
    ]
    return sorted(found, key=lambda p: (p.lstat().st_mtime, p.name), reverse=True)


def stale_backups(path: Path) -> List[Path]:
    """Leftover ``<name>.backup-before-nix.<stamp>`` files."""
    return sorted(path.parent.glob(path.name + BACKUP_SUFFIX + ".*"))
