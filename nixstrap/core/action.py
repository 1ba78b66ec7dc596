from __future__ import annotations

import os
import shlex
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Tuple

from ..utils import sysutils
from ..utils.fs import (
    ensure_dir,
    is_link_to,
    lexists,
    read_text,
    remove_path,
    write_lines,
)


class Action(ABC):
    # Failures of best-effort actions are logged and ignored.
    best_effort = False

    @abstractmethod
    def check(self) -> bool: ...

    @abstractmethod
    def run(self) -> None: ...

    def describe(self) -> str:
        return self.__class__.__name__

    def targets(self) -> List[Path]:
        """Paths this action would delete."""
        return []


# -------- Command actions --------
class RunCommand(Action):
    def __init__(
        self,
        cmd: str | Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        sudo: bool = False,
        best_effort: bool = False,
    ) -> None:
        if isinstance(cmd, str):
            self.cmd: Sequence[str] = shlex.split(cmd)
        else:
            self.cmd = list(cmd)
        self.cwd = cwd
        self.env = env
        self.sudo = sudo
        self.best_effort = best_effort

    def check(self) -> bool:
        return True

    def run(self) -> None:
        sysutils.run(self.cmd, sudo=self.sudo, cwd=self.cwd, env=self.env)

    def describe(self) -> str:
        prefix = "sudo " if self.sudo else ""
        return f"run command: {prefix}{shlex.join(self.cmd)}"


class RunShell(Action):
    def __init__(
        self, script: str, cwd: Optional[Path] = None, env: Optional[Mapping[str, str]] = None
    ) -> None:
        self.script = script
        self.cwd = cwd
        self.env = env

    def check(self) -> bool:
        return True

    def run(self) -> None:
        sysutils.run_shell(self.script, cwd=self.cwd, env=self.env)

    def describe(self) -> str:
        return f"run shell: {self.script}"


# -------- Filesystem actions --------
class CreateDir(Action):
    def __init__(self, path: str | Path, mode: int = 0o755) -> None:
        self.path = Path(path)
        self.mode = mode

    def check(self) -> bool:
        return not lexists(self.path)

    def run(self) -> None:
        ensure_dir(self.path, mode=self.mode, exist_ok=True)

    def describe(self) -> str:
        return f"create directory {self.path}"


class CreateLink(Action):
    """Point ``link_path`` at ``target``, replacing whatever is there.

    The target must exist. An empty directory in the way is removed; a
    non-empty one is moved aside to ``<name>.replaced``.
    """

    def __init__(self, link_path: str | Path, target: str | Path) -> None:
        self.link_path = Path(link_path)
        self.target = Path(target)

    def check(self) -> bool:
        return not is_link_to(self.link_path, self.target)

    def run(self) -> None:
        if not self.target.exists():
            raise FileNotFoundError(f"Source {self.target} does not exist")
        if self.link_path.is_symlink() or self.link_path.is_file():
            self.link_path.unlink()
        elif self.link_path.is_dir():
            if any(self.link_path.iterdir()):
                os.replace(self.link_path, self.link_path.with_name(self.link_path.name + ".replaced"))
            else:
                self.link_path.rmdir()
        self.link_path.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(self.target, self.link_path)

    def verify(self) -> Optional[str]:
        """None when the link resolves to the target, else what went wrong."""
        if not self.link_path.is_symlink():
            return f"Symlink {self.link_path} not created"
        actual = os.readlink(self.link_path)
        if Path(actual) != self.target:
            return f"Symlink {self.link_path} points to wrong location (expected {self.target}, actual {actual})"
        return None

    def describe(self) -> str:
        return f"link {self.link_path} -> {self.target}"


class DeleteLink(Action):
    def __init__(self, link_path: str | Path) -> None:
        self.link_path = Path(link_path)

    def check(self) -> bool:
        return self.link_path.is_symlink()

    def run(self) -> None:
        if self.link_path.is_symlink():
            self.link_path.unlink()

    def describe(self) -> str:
        return f"remove symlink {self.link_path}"

    def targets(self) -> List[Path]:
        return [self.link_path]


class RemovePath(Action):
    """``rm -rf`` a file, link or directory tree."""

    def __init__(self, path: str | Path, label: Optional[str] = None, sudo: bool = False) -> None:
        self.path = Path(path)
        self.label = label
        self.sudo = sudo

    def check(self) -> bool:
        return lexists(self.path)

    def run(self) -> None:
        if self.sudo:
            sysutils.run(["rm", "-rf", str(self.path)], sudo=True)
        else:
            remove_path(self.path)

    def describe(self) -> str:
        return f"remove {self.label or self.path}"

    def targets(self) -> List[Path]:
        return [self.path]



class CopyTree(Action):
    """Copy ``src`` into ``dest_dir`` keeping its base name and symlinks."""

    def __init__(self, src: str | Path, dest_dir: str | Path) -> None:
        self.src = Path(src)
        self.dest_dir = Path(dest_dir)

    @property
    def destination(self) -> Path:
        return self.dest_dir / self.src.name

    def check(self) -> bool:
        return self.src.is_dir()

    def run(self) -> None:
        self.dest_dir.mkdir(parents=True, exist_ok=True)
        shutil.copytree(self.src, self.destination, symlinks=True, dirs_exist_ok=True)

    def describe(self) -> str:
        return f"back up {self.src} -> {self.destination}"


# -------- File content actions --------
class EditLines(Action):
    """Rewrite a text file through ``edited()``.

    Pending whenever the edit would change the file. A missing file reads
    as empty and is only created when the edit adds something.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def current(self) -> List[str]:
        return (read_text(self.path) or "").splitlines()

    def edited(self, lines: List[str]) -> List[str]:
        raise NotImplementedError

    def check(self) -> bool:
        lines = self.current()
        return self.edited(lines) != lines

    def run(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_lines(self.path, self.edited(self.current()))


class EnsureLinePresent(EditLines):
    def __init__(self, path: str | Path, line: str) -> None:
        super().__init__(path)
        self.line = line.rstrip("\n")

    def edited(self, lines: List[str]) -> List[str]:
        return lines if self.line in lines else [*lines, self.line]

    def describe(self) -> str:
        return f"add '{self.line}' to {self.path}"


class EnsureLineAbsent(EditLines):
    def __init__(self, path: str | Path, line: str) -> None:
        super().__init__(path)
        self.line = line.rstrip("\n")

    def edited(self, lines: List[str]) -> List[str]:
        return [ln for ln in lines if ln != self.line]

    def describe(self) -> str:
        return f"remove '{self.line}' from {self.path}"


def block_markers(key: str, prefix: str = "#") -> Tuple[str, str]:
    return f"{prefix} BEGIN nixstrap {key}", f"{prefix} END nixstrap {key}"


def find_block(lines: List[str], key: str, prefix: str = "#") -> Optional[Tuple[int, int]]:
    """Indexes of the BEGIN and END lines of block ``key``, if both are there."""
    begin, end = block_markers(key, prefix)
    stripped = [ln.strip() for ln in lines]
    if begin not in stripped:
        return None
    start = stripped.index(begin)
    try:
        return start, stripped.index(end, start + 1)
    except ValueError:
        return None


class EnsureBlockPresent(EditLines):
    """Keep ``content`` between nixstrap markers in ``path``.

    An existing block with the same key is replaced where it stands;
    otherwise the block is appended.
    """

    def __init__(self, path: str | Path, key: str, content: str, comment_prefix: str = "#") -> None:
        super().__init__(path)
        self.key = key
        self.content = content.rstrip("\n")
        self.prefix = comment_prefix

    def edited(self, lines: List[str]) -> List[str]:
        begin, end = block_markers(self.key, self.prefix)
        block = [begin, *self.content.splitlines(), end]
        span = find_block(lines, self.key, self.prefix)
        if span is None:
            return [*lines, *block]
        i, j = span
        return [*lines[:i], *block, *lines[j + 1 :]]

    def describe(self) -> str:
        return f"write {self.key} block in {self.path}"


class EnsureBlockAbsent(EditLines):
    def __init__(self, path: str | Path, key: str, comment_prefix: str = "#") -> None:
        super().__init__(path)
        self.key = key
        self.prefix = comment_prefix

    def edited(self, lines: List[str]) -> List[str]:
        span = find_block(lines, self.key, self.prefix)
        if span is None:
            return lines
        i, j = span
        return [*lines[:i], *lines[j + 1 :]]

    def describe(self) -> str:
        return f"remove {self.key} block from {self.path}"
