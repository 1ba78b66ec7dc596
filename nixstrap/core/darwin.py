"""Actions specific to macOS, Homebrew and the nix installation."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from ..config import BACKUP_SUFFIX
from ..utils import console, sysutils
from ..utils.fs import lexists, read_text, stale_backups, timestamp, timestamped_backups
from .action import Action
from .errors import ActionError

log = logging.getLogger(__name__)


def _copy(src: Path, dst: Path, sudo: bool) -> None:
    if sudo:
        sysutils.run(["cp", str(src), str(dst)], sudo=True)
    else:
        shutil.copy2(src, dst)


def _move(src: Path, dst: Path, sudo: bool) -> None:
    if sudo:
        sysutils.run(["mv", str(src), str(dst)], sudo=True)
    else:
        os.replace(src, dst)


def _remove(path: Path, sudo: bool) -> None:
    if sudo:
        sysutils.run(["rm", "-f", str(path)], sudo=True)
    else:
        path.unlink(missing_ok=True)


class BrewInstall(Action):
    def __init__(self, packages: Sequence[str]) -> None:
        self.packages = list(packages)

    def is_installed(self, pkg: str) -> bool:
        return sysutils.probe(["brew", "list", "--versions", pkg])

    def missing(self) -> List[str]:
        return [pkg for pkg in self.packages if not self.is_installed(pkg)]

    def check(self) -> bool:
        return bool(self.missing())

    def run(self) -> None:
        need = self.missing()
        if need:
            sysutils.run(["brew", "install", *need])
            still = self.missing()
            if still:
                raise ActionError(f"brew install left packages missing: {', '.join(still)}")

    def describe(self) -> str:
        return f"brew install {', '.join(self.packages)}"


class BackupShellRc(Action):
    """Save ``<file>.backup-before-nix`` before the nix installer edits ``file``.

    An earlier backup that already mentions nix is not trusted as pristine:
    it and the current file are both kept as ``.<timestamp>`` copies. An
    earlier backup without nix is restored over the file first.
    """

    def __init__(self, path: str | Path, sudo: bool = False, stamp: Optional[str] = None) -> None:
        self.path = Path(path)
        self.backup = self.path.with_name(self.path.name + BACKUP_SUFFIX)
        self.sudo = sudo
        self.stamp = stamp

    def check(self) -> bool:
        return self.path.is_file() or self.backup.is_file()

    def run(self) -> None:
        if self.backup.is_file():
            if "nix" in (read_text(self.backup) or ""):
                console.warn(f"Backup {self.backup} contains Nix configurations, keeping timestamped copies")
                ts = self.stamp or timestamp()
                if self.path.is_file():
                    _copy(self.path, self.path.with_name(f"{self.path.name}.{ts}"), self.sudo)
                _copy(self.backup, self.backup.with_name(f"{self.backup.name}.{ts}"), self.sudo)
            else:
                console.info(f"Restoring original backup of {self.path}")
                _move(self.backup, self.path, self.sudo)
        if self.path.is_file():
            _copy(self.path, self.backup, self.sudo)

    def describe(self) -> str:
        return f"back up {self.path} -> {self.backup}"


class RestoreShellRc(Action):
    """Put the pre-nix rc file back and purge leftover backups.

    Exact ``.backup-before-nix`` first, then the newest ``.<timestamp>``
    copy. Leftovers are purged whether or not anything was restored.
    """

    def __init__(self, path: str | Path, sudo: bool = False) -> None:
        self.path = Path(path)
        self.backup = self.path.with_name(self.path.name + BACKUP_SUFFIX)
        self.sudo = sudo

    def source(self) -> Optional[Path]:
        if self.backup.is_file():
            return self.backup
        candidates = [p for p in timestamped_backups(self.path) if p.is_file()]
        return candidates[0] if candidates else None

    def leftovers(self) -> List[Path]:
        src = self.source()
        found = [*timestamped_backups(self.path), *stale_backups(self.path)]
        return [p for p in found if p != src]

    def check(self) -> bool:
        return self.source() is not None or bool(self.leftovers())

    def run(self) -> None:
        leftovers = self.leftovers()
        src = self.source()
        if src is not None:
            console.info(f"Restoring {self.path} from {src}")
            _move(src, self.path, self.sudo)
        else:
            console.info(f"No backup found for {self.path}")
        for p in leftovers:
            _remove(p, self.sudo)

    def describe(self) -> str:
        src = self.source()
        return f"restore {self.path}" + (f" from {src}" if src else "")

    def targets(self) -> List[Path]:
        return self.leftovers()


class RegisterLoginShell(Action):
    def __init__(self, shell: str | Path, shells_file: str | Path, sudo: bool = False) -> None:
        self.shell = str(shell)
        self.shells_file = Path(shells_file)
        self.sudo = sudo

    def check(self) -> bool:
        content = read_text(self.shells_file) or ""
        return self.shell not in content.splitlines()

    def run(self) -> None:
        if self.sudo:
            sysutils.run_shell(f"echo {self.shell} | sudo tee -a {self.shells_file} >/dev/null")
            return
        content = read_text(self.shells_file) or ""
        if content and not content.endswith("\n"):
            content += "\n"
        self.shells_file.write_text(content + self.shell + "\n", encoding="utf-8")

    def describe(self) -> str:
        return f"register {self.shell} in {self.shells_file}"


class LaunchctlKickstart(Action):
    def __init__(self, label: str, sudo: bool = True) -> None:
        self.label = label
        self.sudo = sudo

    def check(self) -> bool:
        return True

    def run(self) -> None:
        sysutils.launchctl("kickstart", "-k", self.label, sudo=self.sudo)

    def describe(self) -> str:
        return f"launchctl kickstart -k {self.label}"


class LaunchctlUnload(Action):
    best_effort = True

    def __init__(
        self, plist: Optional[Path] = None, label: Optional[str] = None, sudo: bool = True
    ) -> None:
        self.plist = plist
        self.label = label
        self.sudo = sudo

    def check(self) -> bool:
        return self.label is not None or (self.plist is not None and self.plist.exists())

    def run(self) -> None:
        if self.plist is not None:
            sysutils.launchctl("unload", str(self.plist), sudo=self.sudo)
        if self.label is not None:
            sysutils.launchctl("remove", self.label, sudo=self.sudo)

    def describe(self) -> str:
        if self.plist is not None:
            return f"launchctl unload {self.plist}"
        return f"launchctl remove {self.label}"


class KillProcesses(Action):
    best_effort = True

    def __init__(self, sudo: bool = True) -> None:
        self.sudo = sudo

    def check(self) -> bool:
        return bool(sysutils.find_processes())

    def run(self) -> None:
        for pid in sysutils.find_processes():
            sysutils.run(["kill", "-9", str(pid)], sudo=self.sudo, check=False)

    def describe(self) -> str:
        return f"kill nix processes {sysutils.find_processes()}"


class UnmountVolume(Action):
    best_effort = True

    def __init__(self, mountpoint: Path) -> None:
        self.mountpoint = mountpoint

    def check(self) -> bool:
        return sysutils.is_mounted(self.mountpoint)

    def run(self) -> None:
        cp = sysutils.run(
            ["diskutil", "unmount", "force", str(self.mountpoint)], sudo=True, check=False, capture=True
        )
        if cp.returncode == 0:
            return
        console.info("First unmount attempt failed, remounting read-write and retrying...")
        sysutils.run(["mount", "-uw", "/"], sudo=True, check=False)
        sysutils.run(["mount", "-uw", str(self.mountpoint)], sudo=True, check=False)
        sysutils.run(["diskutil", "unmount", "force", str(self.mountpoint)], sudo=True)

    def describe(self) -> str:
        return f"unmount {self.mountpoint}"


RECOVERY_STEPS = (
    "1. Restart your computer",
    "2. Boot into Recovery Mode (hold Cmd+R during startup)",
    "3. Open Terminal from Utilities menu",
    "4. Run: csrutil disable",
    "5. Restart and run this uninstaller again",
    "6. After uninstallation, boot into Recovery Mode again and run: csrutil enable",
)


class RemoveProtectedVolume(Action):
    """Remove ``/nix``; fall back to printed recovery-mode instructions."""

    def __init__(self, path: Path, sudo: bool = True) -> None:
        self.path = path
        self.sudo = sudo
        self.removed = False

    def check(self) -> bool:
        return lexists(self.path)

    def _rm(self) -> bool:
        if self.sudo:
            return sysutils.run(["rm", "-rf", str(self.path)], sudo=True, check=False).returncode == 0
        try:
            shutil.rmtree(self.path)
        except OSError as e:
            log.debug("rmtree %s failed: %s", self.path, e)
            return False
        return True

    def run(self) -> None:
        if self._rm():
            self.removed = True
            return
        console.info("Standard removal failed, trying alternative methods...")
        if sysutils.sip_disabled():
            sysutils.run(["mount", "-uw", "/"], sudo=True, check=False)
            if self._rm():
                self.removed = True
                return
        console.error(f"Warning: Could not remove {self.path} directory.")
        console.error("Please try these steps:")
        for line in RECOVERY_STEPS:
            console.plain(line)

    def describe(self) -> str:
        return f"remove volume {self.path}"

    def targets(self) -> List[Path]:
        return [self.path]


class GenerateSshKey(Action):
    def __init__(self, key: Path, comment: str) -> None:
        self.key = key
        self.comment = comment

    def check(self) -> bool:
        return not self.key.exists()

    def run(self) -> None:
        self.key.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        sysutils.run(["ssh-keygen", "-t", "ed25519", "-C", self.comment, "-f", str(self.key)])

    def describe(self) -> str:
        return f"generate ssh key {self.key}"
