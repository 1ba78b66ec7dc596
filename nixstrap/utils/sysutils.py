from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

import psutil

from ..config import SHELL_ENV

log = logging.getLogger(__name__)

NIX_PROCESS_NAMES = ("nix", "nix-daemon", "nix-store", "nix-build", "nix-shell", "nix-env")


def which(cmd: str) -> Optional[str]:
    return shutil.which(cmd)


def have(cmd: str) -> bool:
    return which(cmd) is not None


def is_macos(platform: Optional[str] = None) -> bool:
    return (platform or sys.platform) == "darwin"


def run(
    cmd: Sequence[str],
    *,
    sudo: bool = False,
    check: bool = True,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    capture: bool = False,
) -> subprocess.CompletedProcess:
    argv = ["sudo", *cmd] if sudo else list(cmd)
    log.debug("exec %s", shlex.join(argv))
    return subprocess.run(
        argv,
        check=check,
        cwd=str(cwd) if cwd else None,
        env=dict(env) if env is not None else SHELL_ENV,
        capture_output=capture,
        text=True,
    )


def run_shell(script: str, *, cwd: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> None:
    log.debug("exec shell %s", script)
    subprocess.run(
        script,
        shell=True,
        check=True,
        cwd=str(cwd) if cwd else None,
        env=dict(env) if env is not None else SHELL_ENV,
    )


def probe(cmd: Sequence[str]) -> bool:
    """True if ``cmd`` exists and exits 0."""
    try:
        return run(cmd, check=False, capture=True).returncode == 0
    except OSError:
        return False


def launchctl(*args: str, sudo: bool = True) -> None:
    run(["launchctl", *args], sudo=sudo)


def is_mounted(mountpoint: Path) -> bool:
    target = str(mountpoint)
    return any(p.mountpoint == target for p in psutil.disk_partitions(all=True))


def find_processes(names: Sequence[str] = NIX_PROCESS_NAMES) -> List[int]:
    """Pids of running processes whose name matches one of ``names``."""
    own = os.getpid()
    pids: List[int] = []
    for proc in psutil.process_iter(["pid", "name"]):
        try:
            name = (proc.info.get("name") or "").lower()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
        if proc.info["pid"] != own and name in names:
            pids.append(proc.info["pid"])
    return pids


def sip_disabled() -> bool:
    try:
        cp = run(["csrutil", "status"], check=False, capture=True)
    except OSError:
        return False
    return "disabled" in cp.stdout
