from __future__ import annotations

import subprocess
from pathlib import Path

from ..utils import sysutils


def git(cmd: list[str], cwd: Path, check: bool = True) -> subprocess.CompletedProcess:
    return sysutils.run(["git", *cmd], cwd=cwd, check=check, capture=True)


def is_repo(repo_dir: Path) -> bool:
    return (repo_dir / ".git").is_dir()


def clone(url: str, repo_dir: Path) -> None:
    repo_dir.parent.mkdir(parents=True, exist_ok=True)
    sysutils.run(["git", "clone", url, str(repo_dir)])


def pull(repo_dir: Path) -> str:
    cp = git(["pull", "--ff-only"], cwd=repo_dir)
    return cp.stdout.strip()


def set_identity(name: str, email: str) -> None:
    sysutils.run(["git", "config", "--global", "user.name", name])
    sysutils.run(["git", "config", "--global", "user.email", email])
