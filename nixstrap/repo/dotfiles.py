"""Checks and fix-ups for the dotfiles checkout."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from rich.tree import Tree

from ..config import LINKED_DIRS
from ..core.errors import PreconditionError

REQUIRED_FILE = "flake.nix"


def verify_checkout(repo_dir: Path) -> None:
    if not (repo_dir / REQUIRED_FILE).is_file():
        raise PreconditionError(f"{REQUIRED_FILE} not found in repository root {repo_dir}")


def normalize_layout(repo_dir: Path) -> list[str]:
    """Move an older ``.config/<dir>`` layout up to the repo root.

    Returns the directory names that were moved.
    """
    legacy = repo_dir / ".config"
    if not legacy.is_dir():
        return []
    moved = []
    for name in LINKED_DIRS:
        src = legacy / name
        if not src.is_dir():
            continue
        dst = repo_dir / name
        if dst.exists():
            raise PreconditionError(f"Both {src} and {dst} exist; merge them by hand")
        os.replace(src, dst)
        moved.append(name)
    shutil.rmtree(legacy)
    return moved


def render_tree(repo_dir: Path, depth: int = 2) -> Tree:
    tree = Tree(str(repo_dir))
    _fill(tree, repo_dir, depth)
    return tree


def _fill(node: Tree, path: Path, depth: int) -> None:
    if depth == 0:
        return
    for child in sorted(path.iterdir(), key=lambda p: p.name):
        if child.name == ".git":
            continue
        if child.is_dir() and not child.is_symlink():
            _fill(node.add(child.name + "/"), child, depth - 1)
        else:
            node.add(child.name)
