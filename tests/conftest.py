import os
import subprocess
from pathlib import Path

import pytest

from nixstrap.config import Layout
from nixstrap.utils import sysutils
from nixstrap.utils.console import Prompter


class ScriptedPrompter(Prompter):
    """Answers a prompt with the first scripted reply whose key it contains."""

    def __init__(self, answers=None, default="n"):
        super().__init__(reader=self._read)
        self.answers = dict(answers or {})
        self.default = default
        self.questions = []

    def _read(self, prompt):
        self.questions.append(prompt)
        for key, reply in self.answers.items():
            if key in prompt:
                return reply
        return self.default

    def asked(self, fragment):
        return any(fragment in q for q in self.questions)


class CommandLog:
    def __init__(self):
        self.calls = []
        self.missing = set()
        self.fail_shell = None

    def run(self, cmd, *, sudo=False, check=True, cwd=None, env=None, capture=False):
        self.calls.append(list(cmd))
        return subprocess.CompletedProcess(list(cmd), 0, stdout="", stderr="")

    def run_shell(self, script, *, cwd=None, env=None):
        self.calls.append(["sh", "-c", script])
        if self.fail_shell is not None:
            raise self.fail_shell

    def which(self, cmd):
        return None if cmd in self.missing else f"/usr/bin/{cmd}"

    def ran(self, *prefix):
        return [c for c in self.calls if c[: len(prefix)] == list(prefix)]


@pytest.fixture
def commands(monkeypatch):
    log = CommandLog()
    monkeypatch.setattr(sysutils, "run", log.run)
    monkeypatch.setattr(sysutils, "run_shell", log.run_shell)
    monkeypatch.setattr(sysutils, "which", log.which)
    monkeypatch.setattr(sysutils, "find_processes", lambda names=sysutils.NIX_PROCESS_NAMES: [])
    monkeypatch.setattr(sysutils, "is_mounted", lambda mountpoint: False)
    monkeypatch.setattr(sysutils, "sip_disabled", lambda: False)
    return log


@pytest.fixture
def layout(tmp_path):
    lay = Layout(home=tmp_path / "home", root=tmp_path / "root", use_sudo=False)
    lay.home.mkdir()
    (lay.root / "etc").mkdir(parents=True)
    return lay


@pytest.fixture
def dotfiles_checkout(layout):
    repo = layout.dotfile_dir
    (repo / ".git").mkdir(parents=True)
    (repo / "flake.nix").write_text("{ }\n")
    for name in ("nix", "darwin", "home-manager"):
        (repo / name).mkdir()
        (repo / name / "default.nix").write_text(f"# {name}\n")
    (repo / "nix" / "zshrc").write_text("# managed zshrc\n")
    (repo / "user-config.nix").write_text(
        "{\n"
        '    username = "jdoe";\n'
        '    fullName = "Jane Doe";\n'
        '    email = "jane@example.com";\n'
        '    githubUsername = "jdoe";\n'
        '    hostname = "macbook-pro";\n'
        "}\n"
    )
    return repo


def write(path: Path, text: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def snapshot(root: Path, exclude=()):
    """Everything under ``root``: file contents, link targets and dirs."""
    result = {}
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        for name in [*dirnames, *filenames]:
            p = base / name
            rel = str(p.relative_to(root))
            if any(rel == e or rel.startswith(e + os.sep) for e in exclude):
                continue
            if p.is_symlink():
                result[rel] = ("link", os.readlink(p))
            elif p.is_dir():
                result[rel] = ("dir", None)
            else:
                result[rel] = ("file", p.read_bytes())
    return result
