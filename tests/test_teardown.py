import os
import subprocess

import pytest

from nixstrap.config import BREW_SHELLENV
from nixstrap.core import action
from nixstrap.core.action import EnsureBlockPresent
from nixstrap.core.errors import AbortedError
from nixstrap.core.state import State
from nixstrap.teardown import Teardown
from nixstrap.utils import sysutils

from conftest import ScriptedPrompter, snapshot, write

CONFIRM = {"absolutely sure": "yes"}


@pytest.fixture
def installed(layout, commands, dotfiles_checkout):
    """A machine as bootstrap leaves it, plus some tool configuration."""
    home = layout.home
    layout.config_dir.mkdir()
    for link, src in layout.linked_dirs():
        os.symlink(src, link)
    write(layout.config_dir / "starship.toml", "add_newline = false\n")
    write(home / ".aws" / "credentials", "[default]\n")
    write(home / ".pyenv" / "version", "3.12\n")
    write(home / ".zshrc", "# added by nix\n")
    write(home / ".zshrc.backup-before-nix", "# pristine zshrc\n")
    write(home / ".zshrc.20240101_000000", "# older copy\n")
    write(layout.zprofile, BREW_SHELLENV + "\n")
    write(layout.ssh_key, "PRIVATE\n")
    write(layout.ssh_dir / "github.pub", "ssh-ed25519 AAAA\n")
    EnsureBlockPresent(layout.ssh_dir / "config", "github.com", "Host github.com").run()
    write(layout.nix_store / "store" / "abc-hello" / "bin" / "hello", "#!/bin/sh\n")
    write(layout.system("etc", "nix", "nix.conf"), "build-users-group = nixbld\n")
    (layout.system("etc", "nix-darwin")).mkdir()
    write(home / ".nix-profile" / "manifest.json", "{}\n")

    st = State(layout.state_file)
    for link, src in layout.linked_dirs():
        st.record_link(link, src)
    st.save()
    return layout


def make_teardown(layout, answers, dry_run=False):
    st = State(layout.state_file)
    st.load()
    prompter = ScriptedPrompter({**CONFIRM, **answers})
    return Teardown(layout, prompter, st, dry_run=dry_run, countdown=0), prompter


def test_dry_run_changes_nothing(installed, commands, tmp_path, capsys):
    before = snapshot(tmp_path)
    td, _ = make_teardown(
        installed,
        {
            "remove ALL": "y",
            "backup": "y",
            "Homebrew": "y",
            "SSH keys": "y",
            "dotfiles repository": "y",
        },
        dry_run=True,
    )
    assert td.run()

    assert snapshot(tmp_path) == before
    assert commands.calls == []
    assert not list(installed.home.glob("dotfiles_backup_*"))

    out = capsys.readouterr().out
    home, lay = installed.home, installed
    for path in (
        lay.config_dir / "nix",
        home / ".aws",
        home / ".pyenv",
        lay.nix_store,
        lay.system("etc", "nix"),
        lay.system("etc", "nix-darwin"),
        home / ".nix-profile",
        home / ".zshrc.20240101_000000",
        lay.ssh_key,
        lay.dotfile_dir,
    ):
        assert f"Would remove: {path}" in out


def test_remove_all_skips_category_questions(installed, commands):
    td, prompter = make_teardown(installed, {"remove ALL": "y", "SSH keys": "y"})
    assert td.run()

    home, lay = installed.home, installed
    for gone in (home / ".aws", home / ".pyenv", lay.config_dir / "starship.toml"):
        assert not os.path.lexists(gone)
    for link, src in lay.linked_dirs():
        assert not os.path.lexists(link)
        assert (src / "default.nix").exists()
    assert not lay.nix_store.exists()
    assert not lay.system("etc", "nix").exists()
    assert not lay.system("etc", "nix-darwin").exists()
    assert not (home / ".nix-profile").exists()
    assert (home / ".zshrc").read_text() == "# pristine zshrc\n"
    assert not (home / ".zshrc.20240101_000000").exists()
    assert not lay.ssh_key.exists()
    assert "nixstrap github.com" not in (lay.ssh_dir / "config").read_text()
    assert lay.dotfile_dir.exists()
    assert not lay.state_file.exists()

    assert not prompter.asked("Python-related")
    assert not prompter.asked("cloud-related")
    assert not commands.ran("sh", "-c")


def test_declined_categories_are_kept(installed, commands):
    td, prompter = make_teardown(installed, {"cloud-related": "y"})
    td.run()
    assert not (installed.home / ".aws").exists()
    assert (installed.home / ".pyenv" / "version").exists()
    assert prompter.asked("Python-related")


def test_backup_is_an_exact_copy(installed, commands):
    sources = [p for p in installed.backup_sources() if p.is_dir()]
    expected = {p.name: snapshot(p) for p in sources}

    td, _ = make_teardown(installed, {"backup": "y"})
    td.run()

    backups = list(installed.home.glob("dotfiles_backup_*"))
    assert len(backups) == 1
    assert td.backup_dir == backups[0]
    st = State(installed.state_file)
    st.load()
    assert st.backups == [str(backups[0])]
    assert st.completed == {} and st.links == {}
    for name, tree in expected.items():
        assert snapshot(backups[0] / name) == tree


def test_homebrew_removal(installed, commands):
    td, _ = make_teardown(installed, {"Homebrew": "y"})
    td.run()
    assert any("uninstall.sh" in c[-1] for c in commands.ran("sh", "-c"))
    assert BREW_SHELLENV not in installed.zprofile.read_text()


def test_failure_can_be_continued(installed, commands):
    commands.fail_shell = subprocess.CalledProcessError(1, "uninstall.sh")
    td, prompter = make_teardown(installed, {"Homebrew": "y", "Continue anyway?": "y"})
    assert td.run()
    assert prompter.asked("Continue anyway?")
    assert not installed.nix_store.exists()


def test_failure_can_abort(installed, commands):
    commands.fail_shell = subprocess.CalledProcessError(1, "uninstall.sh")
    td, _ = make_teardown(installed, {"Homebrew": "y", "Continue anyway?": "n"})
    with pytest.raises(AbortedError):
        td.run()
    assert (installed.home / ".aws").exists()


def test_cancel_at_confirmation(installed, commands, tmp_path):
    before = snapshot(tmp_path)
    td, prompter = make_teardown(installed, {"absolutely sure": "no"})
    assert td.run() is False
    assert snapshot(tmp_path) == before
    assert not prompter.asked("remove ALL")


def test_running_daemon_is_unloaded(installed, commands, monkeypatch):
    monkeypatch.setattr(sysutils, "find_processes", lambda names=None: [4242])
    td, _ = make_teardown(installed, {})
    td.run()
    assert commands.ran("launchctl", "remove")
    assert ["kill", "-9", "4242"] in commands.calls


def test_failed_removal_is_not_reported_as_success(installed, commands, monkeypatch, capsys):
    real_remove = action.remove_path

    def remove_path(path):
        if path.name == ".aws":
            raise PermissionError(f"denied: {path}")
        real_remove(path)

    monkeypatch.setattr(action, "remove_path", remove_path)
    td, prompter = make_teardown(installed, {"cloud-related": "y", "Continue anyway?": "y"})
    assert td.run()
    captured = capsys.readouterr()
    assert prompter.asked("Continue anyway?")
    assert "Error occurred during: remove AWS" in captured.err
    assert "AWS removed successfully" not in captured.out
    assert (installed.home / ".aws").exists()
