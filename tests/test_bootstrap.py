import os

import pytest

from nixstrap.bootstrap import Bootstrap
from nixstrap.config import BREW_SHELLENV, NIX_DAEMON_LABEL, NIX_FLAKES
from nixstrap.core.action import CreateLink
from nixstrap.core.errors import PreconditionError, ResumeRequired, UserConfigError
from nixstrap.core.state import State

from conftest import ScriptedPrompter, snapshot, write

ANSWERS = {
    "proceed with dotfiles setup": "y",
    "pull latest": "n",
    "Git SSH": "n",
}


def make_bootstrap(layout, answers=ANSWERS, **kw):
    state = State(layout.state_file)
    state.load()
    kw.setdefault("platform", "darwin")
    return Bootstrap(layout, ScriptedPrompter(answers), state, settle_seconds=0, **kw)


@pytest.fixture
def machine(layout, commands, dotfiles_checkout):
    write(layout.login_shells, "/bin/bash\n/usr/bin/zsh\n")
    write(layout.home / ".zshrc", "# pre-existing\n")
    return layout


def test_full_run_links_and_switches(machine, commands):
    boot = make_bootstrap(machine)
    assert boot.run() == []

    for link, src in machine.linked_dirs():
        assert os.readlink(link) == str(src)
    assert os.readlink(machine.home / ".zshrc") == str(machine.dotfile_dir / "nix" / "zshrc")
    assert not (machine.home / ".dynamic-config.zsh").exists()
    assert NIX_FLAKES in machine.nix_conf.read_text().splitlines()

    switch = commands.ran("darwin-rebuild", "switch")
    assert switch == [["darwin-rebuild", "switch", "--flake", ".#macbook-pro"]]
    assert commands.ran("launchctl", "kickstart")
    assert not commands.ran("brew", "install")
    assert not commands.ran("xcode-select", "--install")

    st = State(machine.state_file)
    st.load()
    assert {"symlinks", "darwin", "finish"} <= set(st.completed)
    assert "git-ssh" not in st.completed
    assert str(machine.config_dir / "nix") in st.links


def test_second_run_changes_nothing(machine, commands):
    make_bootstrap(machine).run()
    before = snapshot(machine.home, exclude=[".local"])
    calls = len(commands.calls)

    make_bootstrap(machine).run()

    assert snapshot(machine.home, exclude=[".local"]) == before
    new = commands.calls[calls:]
    reissued = [c for c in new if c[:2] not in (["xcode-select", "-p"], ["brew", "list"])]
    assert reissued == [
        ["darwin-rebuild", "switch", "--flake", ".#macbook-pro"],
        ["launchctl", "kickstart", "-k", NIX_DAEMON_LABEL],
    ]
    assert not [c for c in new if c[:2] in (["brew", "install"], ["xcode-select", "--install"])]
    assert machine.nix_conf.read_text().count(NIX_FLAKES) == 1


def test_fresh_homebrew_asks_for_resume(machine, commands):
    commands.missing.add("brew")
    boot = make_bootstrap(machine)
    with pytest.raises(ResumeRequired):
        boot.run()
    assert BREW_SHELLENV in machine.zprofile.read_text()
    st = State(machine.state_file)
    st.load()
    assert st.is_completed("homebrew")
    assert not st.is_completed("nix")


def test_fresh_nix_backs_up_rc_files(machine, commands):
    commands.missing.add("nix")
    write(machine.system("etc", "zshrc"), "system zshrc\n")
    with pytest.raises(ResumeRequired):
        make_bootstrap(machine).run()
    assert machine.system("etc", "zshrc.backup-before-nix").read_text() == "system zshrc\n"
    assert (machine.home / ".zshrc.backup-before-nix").read_text() == "# pre-existing\n"
    assert any("nixos.org/nix/install" in " ".join(c) for c in commands.calls)
    assert commands.ran("nix-shell", "-p", "neofetch")


def test_refuses_other_platforms(machine, commands):
    with pytest.raises(PreconditionError, match="macOS"):
        make_bootstrap(machine, platform="linux").run()
    assert commands.calls == []


def test_bad_hostname_fails_before_any_change(machine, commands):
    cfg = machine.user_config
    cfg.write_text(cfg.read_text().replace("macbook-pro", "macbook_pro"))
    before = snapshot(machine.home)
    with pytest.raises(UserConfigError, match="macbook_pro"):
        make_bootstrap(machine).run()
    assert commands.calls == []
    assert snapshot(machine.home) == before


def test_bad_hostname_override(machine, commands):
    with pytest.raises(UserConfigError):
        make_bootstrap(machine, hostname="my.host").run()
    assert commands.calls == []


def test_hostname_override_wins(machine, commands):
    make_bootstrap(machine, hostname="mac-mini").run()
    assert commands.ran("darwin-rebuild")[0][-1] == ".#mac-mini"


def test_declining_dotfiles_skips_links(machine, commands):
    boot = make_bootstrap(machine, answers={"proceed with dotfiles setup": "n"})
    boot.run()
    assert not (machine.config_dir / "nix").is_symlink()
    assert not commands.ran("darwin-rebuild")
    assert not boot.state.is_completed("symlinks")


def test_checkout_without_flake_is_rejected(machine, commands):
    (machine.dotfile_dir / "flake.nix").unlink()
    with pytest.raises(PreconditionError, match="flake.nix"):
        make_bootstrap(machine).run()


def test_link_mismatch_is_a_warning(machine, tmp_path):
    boot = make_bootstrap(machine)
    src = machine.dotfile_dir / "nix"
    link = write(tmp_path / "other" / "x").parent
    wrong = machine.config_dir / "nix"
    wrong.parent.mkdir(parents=True, exist_ok=True)
    os.symlink(link, wrong)
    boot.verify_links([CreateLink(wrong, src)])
    assert len(boot.warnings) == 1
    assert "wrong location" in boot.warnings[0]
    assert str(wrong) not in boot.state.links


def test_missing_zsh_is_installed_and_registered(machine, commands):
    write(machine.login_shells, "/bin/bash\n")
    make_bootstrap(machine).run()
    assert "/usr/bin/zsh" in machine.login_shells.read_text().splitlines()
