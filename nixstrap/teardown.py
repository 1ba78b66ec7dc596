"""Reverse what the bootstrap did, category by category."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional

from .config import BREW_SHELLENV, BREW_UNINSTALL_URL, COUNTDOWN_SECONDS, NIX_DAEMON_LABEL, Layout
from .core.action import (
    Action,
    CopyTree,
    DeleteLink,
    EnsureBlockAbsent,
    EnsureLineAbsent,
    RemovePath,
    RunShell,
)
from .core.darwin import (
    KillProcesses,
    LaunchctlUnload,
    RemoveProtectedVolume,
    RestoreShellRc,
    UnmountVolume,
)
from .core.executor import Executor
from .core.state import State
from .core.step import Category
from .utils import console, sysutils
from .utils.console import Prompter
from .utils.fs import is_link_to, timestamp

log = logging.getLogger(__name__)

WARNING_LINES = (
    "Remove Nix package manager",
    "Remove nix-darwin configuration",
    "Remove home-manager configuration",
    "Optionally remove Homebrew",
    "Remove various tool configurations (Python, Java, AWS, etc.)",
    "Remove development environment settings",
)


def tool_categories(layout: Layout) -> List[Category]:
    home = layout.home
    support = home / "Library" / "Application Support"
    return [
        Category(
            "python",
            "Do you want to remove all Python-related tools? (UV, pyenv, poetry, pipx)",
            (
                (home / ".local" / "bin" / "uv", "UV"),
                (home / ".pyenv", "pyenv"),
                (home / ".local" / "pipx" / "venvs" / "poetry", "Poetry"),
                (home / ".local" / "pipx", "pipx"),
            ),
        ),
        Category(
            "cloud",
            "Do you want to remove all cloud-related configurations? (AWS, GCloud, Terraform ...)",
            (
                (home / ".aws", "AWS"),
                (layout.config_dir / "gcloud", "Google Cloud SDK"),
                (home / ".terraform.d", "Terraform"),
            ),
        ),
        Category(
            "dev",
            "Do you want to remove all development tools? (SDKMAN, Docker ...)",
            ((home / ".sdkman", "SDKMAN"), (home / ".docker", "Docker")),
        ),
        Category(
            "editor",
            "Do you want to remove all editor configurations? (VSCode, JetBrains, Cursor ...)",
            (
                (support / "Code", "VSCode"),
                (home / ".vscode", "VSCode Config"),
                (support / "JetBrains", "JetBrains"),
                (support / "Cursor", "Cursor"),
                (home / ".cursor", "Cursor Config"),
            ),
        ),
        Category(
            "shell",
            "Do you want to remove all shell configurations? (oh-my-zsh, plugins, starship ...)",
            (
                (home / ".oh-my-zsh", "oh-my-zsh"),
                (home / ".zsh-autosuggestions", "zsh-autosuggestions"),
                (home / ".zsh-syntax-highlighting", "zsh-syntax-highlighting"),
                (layout.config_dir / "starship.toml", "Starship"),
                (home / ".local" / "share" / "zoxide", "Zoxide"),
            ),
        ),
        Category(
            "personal",
            "Do you want to remove all personal app configurations? (Bitwarden, Insync, Spotify ...)",
            (
                (support / "Bitwarden", "Bitwarden"),
                (support / "Insync", "Insync"),
                (support / "Spotify", "Spotify"),
            ),
        ),
    ]


class Teardown:
    def __init__(
        self,
        layout: Layout,
        prompter: Prompter,
        state: State,
        dry_run: bool = False,
        countdown: float = COUNTDOWN_SECONDS,
    ) -> None:
        self.layout = layout
        self.prompter = prompter
        self.state = state
        self.dry_run = dry_run
        self.countdown = countdown
        self.executor = Executor(prompter, dry_run=dry_run, on_failure="ask")
        self.remove_all = False
        self.backup_dir: Optional[Path] = None

    def sudo(self, path: Path) -> bool:
        return self.layout.needs_sudo(path)

    def apply(self, actions: List[Action]) -> List[Action]:
        return self.executor.run(actions)

    def ask(self, question: str) -> bool:
        """Category question, answered yes for every category in remove-all mode."""
        if self.remove_all:
            return True
        return self.prompter.yes_no(question)

    # -------- entry point --------
    def run(self) -> bool:
        """Return False if the user cancelled at the first confirmation."""
        if self.dry_run:
            console.warn("Running in dry-run mode. No files will be removed.")
        if not self.confirm():
            console.info("Uninstallation cancelled.")
            return False

        self.remove_all = self.prompter.yes_no(
            "Would you like to remove ALL configurations? "
            "This will remove everything without asking for individual confirmations."
        )
        console.info("Starting uninstallation...")
        if self.prompter.yes_no("Would you like to backup configurations before removing?"):
            self.backup_configs()

        self.remove_symlinks()
        self.remove_nix_darwin()
        self.stop_daemon()
        self.remove_nix_store()
        self.restore_shell_rc()
        self.remove_nix_profiles()
        self.remove_homebrew()
        self.remove_config_dirs()
        for category in tool_categories(self.layout):
            self.remove_category(category)
        self.final_cleanup()

        if not self.dry_run:
            self.forget_install()
        console.success("Uninstallation completed!")
        console.info("Note: You may need to restart your computer to complete the cleanup.")
        return True

    def forget_install(self) -> None:
        """Drop the install record, keeping the backups so `status` can list them."""
        if not self.state.backups:
            self.layout.state_file.unlink(missing_ok=True)
            return
        self.state.completed.clear()
        self.state.links.clear()
        self.state.save()

    def confirm(self) -> bool:
        console.error("WARNING!")
        console.error("This will remove various configurations and tools from your system.")
        console.warn("It will:")
        for line in WARNING_LINES:
            console.plain(f"  - {line}")
        console.warn("Make sure you have backed up any important data before proceeding.")
        console.plain()
        if not self.prompter.confirm_phrase("Are you absolutely sure you want to proceed?"):
            return False
        console.warn(f"Starting uninstallation in {self.countdown:g} seconds... Press Ctrl+C to cancel")
        time.sleep(self.countdown)
        return True

    # -------- backup --------
    def backup_configs(self) -> Optional[Path]:
        backup_dir = self.layout.home / f"dotfiles_backup_{timestamp()}"
        console.info(f"Creating backup in {backup_dir}...")
        copies = [CopyTree(src, backup_dir) for src in self.layout.backup_sources()]
        if self.dry_run:
            self.apply(copies)
            return None
        backup_dir.mkdir(parents=True, exist_ok=True)
        self.apply(copies)
        self.backup_dir = backup_dir
        self.state.record_backup(backup_dir)
        console.success(f"Backup completed in {backup_dir}")
        return backup_dir

    # -------- system level --------
    def remove_symlinks(self) -> None:
        console.info("Removing symlinks...")
        known = [link for link, _ in self.layout.linked_dirs()]
        known += [link for link, src in self.layout.shell_links() if is_link_to(link, src)]
        recorded = [Path(p) for p in self.state.links if Path(p) not in known]
        self.apply([DeleteLink(link) for link in [*known, *recorded]])
        if not self.dry_run:
            for link in [*known, *recorded]:
                self.state.forget_link(link)

    def remove_nix_darwin(self) -> None:
        console.info("Removing nix-darwin...")
        if not sysutils.have("darwin-rebuild"):
            log.debug("darwin-rebuild not on PATH, nothing to remove")
            return
        self.apply([RemovePath(p, sudo=self.sudo(p)) for p in self.layout.darwin_state()])

    def stop_daemon(self) -> None:
        console.info("Removing Nix...")
        sudo = self.layout.use_sudo
        if sysutils.find_processes(["nix-daemon"]):
            console.info("Stopping nix-daemon...")
            self.apply(
                [LaunchctlUnload(plist=p, sudo=sudo) for p in self.layout.daemon_plists()]
                + [LaunchctlUnload(label=NIX_DAEMON_LABEL, sudo=sudo)]
            )
        console.info("Killing any remaining Nix processes...")
        self.apply([KillProcesses(sudo=sudo)])

    def remove_nix_store(self) -> None:
        store = self.layout.nix_store
        self.apply([UnmountVolume(store)])
        console.info(f"Removing {store} directory...")
        self.apply([RemoveProtectedVolume(store, sudo=self.sudo(store))])

    def restore_shell_rc(self) -> None:
        console.info("Restoring shell configuration files...")
        self.apply([RestoreShellRc(p, sudo=self.sudo(p)) for p in self.layout.restored_rc_files()])

    def remove_nix_profiles(self) -> None:
        self.apply([RemovePath(p, sudo=self.sudo(p)) for p in self.layout.nix_profile_paths()])

    def remove_homebrew(self) -> None:
        if not self.prompter.yes_no("Do you want to remove Homebrew?"):
            return
        console.info("Removing Homebrew...")
        self.apply(
            [
                RunShell(f'/bin/bash -c "$(curl -fsSL {BREW_UNINSTALL_URL})"'),
                EnsureLineAbsent(self.layout.zprofile, BREW_SHELLENV),
            ]
        )

    def remove_config_dirs(self) -> None:
        console.info("Removing configuration directories...")
        self.apply([RemovePath(link) for link, _ in self.layout.linked_dirs()])

    # -------- tool categories --------
    def remove_category(self, category: Category) -> None:
        if not self.ask(category.question):
            return
        console.info(f"Removing {category.name} tools...")
        for path, label in category.entries:
            self.safe_remove(path, label)

    def safe_remove(self, path: Path, label: str) -> None:
        act = RemovePath(path, label=label)
        if not act.check():
            console.warn(f"{label} not found, skipping...")
            return
        self.apply([act])
        if not self.dry_run and act not in self.executor.failed:
            console.success(f"{label} removed successfully")

    # -------- final cleanup --------
    def final_cleanup(self) -> None:
        console.info("Cleaning up backup files...")
        self.apply([RemovePath(p, sudo=self.sudo(p)) for p in self.layout.leftover_bak_files()])

        if self.prompter.yes_no("Do you want to remove GitHub SSH keys?"):
            key = self.layout.ssh_key
            self.apply(
                [
                    RemovePath(key),
                    RemovePath(key.with_name(key.name + ".pub")),
                    EnsureBlockAbsent(self.layout.ssh_dir / "config", "github.com"),
                ]
            )

        if self.prompter.yes_no("Do you want to remove the dotfiles repository?"):
            self.apply([RemovePath(self.layout.dotfile_dir)])
