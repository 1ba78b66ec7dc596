from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

# Command execution defaults
SHELL_ENV = os.environ.copy()

# Installers
BREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
BREW_UNINSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/uninstall.sh"
NIX_INSTALL_URL = "https://nixos.org/nix/install"
BREW_SHELLENV = 'eval "$(/opt/homebrew/bin/brew shellenv)"'

# Nix
NIX_FLAKES = "experimental-features = nix-command flakes"
NIX_DAEMON_LABEL = "system/org.nixos.nix-daemon"
NIX_DAEMON_PLIST = "org.nixos.nix-daemon.plist"
NIX_SMOKE_TEST = ["nix-shell", "-p", "neofetch", "--run", "neofetch"]

PREREQ_PACKAGES: Tuple[str, ...] = ("git", "stow")
LINKED_DIRS: Tuple[str, ...] = ("nix", "darwin", "home-manager")

BACKUP_SUFFIX = ".backup-before-nix"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# Waits
SETTLE_SECONDS = 5
COUNTDOWN_SECONDS = 5


@dataclass(frozen=True)
class Layout:
    """Well-known paths read and written by bootstrap and teardown.

    ``root`` relocates every system path (``/etc``, ``/nix``, ``/run``) and
    ``home`` every per-user one.
    """

    home: Path
    root: Path = Path("/")
    use_sudo: bool = True
    dotfile_dir: Optional[Path] = field(default=None)

    def __post_init__(self) -> None:
        object.__setattr__(self, "home", Path(self.home))
        object.__setattr__(self, "root", Path(self.root))
        if self.dotfile_dir is None:
            object.__setattr__(self, "dotfile_dir", self.home / "Documents" / "dotfile")
        else:
            object.__setattr__(self, "dotfile_dir", Path(self.dotfile_dir))

    def system(self, *parts: str) -> Path:
        return self.root.joinpath(*parts)

    def needs_sudo(self, path: Path) -> bool:
        if not self.use_sudo:
            return False
        try:
            Path(path).relative_to(self.home)
        except ValueError:
            return True
        return False

    # -------- user side --------
    @property
    def config_dir(self) -> Path:
        return self.home / ".config"

    @property
    def state_file(self) -> Path:
        return self.home / ".local" / "state" / "nixstrap" / "state.json"

    @property
    def user_config(self) -> Path:
        return self.dotfile_dir / "user-config.nix"

    @property
    def zprofile(self) -> Path:
        return self.home / ".zprofile"

    @property
    def nix_conf(self) -> Path:
        return self.config_dir / "nix" / "nix.conf"

    @property
    def ssh_dir(self) -> Path:
        return self.home / ".ssh"

    @property
    def ssh_key(self) -> Path:
        return self.ssh_dir / "github"

    def linked_dirs(self) -> list[tuple[Path, Path]]:
        """(link, source) pairs for the config directories."""
        return [(self.config_dir / d, self.dotfile_dir / d) for d in LINKED_DIRS]

    def shell_links(self) -> list[tuple[Path, Path]]:
        return [
            (self.home / ".dynamic-config.zsh", self.dotfile_dir / "nix" / "dynamic-config.zsh"),
            (self.home / ".zshrc", self.dotfile_dir / "nix" / "zshrc"),
        ]

    def conflicting_files(self) -> list[Path]:
        return [self.home / n for n in (".zshrc", ".dynamic-config.zsh", ".zshenv", ".zprofile")]

    def shell_rc_files(self) -> list[Path]:
        """rc files backed up before the nix installer touches them."""
        return [
            self.system("etc", "bashrc"),
            self.system("etc", "zshrc"),
            self.system("etc", "bash.bashrc"),
            self.home / ".zshrc",
            self.home / ".bashrc",
        ]

    def restored_rc_files(self) -> list[Path]:
        return [*self.shell_rc_files(), self.zprofile]

    # -------- system side --------
    @property
    def nix_store(self) -> Path:
        return self.system("nix")

    @property
    def login_shells(self) -> Path:
        return self.system("etc", "shells")

    def daemon_plists(self) -> list[Path]:
        return [
            self.system("Library", "LaunchDaemons", NIX_DAEMON_PLIST),
            self.home / "Library" / "LaunchDaemons" / NIX_DAEMON_PLIST,
        ]

    def darwin_state(self) -> list[Path]:
        return [
            self.system("run", "current-system"),
            self.system("etc", "nix-darwin"),
            self.system("etc", "shells.backup-before-nix-darwin"),
        ]

    def nix_profile_paths(self) -> list[Path]:
        return [
            self.home / ".nix-profile",
            self.home / ".nix-defexpr",
            self.home / ".nix-channels",
            self.system("etc", "nix"),
            self.home / ".local" / "state" / "nix",
            self.home / ".local" / "state" / "home-manager",
        ]

    def leftover_bak_files(self) -> list[Path]:
        return [
            self.home / ".zshrc.bak",
            self.home / ".zprofile.bak",
            self.system("etc", "bashrc.bak"),
            self.system("etc", "zshrc.bak"),
            self.system("etc", "bash.bashrc.bak"),
        ]

    def backup_sources(self) -> list[Path]:
        """Directories copied by the optional pre-teardown backup."""
        support = self.home / "Library" / "Application Support"
        return [
            self.config_dir,
            self.home / ".aws",
            self.ssh_dir,
            self.home / ".vscode",
            self.home / ".cursor",
            self.home / ".sdkman",
            self.home / ".pyenv",
            self.home / ".local",
            self.home / ".docker",
            self.home / ".terraform.d",
            support / "Code",
            support / "JetBrains",
            support / "Cursor",
            support / "Bitwarden",
            support / "Insync",
            support / "Spotify",
        ]


def default_layout() -> Layout:
    home = Path(os.environ.get("NIXSTRAP_HOME", Path.home())).expanduser()
    dotfile = os.environ.get("NIXSTRAP_DOTFILE_DIR")
    return Layout(
        home=home,
        root=Path(os.environ.get("NIXSTRAP_ROOT", "/")),
        dotfile_dir=Path(dotfile).expanduser() if dotfile else None,
    )
