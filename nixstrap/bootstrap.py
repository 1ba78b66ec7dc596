"""First-time setup of a macOS machine.

Every stage checks the machine before touching it, so the whole sequence is
safe to re-run. Installing Homebrew or Nix needs a fresh shell afterwards;
those stages stop the run with ``ResumeRequired`` and the next invocation
picks up where this one left off.
"""

from __future__ import annotations

import logging
import subprocess
import time
from typing import Callable, List, Optional, TypeVar

from . import config
from .config import (
    BREW_INSTALL_URL,
    BREW_SHELLENV,
    NIX_DAEMON_LABEL,
    NIX_FLAKES,
    NIX_INSTALL_URL,
    NIX_SMOKE_TEST,
    PREREQ_PACKAGES,
    SETTLE_SECONDS,
    Layout,
)
from .core.action import (
    CreateDir,
    CreateLink,
    EnsureBlockPresent,
    EnsureLinePresent,
    RemovePath,
    RunCommand,
    RunShell,
)
from .core.darwin import (
    BackupShellRc,
    BrewInstall,
    GenerateSshKey,
    LaunchctlKickstart,
    RegisterLoginShell,
)
from .core.errors import ExecutionError, PreconditionError, ResumeRequired, UserConfigError
from .core.executor import Executor
from .core.state import State
from .core.step import Step
from .repo import dotfiles, gitutils
from .repo.userconfig import HOSTNAME_RE, UserConfig, load_user_config
from .utils import console, sysutils
from .utils.console import Prompter
from .utils.fs import is_link_to, read_text, timestamp

log = logging.getLogger(__name__)

T = TypeVar("T")

SSH_HOST_BLOCK = """\
Host github.com
  AddKeysToAgent yes
  UseKeychain yes
  IdentityFile {key}"""

GITHUB_KEY_STEPS = (
    "1. Go to GitHub.com",
    "2. Click your profile picture -> Settings",
    "3. Click 'SSH and GPG keys' -> 'New SSH key'",
    "4. Paste the above key and save",
)


class Bootstrap:
    def __init__(
        self,
        layout: Layout,
        prompter: Prompter,
        state: State,
        hostname: Optional[str] = None,
        platform: Optional[str] = None,
        settle_seconds: float = SETTLE_SECONDS,
    ) -> None:
        self.layout = layout
        self.prompter = prompter
        self.state = state
        self.hostname = hostname
        self.platform = platform
        self.settle_seconds = settle_seconds
        self.executor = Executor(prompter, on_failure="abort")
        self.user_config: Optional[UserConfig] = None
        self.dotfiles_ready = False
        self.warnings: List[str] = []

    # -------- sequencing --------
    def steps(self) -> List[Step]:
        lay = self.layout
        return [
            Step("platform", "Verifying macOS", self.verify_platform),
            Step(
                "xcode",
                "Xcode Command Line Tools",
                self.install_xcode,
                probe=lambda: sysutils.probe(["xcode-select", "-p"]),
            ),
            Step("homebrew", "Homebrew", self.install_homebrew, probe=lambda: sysutils.have("brew")),
            Step(
                "prerequisites",
                "Initial required packages",
                self.install_prerequisites,
                probe=lambda: not BrewInstall(PREREQ_PACKAGES).check(),
            ),
            Step("nix", "Nix", self.install_nix, probe=lambda: sysutils.have("nix")),
            Step(
                "directories",
                "Configuration directories",
                self.create_directories,
                probe=lambda: all(not a.check() for a in self._directory_actions()),
            ),
            Step("dotfiles", "Dotfiles repository", self.setup_dotfiles),
            Step(
                "symlinks",
                "Configuration symlinks",
                self.link_configs,
                probe=lambda: all(is_link_to(link, src) for link, src in lay.linked_dirs()),
            ),
            Step("darwin", "nix-darwin switch", self.switch_system),
            Step("zsh", "Zsh login shell", self.install_zsh, probe=self._zsh_registered),
            Step("git-ssh", "Git SSH for GitHub", self.setup_git_ssh),
            Step("finish", "Nix daemon and shell links", self.finish),
        ]

    def run(self) -> List[str]:
        """Run every stage; return the warnings collected along the way."""
        console.info("Starting pre-installation setup...")
        self.check_hostname_override()
        if self.layout.user_config.is_file():
            self.load_config()
        try:
            for step in self.steps():
                if step.satisfied():
                    console.success(f"{step.title}: already done")
                    self.state.mark_completed(step.name)
                    continue
                console.info(f"{step.title}...")
                try:
                    done = step.run()
                except ResumeRequired:
                    self.state.mark_completed(step.name)
                    raise
                if done is not False:
                    self.state.mark_completed(step.name)
        finally:
            self.state.save()
        self.summary()
        return self.warnings

    def _call(self, what: str, fn: Callable[..., T], *args) -> T:
        try:
            return fn(*args)
        except (subprocess.CalledProcessError, OSError) as e:
            raise ExecutionError(f"Failed to {what}: {e}") from e

    # -------- user config --------
    def check_hostname_override(self) -> None:
        if self.hostname is not None and not HOSTNAME_RE.match(self.hostname):
            raise UserConfigError(
                invalid=[f"hostname '{self.hostname}' must only contain letters, numbers, and hyphens"]
            )

    def load_config(self) -> None:
        self.user_config = load_user_config(self.layout.user_config)
        if self.hostname is None:
            self.hostname = self.user_config.hostname

    # -------- stages --------
    def verify_platform(self) -> None:
        if not sysutils.is_macos(self.platform):
            raise PreconditionError("This script is only for macOS")

    def install_xcode(self) -> None:
        self.executor.run([RunCommand(["xcode-select", "--install"])])

    def install_homebrew(self) -> None:
        self.executor.run(
            [
                RunShell(f'/bin/bash -c "$(curl -fsSL {BREW_INSTALL_URL})"'),
                EnsureLinePresent(self.layout.zprofile, BREW_SHELLENV),
            ]
        )
        console.success("Homebrew installed successfully")
        raise ResumeRequired(
            "Please restart your shell and run this again to continue with Nix installation."
        )

    def install_prerequisites(self) -> None:
        self.executor.run([BrewInstall(PREREQ_PACKAGES)])
        console.success("Initial packages installed successfully")

    def install_nix(self) -> None:
        console.info("Backing up shell configuration files...")
        stamp = timestamp()
        self.executor.run(
            [
                BackupShellRc(p, sudo=self.layout.needs_sudo(p), stamp=stamp)
                for p in self.layout.shell_rc_files()
            ]
        )
        self.executor.run([RunCommand(["bash", "-c", f"sh <(curl -L {NIX_INSTALL_URL})"])])

        console.info("Waiting for Nix installation to complete...")
        time.sleep(self.settle_seconds)

        console.info("Testing Nix installation...")
        env = dict(config.SHELL_ENV)
        env["PATH"] = "/nix/var/nix/profiles/default/bin:" + env.get("PATH", "")
        try:
            sysutils.run(NIX_SMOKE_TEST, env=env)
        except (subprocess.CalledProcessError, OSError) as e:
            raise ExecutionError(
                "Nix installation test failed. Please check the error messages above."
            ) from e
        console.success("Nix installed successfully")
        raise ResumeRequired(
            "Please restart your shell and run this again to continue with nix-darwin installation."
        )

    def _directory_actions(self) -> List[CreateDir]:
        dirs = [self.layout.config_dir / d for d in config.LINKED_DIRS]
        return [CreateDir(d) for d in [*dirs, self.layout.dotfile_dir]]

    def create_directories(self) -> None:
        self.executor.run(self._directory_actions())

    def setup_dotfiles(self) -> bool:
        if not self.prompter.yes_no("Do you want to proceed with dotfiles setup?"):
            console.info("Skipping dotfiles setup")
            return False
        repo = self.layout.dotfile_dir
        if not gitutils.is_repo(repo):
            url = self.prompter.ask("Enter your dotfiles repository URL:")
            if not url:
                raise PreconditionError("No dotfiles repository URL given")
            self._call("clone dotfiles repository", gitutils.clone, url, repo)
        elif self.prompter.yes_no(
            "Dotfiles repository already exists. Do you want to pull latest changes?"
        ):
            out = self._call("pull dotfiles repository", gitutils.pull, repo)
            if out:
                console.plain(out)

        dotfiles.verify_checkout(repo)
        moved = dotfiles.normalize_layout(repo)
        if moved:
            console.info(f"Moved configuration directories to root: {', '.join(moved)}")
        console.info("Current directory structure:")
        console.console.print(dotfiles.render_tree(repo))

        if self.layout.user_config.is_file():
            self.load_config()
        if self.hostname is None:
            raise UserConfigError(
                invalid=[f"{self.layout.user_config} not found and no --hostname given"]
            )
        self.dotfiles_ready = True
        return True

    def link_configs(self) -> bool:
        if not self.dotfiles_ready:
            console.info("Dotfiles not set up, skipping symlinks")
            return False
        links = [CreateLink(link, src) for link, src in self.layout.linked_dirs()]
        for act in links:
            if not act.target.is_dir():
                raise PreconditionError(f"Source directory {act.target} does not exist")

        console.info("Removing existing files...")
        self.executor.run([RemovePath(p) for p in self.layout.conflicting_files()])
        console.info("Creating symlinks...")
        self.executor.run(links)
        self.verify_links(links)
        self.executor.run([EnsureLinePresent(self.layout.nix_conf, NIX_FLAKES)])
        return True

    def verify_links(self, links: List[CreateLink]) -> None:
        console.info("Verifying symlinks...")
        for act in links:
            problem = act.verify()
            if problem is None:
                console.success(f"Symlink {act.link_path} created successfully")
                self.state.record_link(act.link_path, act.target)
            else:
                console.warn(f"Warning: {problem}")
                self.warnings.append(problem)

    def switch_system(self) -> bool:
        if not self.dotfiles_ready:
            console.info("Dotfiles not set up, skipping nix-darwin")
            return False
        flake = f".#{self.hostname}"
        if sysutils.have("darwin-rebuild"):
            cmd = ["darwin-rebuild", "switch", "--flake", flake]
        else:
            cmd = ["nix", "run", "nix-darwin", "--", "switch", "--flake", flake]
        env = dict(config.SHELL_ENV)
        env["NIX_CONFIG"] = NIX_FLAKES
        self.executor.run([RunCommand(cmd, cwd=self.layout.dotfile_dir, env=env)])
        console.success("nix-darwin installed successfully!")
        console.info(
            f"You can now use 'cd {self.layout.dotfile_dir} && darwin-rebuild switch --flake {flake}'"
            " to update your system"
        )
        return True

    def _zsh_registered(self) -> bool:
        zsh = sysutils.which("zsh")
        if zsh is None:
            return False
        return zsh in (read_text(self.layout.login_shells) or "").splitlines()

    def install_zsh(self) -> None:
        if not sysutils.have("zsh"):
            self.executor.run([BrewInstall(["zsh"])])
        zsh = sysutils.which("zsh")
        if zsh is None:
            raise PreconditionError("zsh not found on PATH after installation")
        shells = self.layout.login_shells
        self.executor.run([RegisterLoginShell(zsh, shells, sudo=self.layout.needs_sudo(shells))])
        console.success("Zsh installed successfully")

    def setup_git_ssh(self) -> bool:
        if not self.prompter.yes_no("Do you want to setup Git SSH for GitHub?"):
            return False
        uc = self.user_config
        name = self.prompter.ask("Enter your Git name:") or (uc.full_name if uc else "")
        email = self.prompter.ask("Enter your Git email:") or (uc.email if uc else "")
        if not name or not email:
            raise PreconditionError("Git name and email are required")
        self._call("configure git identity", gitutils.set_identity, name, email)

        key = self.layout.ssh_key
        console.info("Generating SSH key...")
        self.executor.run(
            [
                GenerateSshKey(key, email),
                RunShell(f'eval "$(ssh-agent -s)" && ssh-add {key}'),
                EnsureBlockPresent(
                    self.layout.ssh_dir / "config", "github.com", SSH_HOST_BLOCK.format(key=key)
                ),
            ]
        )

        console.success("Your SSH public key:")
        console.plain(read_text(key.with_name(key.name + ".pub")) or "")
        console.info("Please add this key to your GitHub account:")
        for line in GITHUB_KEY_STEPS:
            console.plain(line)
        self.prompter.pause("Press Enter after adding the key to GitHub...")

        console.info("Testing GitHub SSH connection...")
        # GitHub exits 1 even when authentication succeeds.
        cp = self._call(
            "test GitHub SSH connection",
            lambda: sysutils.run(["ssh", "-T", "git@github.com"], check=False, capture=True),
        )
        console.plain((cp.stderr or cp.stdout or "").strip())
        return True

    def finish(self) -> None:
        console.info("Starting nix-daemon...")
        self.executor.run([LaunchctlKickstart(NIX_DAEMON_LABEL, sudo=self.layout.use_sudo)])
        console.success("Nix daemon started successfully!")

        links = []
        for link, src in self.layout.shell_links():
            if src.exists():
                links.append(CreateLink(link, src))
            else:
                log.debug("no %s in dotfiles, not linking %s", src, link)
        self.executor.run(links)
        self.verify_links(links)

    def summary(self) -> None:
        console.plain()
        console.plain("Nix won't work in active shell sessions until you restart them.")
        console.info("Try it! Open a new terminal, and type:")
        console.plain('  $ nix-shell -p nix-info --run "nix-info -m"')
        if self.warnings:
            console.warn(f"Completed with {len(self.warnings)} warning(s):")
            for w in self.warnings:
                console.warn(f"  - {w}")
        else:
            console.success("Pre-installation setup completed!")
        console.info("Next steps:")
        console.plain("1. Open a new terminal window to load all changes")
        host = self.hostname or "<hostname>"
        console.plain(
            f"2. Run 'darwin-rebuild switch --flake .#{host}' if you make any changes to your configuration"
        )
