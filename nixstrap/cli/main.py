from __future__ import annotations

import argparse
from pathlib import Path
from typing import List

from rich import box
from rich.table import Table

from ..bootstrap import Bootstrap
from ..config import Layout, default_layout
from ..core.errors import AbortedError, NixstrapError, ResumeRequired
from ..core.state import State
from ..repo.userconfig import load_user_config, render_template
from ..teardown import Teardown
from ..utils import console
from ..utils.console import Prompter


def _state(layout: Layout) -> State:
    st = State(layout.state_file)
    st.load()
    return st


def cmd_bootstrap(args: argparse.Namespace) -> int:
    layout: Layout = args.layout
    st = _state(layout)
    boot = Bootstrap(layout, args.prompter, st, hostname=args.hostname)
    try:
        boot.run()
    except ResumeRequired as e:
        console.info(str(e))
        return 0
    return 0


def cmd_uninstall(args: argparse.Namespace) -> int:
    layout: Layout = args.layout
    st = _state(layout)
    td = Teardown(layout, args.prompter, st, dry_run=args.dry_run)
    completed = False
    try:
        completed = td.run()
    finally:
        if not args.dry_run and not completed and layout.state_file.exists():
            st.save()
    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    layout: Layout = args.layout
    path = args.path or layout.user_config
    uc = load_user_config(path)
    table = Table(title=str(path), box=box.SIMPLE_HEAD, show_header=False)
    table.add_row("username", uc.username)
    table.add_row("fullName", uc.full_name)
    table.add_row("email", uc.email)
    table.add_row("githubUsername", uc.github_username)
    table.add_row("hostname", uc.hostname)
    table.add_row("terminal", uc.terminal)
    console.console.print(table)
    console.success("User config is valid")
    return 0


def cmd_init_config(args: argparse.Namespace) -> int:
    layout: Layout = args.layout
    target = layout.user_config
    if target.exists() and not args.force:
        console.error(f"{target} already exists (use --force to overwrite)")
        return 1
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render_template(), encoding="utf-8")
    console.success(f"Wrote {target}; edit it before running bootstrap")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    layout: Layout = args.layout
    st = _state(layout)
    boot = Bootstrap(layout, args.prompter, st)
    table = Table(title="Bootstrap status", box=box.SIMPLE_HEAD)
    table.add_column("Step", style="bold")
    table.add_column("Observed")
    table.add_column("Recorded")
    for step in boot.steps():
        observed = step.satisfied()
        rec = st.completed.get(step.name)
        table.add_row(
            step.title,
            "-" if observed is None else ("satisfied" if observed else "pending"),
            rec.completed_at if rec else "-",
        )
    console.console.print(table)
    if st.links:
        links = Table(title="Recorded symlinks", box=box.SIMPLE_HEAD)
        links.add_column("Link")
        links.add_column("Target")
        for link, target in sorted(st.links.items()):
            links.add_row(link, target)
        console.console.print(links)
    if st.backups:
        console.info("Recorded backups:")
        for path in st.backups:
            console.plain(f"  {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="nixstrap", description="Bootstrap and tear down a nix-darwin macOS setup"
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log every command")
    sub = p.add_subparsers(dest="command")

    sp_boot = sub.add_parser("bootstrap", help="Install and activate the configuration")
    sp_boot.add_argument("--hostname", help="Flake host to switch to (default: from user-config.nix)")
    sp_boot.set_defaults(func=cmd_bootstrap)

    sp_un = sub.add_parser("uninstall", help="Remove nix, nix-darwin and related configuration")
    sp_un.add_argument(
        "--dry-run", action="store_true", help="Print what would be removed without removing it"
    )
    sp_un.set_defaults(func=cmd_uninstall)

    sp_check = sub.add_parser("check-config", help="Validate user-config.nix")
    sp_check.add_argument("path", nargs="?", type=lambda v: Path(v).expanduser(), help="Path to user-config.nix")
    sp_check.set_defaults(func=cmd_check_config)

    sp_init = sub.add_parser("init-config", help="Write a user-config.nix template")
    sp_init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    sp_init.set_defaults(func=cmd_init_config)

    sp_status = sub.add_parser("status", help="Show observed and recorded bootstrap state")
    sp_status.set_defaults(func=cmd_status)

    return p


def main(
    argv: List[str] | None = None, layout: Layout | None = None, prompter: Prompter | None = None
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 2
    console.setup_logging(args.verbose)
    args.layout = layout or default_layout()
    args.prompter = prompter or Prompter()
    try:
        return int(args.func(args) or 0)
    except AbortedError as e:
        console.error(str(e))
        return 1
    except NixstrapError as e:
        console.error(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        console.error("Interrupted")
        return 130
