from __future__ import annotations

import logging
import subprocess
from typing import Iterable, List

from ..utils import console
from ..utils.console import Prompter
from .action import Action
from .errors import AbortedError, ActionError, ExecutionError

log = logging.getLogger(__name__)

FAILURES = (subprocess.CalledProcessError, OSError, ActionError)


class Executor:
    """
    Apply actions in order.
    - If action.check() returns False, it is already satisfied and skipped.
    - Dry run reports what would happen and never calls run().
    - on_failure="abort" raises ExecutionError; "ask" lets the user continue.
    - Actions that raised are kept in ``failed``.
    """

    def __init__(self, prompter: Prompter, dry_run: bool = False, on_failure: str = "abort") -> None:
        if on_failure not in ("abort", "ask"):
            raise ValueError(f"unknown failure policy: {on_failure}")
        self.prompter = prompter
        self.dry_run = dry_run
        self.on_failure = on_failure
        self.applied: List[Action] = []
        self.failed: List[Action] = []

    def run(self, actions: Iterable[Action]) -> List[Action]:
        """Run pending actions; return the ones that ran (or would run)."""
        ran: List[Action] = []
        for act in actions:
            if not act.check():
                log.debug("skip (satisfied): %s", act.describe())
                continue
            ran.append(act)
            if self.dry_run:
                console.plain(f"Would run: {act.describe()}")
                for path in act.targets():
                    console.plain(f"Would remove: {path}")
                continue
            self._run_one(act)
        self.applied.extend(ran)
        return ran

    def _run_one(self, act: Action) -> None:
        log.debug("run: %s", act.describe())
        try:
            act.run()
        except FAILURES as e:
            self.failed.append(act)
            if act.best_effort:
                log.debug("ignored failure of %s: %s", act.describe(), e)
                return
            self.deal_with_failure(act, e)

    def deal_with_failure(self, act: Action, ex: Exception) -> None:
        console.error(f"Error occurred during: {act.describe()}: {ex}")
        if self.on_failure == "abort":
            raise ExecutionError(f"{act.describe()} failed: {ex}") from ex
        if not self.prompter.yes_no("Continue anyway?"):
            raise AbortedError("Aborting uninstallation...")
