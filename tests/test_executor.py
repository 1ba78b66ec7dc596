import subprocess

import pytest

from nixstrap.core.action import Action, RemovePath
from nixstrap.core.errors import AbortedError, ExecutionError
from nixstrap.core.executor import Executor

from conftest import ScriptedPrompter, write


class Recorder(Action):
    def __init__(self, needed=True, error=None, best_effort=False):
        self.needed = needed
        self.error = error
        self.best_effort = best_effort
        self.calls = 0

    def check(self):
        return self.needed

    def run(self):
        self.calls += 1
        if self.error is not None:
            raise self.error

    def describe(self):
        return "recorder"


def test_satisfied_actions_are_skipped():
    done, todo = Recorder(needed=False), Recorder()
    ran = Executor(ScriptedPrompter()).run([done, todo])
    assert ran == [todo]
    assert (done.calls, todo.calls) == (0, 1)


def test_dry_run_reports_targets_without_running(tmp_path, capsys):
    victim = write(tmp_path / ".aws" / "credentials", "secret")
    act = RemovePath(victim.parent)
    ex = Executor(ScriptedPrompter(), dry_run=True)
    assert ex.run([act]) == [act]
    out = capsys.readouterr().out
    assert f"Would remove: {victim.parent}" in out
    assert victim.exists()


def test_abort_policy_raises():
    act = Recorder(error=subprocess.CalledProcessError(1, "brew"))
    with pytest.raises(ExecutionError, match="recorder"):
        Executor(ScriptedPrompter()).run([act, Recorder()])


def test_best_effort_failure_is_ignored():
    first = Recorder(error=OSError("busy"), best_effort=True)
    second = Recorder()
    Executor(ScriptedPrompter()).run([first, second])
    assert second.calls == 1


def test_ask_policy_continues_on_yes():
    prompter = ScriptedPrompter({"Continue anyway?": "y"})
    after = Recorder()
    Executor(prompter, on_failure="ask").run([Recorder(error=OSError("x")), after])
    assert after.calls == 1
    assert prompter.asked("Continue anyway?")


def test_ask_policy_aborts_on_no():
    after = Recorder()
    with pytest.raises(AbortedError):
        Executor(ScriptedPrompter(), on_failure="ask").run([Recorder(error=OSError("x")), after])
    assert after.calls == 0


def test_unknown_policy():
    with pytest.raises(ValueError):
        Executor(ScriptedPrompter(), on_failure="retry")


def test_failures_are_remembered():
    bad, good = Recorder(error=OSError("x"), best_effort=True), Recorder()
    ex = Executor(ScriptedPrompter())
    ex.run([bad, good])
    assert ex.failed == [bad]
