from __future__ import annotations

from typing import Sequence


class NixstrapError(Exception):
    pass


class PreconditionError(NixstrapError):
    pass


class UserConfigError(NixstrapError):
    def __init__(self, missing: Sequence[str] = (), invalid: Sequence[str] = ()):
        self.missing = list(missing)
        self.invalid = list(invalid)
        parts = []
        if self.missing:
            parts.append(f"missing required field(s): {', '.join(self.missing)}")
        parts.extend(self.invalid)
        super().__init__("Invalid user config: " + "; ".join(parts))


class ActionError(NixstrapError):
    pass


class ExecutionError(NixstrapError):
    pass


class AbortedError(NixstrapError):
    pass


class ResumeRequired(NixstrapError):
    """A stage finished installing a tool that needs a fresh shell."""
