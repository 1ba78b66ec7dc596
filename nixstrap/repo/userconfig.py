"""Reader and validator for ``user-config.nix``.

The file is a flat attribute set of string values::

    {
        username = "jdoe";   # must match the macOS login name
        hostname = "macbook-pro";
    }

Only that subset of the language is accepted; anything else is reported
against the key it appears on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping

from ..core.errors import UserConfigError

HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9-]+$")
TERMINALS = ("alacritty", "ghostty")

# nix attribute -> dataclass field
FIELDS = {
    "username": "username",
    "fullName": "full_name",
    "email": "email",
    "githubUsername": "github_username",
    "hostname": "hostname",
    "terminal": "terminal",
}
REQUIRED = ("username", "fullName", "email", "githubUsername", "hostname")

_ASSIGN_RE = re.compile(r'\s*([A-Za-z_][\w\'-]*)\s*=\s*("(?:[^"\\]|\\.)*"|[^;]*?)\s*;')
_STRING_RE = re.compile(r'^"((?:[^"\\]|\\.)*)"$')
_COMMENT_RE = re.compile(r'"(?:[^"\\]|\\.)*"|#[^\n]*')

TEMPLATE = """\
# Copy this file to user-config.nix and update with your information
# Note: 'username' must match your macOS username (the one you use to log in)
# Note: 'hostname' must only contain letters, numbers, and hyphens (e.g., macbook-pro)
{
    username = "your-macos-username";  # Must match your macOS login username
    fullName = "Your Full Name";
    email = "your.email@example.com";
    githubUsername = "your-github-username";
    hostname = "your-hostname";  # Only use letters, numbers, and hyphens (e.g., macbook-pro)
    terminal = "alacritty";
}
"""


@dataclass(frozen=True, slots=True)
class UserConfig:
    username: str
    full_name: str
    email: str
    github_username: str
    hostname: str
    terminal: str = "alacritty"

    @classmethod
    def from_mapping(cls, data: Mapping[str, str]) -> "UserConfig":
        missing = [k for k in REQUIRED if not str(data.get(k, "")).strip()]
        invalid = []
        hostname = data.get("hostname", "")
        if hostname and not HOSTNAME_RE.match(hostname):
            invalid.append(
                f"hostname '{hostname}' must only contain letters, numbers, and hyphens"
            )
        terminal = data.get("terminal") or "alacritty"
        if terminal not in TERMINALS:
            invalid.append(f"terminal '{terminal}' must be one of: {', '.join(TERMINALS)}")
        if missing or invalid:
            raise UserConfigError(missing=missing, invalid=invalid)
        values = {FIELDS[k]: data[k] for k in REQUIRED}
        return cls(terminal=terminal, **values)


def _unescape(s: str) -> str:
    return re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t"}.get(m.group(1), m.group(1)), s)


def _strip_comments(text: str) -> str:
    return _COMMENT_RE.sub(lambda m: m.group(0) if m.group(0).startswith('"') else "", text)


def parse_attrset(text: str) -> Dict[str, str]:
    """Parse a flat nix attribute set of strings into a dict."""
    body = _strip_comments(text).strip()
    if not (body.startswith("{") and body.endswith("}")):
        raise UserConfigError(invalid=["expected a single attribute set wrapped in { }"])

    inner = body[1:-1]
    result: Dict[str, str] = {}
    pos = 0
    while True:
        m = _ASSIGN_RE.match(inner, pos)
        if m is None:
            break
        key, value = m.group(1), m.group(2)
        sm = _STRING_RE.match(value)
        if sm is None:
            raise UserConfigError(invalid=[f"{key}: only string values are supported"])
        result[key] = _unescape(sm.group(1))
        pos = m.end()
    rest = inner[pos:].strip()
    if rest:
        raise UserConfigError(invalid=[f"cannot parse: {rest.splitlines()[0]}"])
    return result


def load_user_config(path: Path) -> UserConfig:
    if not path.is_file():
        raise UserConfigError(invalid=[f"{path} not found (run `nixstrap init-config`)"])
    return UserConfig.from_mapping(parse_attrset(path.read_text(encoding="utf-8")))


def render_template() -> str:
    return TEMPLATE
