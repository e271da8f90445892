"""Data types shared by the tool command builders and step runners."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from controller.src.models.step import PushEvent

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ActionError(Exception):
    """Raised when a `uses` step is misconfigured."""


class UnknownActionError(ActionError):
    """Raised when a step references an action that does not exist."""


@dataclass
class CommandSpec:
    """A single external command.

    Attributes:
        argv: Program and arguments. When ``expand`` is set, ``${VAR}``
            placeholders are resolved against the step environment right
            before execution, so templates (never secret values) are what
            gets logged and shipped around.
        stdin: Optional text fed to the command's standard input.
        expand: Whether placeholders in ``argv``/``stdin`` are resolved.
    """

    argv: List[str]
    stdin: Optional[str] = None
    expand: bool = True

    def render(self, env: Dict[str, str]) -> "CommandSpec":
        if not self.expand:
            return self
        return CommandSpec(
            argv=[substitute(arg, env) for arg in self.argv],
            stdin=substitute(self.stdin, env) if self.stdin is not None else None,
            expand=False,
        )

    def display(self) -> str:
        return " ".join(self.argv)


@dataclass
class CommandResult:
    """Result of running one step's commands."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: Optional[int] = 0
    cancelled: bool = False
    timed_out: bool = False

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass
class ActionContext:
    """What an action builder may look at besides its own parameters."""

    event: PushEvent
    env: Dict[str, str] = field(default_factory=dict)


def substitute(text: str, env: Dict[str, str]) -> str:
    """Replace ``${VAR}`` placeholders found in ``env``.

    Unknown placeholders, bare ``$VAR`` and ``$$`` are left as written, the
    same way the Kubernetes runner's shell rendering treats them.
    """
    return _PLACEHOLDER.sub(lambda m: env.get(m.group(1), m.group(0)), text)


def placeholders(text: str) -> List[str]:
    """Names of the ``${VAR}`` placeholders in ``text``."""
    return _PLACEHOLDER.findall(text)


def split_placeholders(text: str) -> List[tuple]:
    """Split ``text`` into ``(is_placeholder, value)`` chunks."""
    chunks = []
    position = 0
    for match in _PLACEHOLDER.finditer(text):
        if match.start() > position:
            chunks.append((False, text[position:match.start()]))
        chunks.append((True, match.group(1)))
        position = match.end()
    if position < len(text):
        chunks.append((False, text[position:]))
    return chunks
