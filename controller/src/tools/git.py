"""Git command builders.

Checks out the commit that triggered the run into the step's working
directory.
"""

from __future__ import annotations

from typing import Any, Dict, List

from .types import ActionContext, ActionError, CommandSpec


def checkout(params: Dict[str, Any], context: ActionContext) -> List[CommandSpec]:
    """Clone the repository and pin it to the triggering commit.

    Args:
        params: Optional ``url``, ``branch``, ``commit``, ``depth`` and
            ``directory`` overrides. Each defaults to the trigger event.
        context: Action context carrying the push event

    Returns:
        Commands for ``git clone`` and, when a commit is known,
        ``git fetch`` + ``git checkout`` of that commit

    Raises:
        ActionError: If no repository URL is available
    """
    event = context.event
    url = str(params.get("url") or event.clone_url)
    if not url:
        raise ActionError("checkout: no repository URL in event or 'with.url'")

    branch = str(params.get("branch") or event.branch)
    commit = str(params.get("commit", event.commit_sha) or "")
    depth = str(params.get("depth", 1))
    directory = str(params.get("directory", "."))

    clone = ["git", "clone", "--depth", depth]
    if branch:
        clone.extend(["--branch", branch])
    clone.extend([url, directory])

    commands = [CommandSpec(argv=clone)]
    if commit:
        git = ["git", "-C", directory]
        commands.append(CommandSpec(argv=git + ["fetch", "--depth", depth, "origin", commit]))
        commands.append(CommandSpec(argv=git + ["checkout", commit]))
    return commands
