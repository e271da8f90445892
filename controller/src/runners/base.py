"""
Step runner interface.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from controller.src.tools.types import CommandResult, CommandSpec

CancelCheck = Callable[[], Awaitable[bool]]

@dataclass
class StepInvocation:
    """Everything a runner needs to execute one step."""
    run_id: str
    stage_order: int
    step_order: int
    step_name: str
    commands: List[CommandSpec]
    env: Dict[str, str] = field(default_factory=dict)
    secret_env: Dict[str, str] = field(default_factory=dict)
    image: Optional[str] = None
    timeout: int = 600
    workspace: Optional[str] = None

class StepRunner:
    """Executes step commands against the outside world."""

    async def prepare(self, run_id: str) -> Optional[str]:
        """Set up per-run state. Returns the workspace path, if any."""
        return None

    async def run(self, invocation: StepInvocation, is_cancelled: CancelCheck) -> CommandResult:
        raise NotImplementedError

    def read_exports(self, invocation: StepInvocation) -> Dict[str, str]:
        """Variables the step exported for later steps."""
        return {}

    async def cleanup(self, run_id: str):
        """Tear down per-run state."""
        return None
