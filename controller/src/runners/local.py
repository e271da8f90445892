"""
Run step commands as local subprocesses.
"""

import asyncio
import logging
import os
import shutil
import signal
import tempfile
from typing import Dict, Optional

from controller.src.runners.base import CancelCheck, StepInvocation, StepRunner
from controller.src.tools.types import CommandResult, CommandSpec

logger = logging.getLogger(__name__)

ENV_FILE_VARIABLE = "SHIPLINE_ENV"

class LocalStepRunner(StepRunner):
    """
    Runs every command of a step in a per-run workspace directory.
    stdout and stderr are merged. The process is terminated when the run is
    cancelled or the step's timeout expires.
    """

    def __init__(
        self,
        workspace_root: Optional[str] = None,
        keep_workspace: bool = False,
        poll_interval: float = 1.0,
        kill_grace_period: float = 10.0,
    ):
        self.workspace_root = workspace_root
        self.keep_workspace = keep_workspace
        self.poll_interval = poll_interval
        self.kill_grace_period = kill_grace_period
        self._run_dirs: Dict[str, str] = {}

    async def prepare(self, run_id: str) -> Optional[str]:
        if self.workspace_root:
            os.makedirs(self.workspace_root, exist_ok=True)
        run_dir = tempfile.mkdtemp(prefix="shipline_", dir=self.workspace_root)
        os.makedirs(os.path.join(run_dir, "workspace"))
        os.makedirs(os.path.join(run_dir, "env"))
        self._run_dirs[run_id] = run_dir
        logger.info(f"Prepared workspace {run_dir} for run {run_id}")
        return os.path.join(run_dir, "workspace")

    def env_file(self, invocation: StepInvocation) -> Optional[str]:
        run_dir = self._run_dirs.get(invocation.run_id)
        if not run_dir:
            return None
        return os.path.join(run_dir, "env", f"{invocation.stage_order}-{invocation.step_order}")

    async def run(self, invocation: StepInvocation, is_cancelled: CancelCheck) -> CommandResult:
        env = os.environ.copy()
        env.update(invocation.env)
        env_file = self.env_file(invocation)
        if env_file:
            env[ENV_FILE_VARIABLE] = env_file
        env.update(invocation.secret_env)

        cwd = invocation.workspace or self._run_dirs.get(invocation.run_id)
        deadline = asyncio.get_running_loop().time() + invocation.timeout
        outputs = []

        for command in invocation.commands:
            logger.info(f"[{invocation.step_name}] $ {command.display()}")
            result = await self._run_command(command.render(env), env, cwd, deadline, is_cancelled)
            if result.stdout:
                outputs.append(result.stdout)
            if not result.success:
                result.stdout = "\n".join(outputs)
                return result

        return CommandResult(success=True, stdout="\n".join(outputs), returncode=0)

    async def _run_command(
        self,
        command: CommandSpec,
        env: Dict[str, str],
        cwd: Optional[str],
        deadline: float,
        is_cancelled: CancelCheck,
    ) -> CommandResult:
        loop = asyncio.get_running_loop()

        try:
            process = await asyncio.create_subprocess_exec(
                *command.argv,
                stdin=asyncio.subprocess.PIPE if command.stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,  # Merge stderr into stdout
                cwd=cwd,
                env=env,
                start_new_session=True,  # Own process group, so children are signalled too
            )
        except FileNotFoundError:
            return CommandResult(success=False, stderr=f"Command not found: {command.argv[0]}", returncode=127)
        except PermissionError:
            return CommandResult(success=False, stderr=f"Permission denied: {command.argv[0]}", returncode=126)

        stdin = command.stdin.encode() if command.stdin is not None else None
        communicate = asyncio.ensure_future(process.communicate(stdin))

        while True:
            done, _ = await asyncio.wait({communicate}, timeout=self.poll_interval)
            if done:
                stdout, _ = communicate.result()
                return CommandResult(
                    success=process.returncode == 0,
                    stdout=self._decode(stdout),
                    returncode=process.returncode,
                )

            if await is_cancelled():
                logger.warning(f"Cancelling {command.argv[0]} (pid {process.pid})")
                stdout = await self._terminate(process, communicate)
                return CommandResult(
                    success=False,
                    stdout=stdout,
                    stderr="Cancelled",
                    returncode=process.returncode,
                    cancelled=True,
                )

            if loop.time() > deadline:
                logger.error(f"{command.argv[0]} timed out")
                stdout = await self._terminate(process, communicate)
                return CommandResult(
                    success=False,
                    stdout=stdout,
                    stderr="Step timed out",
                    returncode=process.returncode,
                    timed_out=True,
                )

    async def _terminate(self, process: asyncio.subprocess.Process, communicate: asyncio.Future) -> str:
        self._signal_group(process, signal.SIGTERM)
        try:
            stdout, _ = await asyncio.wait_for(asyncio.shield(communicate), self.kill_grace_period)
        except asyncio.TimeoutError:
            self._signal_group(process, signal.SIGKILL)
            stdout, _ = await communicate
        return self._decode(stdout)

    @staticmethod
    def _signal_group(process: asyncio.subprocess.Process, sig: int):
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            logger.debug(f"Process group {process.pid} already gone")

    @staticmethod
    def _decode(data: Optional[bytes]) -> str:
        return (data or b"").decode("utf-8", errors="replace").rstrip("\n")

    def read_exports(self, invocation: StepInvocation) -> Dict[str, str]:
        env_file = self.env_file(invocation)
        if not env_file or not os.path.exists(env_file):
            return {}

        exports = {}
        with open(env_file, "r") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, value = line.split("=", 1)
                exports[key.strip()] = value
        return exports

    async def cleanup(self, run_id: str):
        run_dir = self._run_dirs.pop(run_id, None)
        if not run_dir:
            return
        if self.keep_workspace:
            logger.info(f"Keeping workspace {run_dir}")
            return
        shutil.rmtree(run_dir, ignore_errors=True)
