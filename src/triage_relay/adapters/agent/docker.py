"""Fix agent adapter that starts the agent inside a container.

The prompt is written to a file under the configured prompt directory,
which must be visible inside the container, and the spawn script is run
with ``docker exec``:

    docker exec <container> <spawn_script> --project <repo> --issue <n> --prompt-file <path>

The script only needs to confirm the agent started. Each attempt gets its
own prompt file, so a triage fix and a ``/ralph`` fix for the same issue
never share one. The file is removed once the command has exited; a
command that times out or is cancelled is killed first.
"""

from __future__ import annotations

import asyncio
import contextlib
import tempfile
from pathlib import Path

import structlog

from ...config.schema import FixAgentConfig
from ...utils.async_helpers import SpawnError
from ...utils.security import sanitize_for_logging, validate_name

log = structlog.get_logger()


class DockerFixInvoker:
    """Fix agent adapter implementing the FixInvoker protocol.

    Example:
        config = FixAgentConfig(spawn_script="/opt/agent/spawn.sh", container="agent")
        invoker = DockerFixInvoker(config, timeout=180)

        await invoker.start_fix("widgets", 42, "Fix the login crash")
    """

    def __init__(self, config: FixAgentConfig, timeout: float = 180.0) -> None:
        """Initialize the fix invoker.

        Args:
            config: Fix agent configuration.
            timeout: Seconds to wait for the spawn script to confirm.
        """
        self._config = config
        self._timeout = timeout

    def write_prompt(self, repository: str, issue_number: int, instructions: str) -> Path:
        """Write the prompt to a new file unique to this attempt.

        Raises:
            SpawnError: If the file cannot be written.
        """
        prompt_dir = self._config.prompt_dir
        try:
            prompt_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=prompt_dir,
                prefix=f"issue-{repository}-{issue_number}-",
                suffix=".txt",
                delete=False,
            ) as f:
                f.write(instructions)
        except OSError as e:
            raise SpawnError(f"Could not write prompt file in {prompt_dir}: {e}") from e
        return Path(f.name)

    def build_command(self, repository: str, issue_number: int, prompt_file: Path) -> list[str]:
        """Build the argument vector for the spawn command."""
        return [
            self._config.docker_path,
            "exec",
            self._config.container,
            self._config.spawn_script,
            "--project",
            repository,
            "--issue",
            str(issue_number),
            "--prompt-file",
            str(prompt_file),
        ]

    async def start_fix(self, repository: str, issue_number: int, instructions: str) -> None:
        """Write the prompt file and run the spawn script.

        Raises:
            SpawnError: If the name is unsafe, the prompt cannot be written,
                or the command fails or times out.
        """
        if not validate_name(repository):
            raise SpawnError(f"Invalid repository name: {repository!r}")

        prompt_file = self.write_prompt(repository, issue_number, instructions)
        try:
            await self._spawn(repository, issue_number, prompt_file)
        finally:
            prompt_file.unlink(missing_ok=True)

        log.info(
            "fix_agent_spawned",
            repository=repository,
            issue_number=issue_number,
        )

    async def _spawn(self, repository: str, issue_number: int, prompt_file: Path) -> None:
        cmd = self.build_command(repository, issue_number, prompt_file)
        log.debug("executing_spawn_command", command=cmd, timeout=self._timeout)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            log.error("spawn_exec_failed", command=cmd, error=str(e))
            raise SpawnError(f"Could not run {self._config.docker_path}: {e}") from e

        try:
            _, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError as e:
            await _kill(proc)
            log.error("spawn_timeout", command=cmd, timeout=self._timeout)
            raise SpawnError(f"Fix agent spawn timed out after {self._timeout}s") from e
        except asyncio.CancelledError:
            # A caller's deadline fired; the prompt must outlive the process
            await _kill(proc)
            log.warning("spawn_cancelled", repository=repository, issue_number=issue_number)
            raise

        if proc.returncode != 0:
            stderr = sanitize_for_logging(stderr_bytes.decode("utf-8", errors="replace").strip())
            log.error(
                "spawn_failed",
                repository=repository,
                issue_number=issue_number,
                return_code=proc.returncode,
                stderr=stderr,
            )
            detail = f" ({stderr})" if stderr else ""
            raise SpawnError(f"Fix agent spawn failed with exit code {proc.returncode}{detail}")


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
