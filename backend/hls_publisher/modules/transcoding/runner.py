"""External command execution.

The encoder and the prober are driven through a narrow ``CommandRunner``
interface so they can be replaced in tests.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from hls_publisher.core.exceptions import CommandTimeoutError, ExternalToolError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a finished command."""
    exit_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class CommandRunner(ABC):
    """Runs an external command and collects its output."""

    @abstractmethod
    async def run(
        self,
        args: Sequence[str],
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            args: Program and arguments
            timeout: Seconds to wait before killing the process (None = no limit)

        Returns:
            CommandResult with exit code and decoded output

        Raises:
            ExternalToolError: If the program cannot be started
            CommandTimeoutError: If the timeout expires
        """
        pass


class AsyncioCommandRunner(CommandRunner):
    """CommandRunner backed by ``asyncio.create_subprocess_exec``."""

    async def run(
        self,
        args: Sequence[str],
        timeout: Optional[float] = None,
    ) -> CommandResult:
        logger.debug(f"Running command: {' '.join(args[:10])}...")
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolError(f"Failed to start {args[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            raise CommandTimeoutError(f"{args[0]} timed out after {timeout}s")

        return CommandResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
