"""
Privileged command runner.

Services never call subprocess directly; they receive a CommandRunner and
ask it to run one command. This keeps privilege escalation scoped to the
single command being executed and lets tests swap in a fake runner.
"""

import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from const import DEFAULT_COMMAND_TIMEOUT, EXIT_NOT_FOUND, EXIT_TIMEOUT
from utils.binaries import get_binary
from utils.logger import get_logger

logger = get_logger("runner")


@dataclass(frozen=True)
class CommandResult:
    """Exit code and captured output of one command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def successful(self) -> bool:
        return self.exit_code == 0


class CommandRunner(ABC):
    """Runs a single command with elevated privileges."""

    @abstractmethod
    def run(
        self,
        command: Sequence[str],
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Run ``command`` and wait for it.

        Args:
            command: Program followed by its arguments. Never passed to a shell.
            env: Extra environment variables for the child process.
            timeout: Seconds before the command is killed.

        Returns:
            CommandResult. Timeouts and missing binaries are reported through
            the exit code rather than raised.
        """


class SudoCommandRunner(CommandRunner):
    """
    Runs commands through a privileged-exec wrapper (sudo by default).

    Usage:
        runner = SudoCommandRunner()
        result = runner.run(["fail2ban-client", "status", "sshd"], timeout=5)
    """

    def __init__(self, privileged_exec: Optional[str] = "sudo", default_timeout: float = DEFAULT_COMMAND_TIMEOUT):
        self.privileged_exec = privileged_exec
        self.default_timeout = default_timeout

    def build_argv(self, command: Sequence[str], env: Optional[Dict[str, str]] = None) -> list:
        """Resolve binaries and prepend the privileged-exec wrapper."""
        if not command:
            raise ValueError("Empty command")

        program = get_binary(command[0]) or command[0]
        argv = [program, *command[1:]]

        if not self.privileged_exec:
            return argv

        wrapper = get_binary(self.privileged_exec) or self.privileged_exec
        prefix = [wrapper]
        if env and os.path.basename(wrapper) == "sudo":
            # sudo resets the environment; name the variables to keep, values stay out of argv
            prefix.append(f"--preserve-env={','.join(sorted(env))}")
        return prefix + argv

    def run(
        self,
        command: Sequence[str],
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        timeout = timeout if timeout is not None else self.default_timeout
        argv = self.build_argv(command, env)

        child_env = None
        if env:
            child_env = os.environ.copy()
            child_env.update({k: v if v is not None else "" for k, v in env.items()})

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=child_env,
                shell=False,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out after {timeout}s: {' '.join(command)}")
            return CommandResult(EXIT_TIMEOUT, "", f"Command timed out after {timeout}s")
        except OSError as e:
            logger.error(f"Command could not be started: {' '.join(command)}: {e}")
            return CommandResult(EXIT_NOT_FOUND, "", str(e))

        if result.returncode != 0:
            logger.debug(f"Command exited {result.returncode}: {' '.join(argv)}: {result.stderr.strip()}")
        return CommandResult(result.returncode, result.stdout or "", result.stderr or "")
