"""
Step executor module for running inline shell commands.
Implements $(...) command execution with output capture.
"""

import logging
import os
import subprocess
import time
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"


@dataclass
class ExecutionResult:
    """Result of a command execution."""
    step_name: str
    exit_code: int
    output: str
    stderr: str
    duration_ms: int
    error: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


def strip_command(text: str) -> str:
    """Return the command inside $(...), or the text unchanged."""
    if text.startswith("$(") and text.endswith(")"):
        return text[2:-1]
    return text


class StepExecutor:
    """
    Executes inline shell commands with output capture.

    A non-zero exit status is not an error at this layer: the captured
    stdout is still the step result and the status is logged.
    """

    def __init__(self, workspace: Optional[Path] = None, env: Optional[Dict[str, str]] = None):
        """
        Initialize step executor.

        Args:
            workspace: Working directory for commands (default: current directory)
            env: Environment variables to add/override
        """
        self.workspace = Path(workspace) if workspace else None
        self.env = env or {}

    def execute_command(
        self,
        step_name: str,
        command: str,
        timeout_sec: Optional[int] = None,
    ) -> ExecutionResult:
        """
        Run a command through the shell.

        Args:
            step_name: Name of the step for logging
            command: Shell command, bare or wrapped in $(...)
            timeout_sec: Timeout in seconds

        Returns:
            ExecutionResult with captured stdout text
        """
        shell_command = strip_command(command)
        process_env = {**os.environ, **self.env}
        start_time = time.time()

        try:
            result = subprocess.run(
                [SHELL, "-c", shell_command],
                cwd=str(self.workspace) if self.workspace else None,
                env=process_env,
                capture_output=True,
                timeout=timeout_sec,
            )
            exit_code = result.returncode
            stdout = result.stdout
            stderr = result.stderr
            error = None

        except subprocess.TimeoutExpired as e:
            exit_code = 124
            stdout = e.stdout or b""
            stderr = e.stderr or b""
            error = {
                "type": "timeout",
                "message": f"Command timed out after {timeout_sec} seconds",
                "context": {"timeout_sec": timeout_sec}
            }

        except OSError as e:
            exit_code = 127
            stdout = b""
            stderr = str(e).encode('utf-8')
            error = {
                "type": "execution_error",
                "message": str(e),
                "context": {}
            }

        duration_ms = int((time.time() - start_time) * 1000)

        if exit_code != 0:
            logger.warning(f"Command '{shell_command}' exited with status {exit_code}")

        return ExecutionResult(
            step_name=step_name,
            exit_code=exit_code,
            output=stdout.decode('utf-8', errors='replace'),
            stderr=stderr.decode('utf-8', errors='replace'),
            duration_ms=duration_ms,
            error=error,
        )

    def capture(self, command: str) -> str:
        """Run a command and return its stdout text."""
        return self.execute_command(command, command).output
