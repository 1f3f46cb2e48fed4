"""
Provider executor for running provider commands.

Implements provider execution with argv/stdin modes, placeholder substitution,
and error handling.
"""

import logging
import os
import re
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Any
from dataclasses import dataclass

from .types import ProviderTemplate, ProviderInvocation, InputMode, ProviderParams
from .registry import ProviderRegistry


logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r'\$\{([^}]+)\}')


@dataclass
class ProviderExecutionResult:
    """Result from provider execution."""
    exit_code: int
    stdout: bytes
    stderr: bytes
    duration_ms: int
    error: Optional[Dict[str, Any]] = None

    @property
    def text(self) -> str:
        return self.stdout.decode('utf-8', errors='replace')


class ProviderExecutor:
    """
    Executes provider commands with proper input handling.

    Handles argv vs stdin modes and ${name} placeholder substitution from
    merged provider parameters and the caller's context.
    """

    def __init__(self, workspace: Optional[Path] = None, registry: Optional[ProviderRegistry] = None):
        """
        Initialize provider executor.

        Args:
            workspace: Working directory for provider processes (default: current directory)
            registry: Provider registry for template lookup
        """
        self.workspace = Path(workspace) if workspace else None
        self.registry = registry or ProviderRegistry()

    def prepare_invocation(
        self,
        provider_name: str,
        params: ProviderParams,
        context: Optional[Dict[str, str]] = None,
        prompt_content: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout_sec: Optional[int] = None,
    ) -> Tuple[Optional[ProviderInvocation], Optional[Dict[str, Any]]]:
        """
        Prepare a provider invocation.

        Args:
            provider_name: Name of the provider to invoke
            params: Provider parameters
            context: Extra placeholder values (e.g. tools)
            prompt_content: Prompt text delivered via ${PROMPT} or stdin
            env: Additional environment variables
            timeout_sec: Execution timeout

        Returns:
            Tuple of (invocation, error_dict) - error_dict is None if successful
        """
        provider = self.registry.get(provider_name)
        if not provider:
            return None, {
                "type": "provider_not_found",
                "message": f"Provider '{provider_name}' not found",
                "context": {"provider": provider_name}
            }

        merged_params = self.registry.merge_params(provider_name, params.params or {})
        string_params = {key: _param_text(value) for key, value in merged_params.items()}

        command, missing_placeholders, invalid_prompt = self._build_command(
            provider,
            string_params,
            context or {},
            prompt_content
        )

        if invalid_prompt:
            return None, {
                "type": "validation_error",
                "message": "Invalid ${PROMPT} placeholder in stdin mode",
                "context": {"invalid_prompt_placeholder": True}
            }

        if missing_placeholders:
            return None, {
                "type": "validation_error",
                "message": f"Missing placeholders: {', '.join(sorted(missing_placeholders))}",
                "context": {"missing_placeholders": missing_placeholders}
            }

        invocation = ProviderInvocation(
            command=command,
            input_mode=provider.input_mode,
            prompt=prompt_content if provider.input_mode == InputMode.STDIN else None,
            env=dict(env or {}),
            timeout_sec=timeout_sec
        )

        return invocation, None

    def execute(self, invocation: ProviderInvocation, cwd: Optional[Path] = None) -> ProviderExecutionResult:
        """
        Run a prepared invocation and capture its output.

        Timeouts map to exit code 124 and a missing or unrunnable binary to 127.
        """
        working_dir = cwd or self.workspace
        process_env = {**os.environ, **(invocation.env or {})}
        stdin_input = None
        if invocation.input_mode == InputMode.STDIN:
            stdin_input = (invocation.prompt or "").encode('utf-8')
            logger.debug(f"{invocation.command[0]}: prompt on stdin ({len(stdin_input)} bytes)")
        else:
            logger.debug(f"{invocation.command[0]}: prompt in argv")

        start_time = time.time()
        try:
            completed = subprocess.run(
                invocation.command,
                cwd=str(working_dir) if working_dir else None,
                env=process_env,
                input=stdin_input,
                capture_output=True,
                timeout=invocation.timeout_sec,
            )
        except subprocess.TimeoutExpired as e:
            return _failure(
                124, start_time, e.stdout, e.stderr, "timeout",
                f"Provider timed out after {invocation.timeout_sec} seconds",
                {"timeout_sec": invocation.timeout_sec}
            )
        except OSError as e:
            return _failure(127, start_time, None, str(e).encode('utf-8'), "execution_error", str(e))

        return ProviderExecutionResult(
            exit_code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
            duration_ms=_elapsed_ms(start_time)
        )

    def _build_command(
        self,
        provider: ProviderTemplate,
        params: Dict[str, str],
        context: Dict[str, str],
        prompt: Optional[str]
    ) -> Tuple[List[str], List[str], bool]:
        """
        Build command with placeholder substitution.

        $$ escapes a literal $. The prompt is substituted last so its content
        is never scanned for placeholders.

        Returns:
            Tuple of (command, missing_placeholders, invalid_prompt_placeholder)
        """
        command = []
        missing = set()
        invalid_prompt = False

        for token in provider.command:
            processed = token.replace('$$', '\x00')
            has_prompt = "${PROMPT}" in processed

            if has_prompt and provider.input_mode == InputMode.STDIN:
                invalid_prompt = True
                logger.error(f"Provider '{provider.name}': ${{PROMPT}} not allowed in stdin mode")

            for match in PLACEHOLDER_PATTERN.finditer(processed):
                var = match.group(1)
                if var == "PROMPT":
                    continue
                if var in params:
                    processed = processed.replace(f"${{{var}}}", params[var])
                elif var in context:
                    processed = processed.replace(f"${{{var}}}", context[var])
                else:
                    missing.add(var)

            if has_prompt and provider.input_mode != InputMode.STDIN:
                processed = processed.replace("${PROMPT}", prompt or "")

            command.append(processed.replace('\x00', '$'))

        return command, list(missing), invalid_prompt


def _param_text(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)


def _failure(
    exit_code: int,
    start_time: float,
    stdout: Optional[bytes],
    stderr: Optional[bytes],
    error_type: str,
    message: str,
    context: Optional[Dict[str, Any]] = None
) -> ProviderExecutionResult:
    return ProviderExecutionResult(
        exit_code=exit_code,
        stdout=stdout or b"",
        stderr=stderr or b"",
        duration_ms=_elapsed_ms(start_time),
        error={"type": error_type, "message": message, "context": context or {}}
    )
