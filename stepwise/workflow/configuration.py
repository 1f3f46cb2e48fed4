"""
Structured access to a loaded workflow definition.
"""

import logging
import os
from glob import glob
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exec import StepExecutor
from ..resources import detect_kind
from .nodes import StepNode, find_step_index, parse_steps

logger = logging.getLogger(__name__)


class WorkflowConfiguration:
    """Workflow settings, step list and per-step tables from a validated YAML dict."""

    def __init__(
        self,
        workflow_path: Path,
        config: Dict[str, Any],
        target: Optional[str] = None,
        step_executor: Optional[StepExecutor] = None
    ):
        """
        Initialize configuration.

        Args:
            workflow_path: Path of the workflow YAML file
            config: Validated workflow dict (see WorkflowLoader)
            target: Target override (takes precedence over the 'target' key)
            step_executor: Runs $(...) targets (default: a new StepExecutor)
        """
        self.workflow_path = Path(workflow_path)
        self.config = config
        self.step_executor = step_executor or StepExecutor()

        self.name: str = config.get('name') or self.basename
        self.raw_steps: List[Any] = list(config.get('steps') or [])
        self.steps: List[StepNode] = parse_steps(self.raw_steps)
        self.model: Optional[str] = config.get('model')
        self.provider: str = config.get('provider') or 'claude'
        self.providers: Dict[str, Any] = config.get('providers') or {}
        self.tools: List[str] = list(config.get('tools') or [])
        self.each: Optional[str] = config.get('each')
        self.session_name: str = config.get('session_name') or self.name

        self.target = target or config.get('target')
        if self.has_target:
            self.target = self.process_target(self.target)

    @property
    def basename(self) -> str:
        return self.workflow_path.stem

    @property
    def context_path(self) -> Path:
        """Directory holding the workflow file; steps resolve relative to it."""
        return self.workflow_path.resolve().parent

    @property
    def has_target(self) -> bool:
        return bool(self.target)

    def get_step_config(self, step_name: str) -> Dict[str, Any]:
        """Per-step table keyed by step name, or an empty dict."""
        step_config = self.config.get(step_name)
        return step_config if isinstance(step_config, dict) else {}

    def find_step_index(self, target_step: str) -> Optional[int]:
        return find_step_index(self.steps, target_step)

    def targets(self) -> List[str]:
        """Configured target split into one entry per line."""
        if not self.has_target:
            return []
        return [line.strip() for line in self.target.splitlines() if line.strip()]

    def process_shell_command(self, command: str) -> str:
        """Replace a $(...) command with its stripped output; other text passes through."""
        if command.startswith("$(") and command.endswith(")"):
            return self.step_executor.capture(command).strip()
        return command

    def process_target(self, target: str) -> str:
        """
        Turn the configured target into file paths.

        A $(...) target runs first. Globs expand to absolute matches joined by
        newlines (the pattern itself when nothing matches).
        """
        processed = self.process_shell_command(target)

        if "*" in processed:
            matched_files = sorted(glob(processed))
            if not matched_files:
                return processed
            return "\n".join(os.path.abspath(path) for path in matched_files)

        if processed != target and "/" not in processed:
            return processed

        if "\n" in processed or detect_kind(processed) in ("url", "api"):
            return processed

        return os.path.abspath(processed)
