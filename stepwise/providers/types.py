"""
Provider type definitions.

A provider template is a CLI command array with ${name} placeholders; the
prompt is delivered either as an argument (${PROMPT}) or on stdin.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any
from enum import Enum


class InputMode(str, Enum):
    """Provider input mode for prompt delivery."""
    ARGV = "argv"
    STDIN = "stdin"


@dataclass
class ProviderTemplate:
    """
    Provider template definition.

    Attributes:
        name: Provider identifier (e.g., 'claude', 'gemini')
        command: Command template array with placeholders
        defaults: Default parameter values
        input_mode: How to deliver the prompt (argv or stdin)
    """
    name: str
    command: List[str]
    defaults: Dict[str, Any] = field(default_factory=dict)
    input_mode: InputMode = InputMode.ARGV

    def validate(self) -> List[str]:
        """Return validation error messages (empty if valid)."""
        errors = []

        if not self.command:
            errors.append(f"Provider '{self.name}': command cannot be empty")

        if self.input_mode == InputMode.STDIN and any("${PROMPT}" in token for token in self.command):
            errors.append(f"Provider '{self.name}': ${{PROMPT}} not allowed in stdin mode")

        return errors


@dataclass
class ProviderParams:
    """Parameters for one provider invocation."""
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderInvocation:
    """Resolved provider invocation ready for execution."""
    command: List[str]
    input_mode: InputMode
    prompt: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    timeout_sec: Optional[int] = None
