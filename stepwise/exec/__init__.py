"""
Shell command execution for $(...) steps and targets.
"""

from .step_executor import StepExecutor, ExecutionResult, strip_command

__all__ = [
    "StepExecutor",
    "ExecutionResult",
    "strip_command",
]
