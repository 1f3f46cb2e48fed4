"""Stepwise exceptions."""

from typing import List, Optional
from dataclasses import dataclass


@dataclass
class ValidationError:
    """Single validation error."""
    message: str
    path: str = ""
    exit_code: int = 2


class WorkflowValidationError(Exception):
    """Raised when workflow validation fails.

    This exception is raised by the loader when validation errors occur,
    allowing the CLI to catch it and map to appropriate exit codes.
    """

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        self.exit_code = 2  # Default validation exit code

        # Construct error message
        messages = []
        for error in errors:
            messages.append(f"Validation error: {error.message}")

        super().__init__("\n".join(messages))


class StepResolutionError(Exception):
    """Raised when a step name cannot be mapped to any executable."""

    def __init__(self, step_name: str, expected_path: str, message: Optional[str] = None):
        self.step_name = step_name
        self.expected_path = expected_path
        super().__init__(message or f"Step directory or file not found: {expected_path}")


class UnknownStepError(Exception):
    """Raised when the step list contains a node of unsupported shape."""

    def __init__(self, step: object):
        self.step = step
        super().__init__(f"Unknown step type: {step!r}")


class ReplayArgumentError(ValueError):
    """Raised when a --replay argument is malformed."""
    exit_code = 2


class ChatCompletionError(Exception):
    """Raised when the chat provider fails or returns unusable output."""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        self.exit_code = exit_code
        super().__init__(message)
